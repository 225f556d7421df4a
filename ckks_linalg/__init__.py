"""
ckks_linalg: Encrypted matrix-vector products with CKKS.

Both the matrix and the vector are encrypted; the party evaluating the
product never sees cleartext values. A single SIMD ciphertext multiplication
followed by a rotate-and-sum reduction yields the whole product.

Quick Start:
    >>> import ckks_linalg
    >>>
    >>> M = [[0, 1, 2, 3], [4, 5, 6, 7], [8, 9, 10, 11], [12, 13, 14, 15]]
    >>> v = [1, 2, 3, 4]
    >>>
    >>> # 1. Create a context sized and keyed for a 4x4 matrix
    >>> ctx = ckks_linalg.CKKSLinalgContext.for_shape(4, 4)
    >>>
    >>> # 2. out[c] = sum_r M[r][c] * v[r]
    >>> ckks_linalg.multiply(M, v, ctx, decimals=2)
    tensor([ 80.,  90., 100., 110.], dtype=torch.float64)

The library handles:
    - Slot layout (column-major matrix, tiled vector)
    - Rotate-and-sum reduction with linear or logarithmic rotation count
    - Batched vectors and matrix-matrix products via slot packing
    - Level and rotation-key bookkeeping with typed errors

For more control, you can use the lower-level APIs:
    - CKKSLinalgContext / Evaluator: encryption and ciphertext arithmetic
    - ckks_linalg.layout: slot layout functions
    - ckks_linalg.reduction: rotate_sum
"""

__version__ = "0.1.0"

# Core classes
from .context import CKKSLinalgContext, LinalgConfig
from .ciphertext import Ciphertext
from .evaluator import Evaluator, RotationKeySet
from .errors import (
    BackendUnavailable,
    CKKSLinalgError,
    EncodingOverflow,
    LevelExhausted,
    MissingRotationKey,
    OperandMismatch,
    ShapeError,
)
from .kernel import (
    extract_block_sums,
    matmul,
    multiply,
    multiply_batch,
    multiply_encrypted,
    required_rotations,
)
from .layout import flatten_column_major, flatten_row_major, tile, unflatten_column_major
from .reduction import reduction_rotations, rotate_sum

# Submodules
from . import backend
from . import batching
from .batching import SlotPacker

__all__ = [
    # Version
    "__version__",
    # Core
    "CKKSLinalgContext",
    "LinalgConfig",
    "Ciphertext",
    "Evaluator",
    "RotationKeySet",
    # Kernel
    "multiply",
    "multiply_batch",
    "multiply_encrypted",
    "matmul",
    "extract_block_sums",
    "required_rotations",
    # Layout and reduction
    "flatten_column_major",
    "flatten_row_major",
    "unflatten_column_major",
    "tile",
    "rotate_sum",
    "reduction_rotations",
    "SlotPacker",
    # Errors
    "CKKSLinalgError",
    "ShapeError",
    "EncodingOverflow",
    "MissingRotationKey",
    "LevelExhausted",
    "OperandMismatch",
    "BackendUnavailable",
    # Submodules
    "backend",
    "batching",
    # Utility
    "get_backend_info",
    "is_available",
]


def get_backend_info() -> dict:
    """Get information about the installed CKKS backends.

    Returns:
        Dictionary with keys:
            backend (str | None):   "openfhe" or None
            available (bool):       Whether the backend is importable
            registered (list):      Names accepted by CKKSLinalgContext(backend=...)
    """
    from .backend import available_backends, is_openfhe_available

    available = is_openfhe_available()
    return {
        "backend": "openfhe" if available else None,
        "available": available,
        "registered": available_backends(),
    }


def is_available() -> bool:
    """Check if the CKKS backend is available.

    Returns:
        True if the backend is installed and ready.
    """
    return get_backend_info()["available"]
