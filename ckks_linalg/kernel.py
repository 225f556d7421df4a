"""
Encrypted matrix-vector kernel.

Pipeline for ``multiply(M, v)`` with M of shape (k, n) and v of length k:

1. Lay out the operands: M column-major, v tiled n times (see ``layout``).
2. Encrypt both slot vectors at the maximum level.
3. Multiply them slot-wise and relinearize (one level of budget).
4. Rescale back to the nominal scale.
5. Rotate-sum each block of width k (see ``reduction``).
6. Decrypt and read the first slot of each of the n blocks.

The result is ``out[c] = sum_r M[r][c] * v[r]``, i.e. ``M.T @ v``. The same
pipeline packs several vectors into one ciphertext (``multiply_batch``) and
computes full matrix products row by row (``matmul``).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

import torch

from .batching import SlotPacker
from .errors import EncodingOverflow, ShapeError
from .layout import MatrixLike, VectorLike, as_matrix, as_vector, flatten_column_major, tile
from .reduction import DEFAULT_STRATEGY, reduction_rotations, rotate_sum

if TYPE_CHECKING:
    from .ciphertext import Ciphertext
    from .context import CKKSLinalgContext
    from .evaluator import Evaluator

logger = logging.getLogger(__name__)


def required_rotations(shape: Tuple[int, int], strategy: str = DEFAULT_STRATEGY) -> List[int]:
    """Rotation offsets needed to multiply by a matrix of ``shape``."""
    rows, cols = shape
    if rows < 1 or cols < 1:
        raise ShapeError(f"matrix shape must be positive, got {shape}")
    return reduction_rotations(rows, strategy=strategy)


def extract_block_sums(
    slots: torch.Tensor,
    block_width: int,
    num_blocks: int,
    offset: int = 0,
    decimals: Optional[int] = None,
) -> torch.Tensor:
    """Read the first slot of each block after a rotate-sum reduction.

    Args:
        slots: Decoded slot values.
        block_width: Width of each block (the matrix row count).
        num_blocks: Number of blocks to read (the matrix column count).
        offset: Slot where the first block starts.
        decimals: Round the result to this many decimals if given.

    Returns:
        float64 tensor of length ``num_blocks``.
    """
    if block_width < 1 or num_blocks < 1:
        raise ShapeError(
            f"block_width and num_blocks must be positive, got ({block_width}, {num_blocks})"
        )
    flat = torch.as_tensor(slots, dtype=torch.float64).reshape(-1)
    last = offset + (num_blocks - 1) * block_width
    if offset < 0 or last >= flat.numel():
        raise ShapeError(
            f"slot vector of length {flat.numel()} has no slot {last} "
            f"({num_blocks} blocks of width {block_width} from slot {offset})"
        )
    result = flat[offset : last + 1 : block_width].clone()
    if decimals is not None:
        result = torch.round(result, decimals=decimals)
    return result


def multiply_encrypted(
    ct_matrix: "Ciphertext",
    ct_vector: "Ciphertext",
    evaluator: "Evaluator",
    block_width: int,
    *,
    strategy: str = DEFAULT_STRATEGY,
) -> "Ciphertext":
    """Encrypted part of the pipeline: multiply, rescale, rotate-sum.

    Args:
        ct_matrix: Column-major matrix slots.
        ct_vector: Tiled vector slots aligned with ``ct_matrix``.
        evaluator: Evaluator with the reduction's rotation keys.
        block_width: Matrix row count.
        strategy: Reduction strategy.

    Returns:
        Ciphertext whose first slot of every block holds a dot product.

    Raises:
        LevelExhausted: If either operand has no multiplicative budget left.
        MissingRotationKey: If a reduction offset has no key.
    """
    product = evaluator.multiply_relin(ct_vector, ct_matrix)
    product = evaluator.rescale(product)
    logger.debug("product at level %d, reducing blocks of %d", product.level, block_width)
    return rotate_sum(product, block_width, evaluator, strategy=strategy)


def multiply(
    matrix: MatrixLike,
    vector: VectorLike,
    ctx: "CKKSLinalgContext",
    *,
    evaluator: Optional["Evaluator"] = None,
    strategy: str = DEFAULT_STRATEGY,
    decimals: Optional[int] = None,
) -> torch.Tensor:
    """Multiply an encrypted vector with an encrypted matrix.

    Computes ``out[c] = sum_r matrix[r][c] * vector[r]`` for every column c.

    Args:
        matrix: k x n matrix.
        vector: Length-k vector.
        ctx: Session context providing encryption and decryption.
        evaluator: Evaluator to use; defaults to ``ctx.evaluator``.
        strategy: ``"log"`` or ``"linear"`` rotate-sum reduction.
        decimals: Round the result to this many decimals if given.

    Returns:
        float64 tensor of length n.

    Raises:
        ShapeError: If the matrix is malformed or ``len(vector) != k``.
        EncodingOverflow: If k*n exceeds the slot capacity.
        LevelExhausted: If the context has no multiplicative depth.
        MissingRotationKey: If the evaluator lacks a reduction offset.

    Example:
        >>> ctx = CKKSLinalgContext.for_shape(2, 2)
        >>> multiply([[1.0, 2.0], [3.0, 4.0]], [1.0, 1.0], ctx, decimals=2)
        tensor([4., 6.], dtype=torch.float64)
    """
    mat = as_matrix(matrix)
    vec = as_vector(vector)
    rows, cols = mat.shape
    if vec.numel() != rows:
        raise ShapeError(
            f"vector length {vec.numel()} does not match matrix row count {rows}"
        )

    # ctx.evaluator initializes the context, so num_slots is the backend's slot count
    base_evaluator = ctx.evaluator
    evaluator = evaluator or base_evaluator
    capacity = ctx.num_slots
    matrix_slots = flatten_column_major(mat, capacity)
    vector_slots = tile(vec, cols, capacity)

    ct_matrix = ctx.encrypt(matrix_slots)
    ct_vector = ctx.encrypt(vector_slots)
    ct_result = multiply_encrypted(ct_matrix, ct_vector, evaluator, rows, strategy=strategy)

    slots = ctx.decrypt(ct_result)
    return extract_block_sums(slots, rows, cols, decimals=decimals)


def _product_batch(
    ct_matrix: "Ciphertext",
    vectors: Sequence[torch.Tensor],
    packer: SlotPacker,
    shape: Tuple[int, int],
    ctx: "CKKSLinalgContext",
    evaluator: "Evaluator",
    strategy: str,
    decimals: Optional[int],
) -> torch.Tensor:
    rows, cols = shape
    ct_vectors = ctx.encrypt(packer.pack([tile(v, cols) for v in vectors]))
    ct_result = multiply_encrypted(ct_matrix, ct_vectors, evaluator, rows, strategy=strategy)
    slots = ctx.decrypt(ct_result)
    return torch.stack([
        extract_block_sums(slots, rows, cols, offset=packer.offset(i), decimals=decimals)
        for i in range(len(vectors))
    ])


def _check_vectors(vectors: Sequence[VectorLike], rows: int) -> List[torch.Tensor]:
    vecs = [as_vector(v) for v in vectors]
    if not vecs:
        raise ShapeError("at least one vector is required")
    for i, vec in enumerate(vecs):
        if vec.numel() != rows:
            raise ShapeError(
                f"vector {i} has length {vec.numel()}, matrix row count is {rows}"
            )
    return vecs


def multiply_batch(
    matrix: MatrixLike,
    vectors: Sequence[VectorLike],
    ctx: "CKKSLinalgContext",
    *,
    evaluator: Optional["Evaluator"] = None,
    strategy: str = DEFAULT_STRATEGY,
    decimals: Optional[int] = None,
) -> torch.Tensor:
    """Multiply several vectors with the same matrix in one ciphertext.

    All B tiled vectors are packed side by side and the matrix slots are
    tiled B times, so the whole batch costs one multiplication and one
    reduction.

    Returns:
        float64 tensor of shape (B, n); row i is ``multiply(matrix, vectors[i])``.

    Raises:
        EncodingOverflow: If B*k*n exceeds the slot capacity.
    """
    mat = as_matrix(matrix)
    rows, cols = mat.shape
    vecs = _check_vectors(vectors, rows)

    base_evaluator = ctx.evaluator
    evaluator = evaluator or base_evaluator
    packer = SlotPacker(rows * cols, ctx.num_slots)
    if len(vecs) > packer.max_batch_size:
        raise EncodingOverflow(len(vecs) * rows * cols, ctx.num_slots, f"batch of {len(vecs)}")

    ct_matrix = ctx.encrypt(tile(flatten_column_major(mat), len(vecs), ctx.num_slots))
    return _product_batch(ct_matrix, vecs, packer, (rows, cols), ctx, evaluator, strategy, decimals)


def matmul(
    left: MatrixLike,
    right: MatrixLike,
    ctx: "CKKSLinalgContext",
    *,
    evaluator: Optional["Evaluator"] = None,
    strategy: str = DEFAULT_STRATEGY,
    decimals: Optional[int] = None,
) -> torch.Tensor:
    """Encrypted matrix product ``left @ right``.

    Row i of the product is ``right.T @ left[i]``, so each row of ``left`` is
    a vector for :func:`multiply_batch` against ``right``. Rows are processed
    in chunks that fill the slot capacity; the tiled ``right`` is encrypted
    once and shared by all chunks.

    Args:
        left: m x k matrix.
        right: k x n matrix.

    Returns:
        float64 tensor of shape (m, n).
    """
    lhs = as_matrix(left)
    rhs = as_matrix(right)
    if lhs.shape[1] != rhs.shape[0]:
        raise ShapeError(
            f"cannot multiply {tuple(lhs.shape)} by {tuple(rhs.shape)}: inner dimensions differ"
        )
    rows, cols = rhs.shape

    base_evaluator = ctx.evaluator
    evaluator = evaluator or base_evaluator
    packer = SlotPacker(rows * cols, ctx.num_slots)
    chunk = min(packer.max_batch_size, lhs.shape[0])

    ct_matrix = ctx.encrypt(tile(flatten_column_major(rhs), chunk, ctx.num_slots))

    results = []
    for start in range(0, lhs.shape[0], chunk):
        vecs = list(lhs[start : start + chunk])
        logger.debug("matmul rows %d..%d", start, start + len(vecs) - 1)
        results.append(
            _product_batch(ct_matrix, vecs, packer, (rows, cols), ctx, evaluator, strategy, decimals)
        )
    return torch.cat(results, dim=0)
