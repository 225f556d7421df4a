"""
Exception types raised by the encrypted linear-algebra kernel.

None of these are transient: every one aborts the call that raised it and
nothing is retried. Each class also derives from the builtin exception a
caller would naturally catch (``ValueError`` for bad input, ``RuntimeError``
for an exhausted or missing backend), so existing handlers keep working.
"""

from __future__ import annotations

from typing import Iterable, Optional


class CKKSLinalgError(Exception):
    """Base class for all ckks_linalg errors."""


class ShapeError(CKKSLinalgError, ValueError):
    """Malformed matrix or vector dimensions."""


class EncodingOverflow(CKKSLinalgError, ValueError):
    """A slot payload does not fit in the ciphertext's slot capacity."""

    def __init__(self, length: int, capacity: int, what: str = "slot vector"):
        self.length = length
        self.capacity = capacity
        super().__init__(
            f"{what} needs {length} slots but only {capacity} are available. "
            f"Consider using a larger poly_mod_degree."
        )


class MissingRotationKey(CKKSLinalgError, LookupError):
    """A rotation was requested for an offset without a Galois key."""

    def __init__(self, offset: int, available: Optional[Iterable[int]] = None):
        self.offset = offset
        self.available = sorted(available) if available is not None else []
        super().__init__(
            f"No rotation key registered for offset {offset}; "
            f"available offsets: {self.available}. "
            f"Register it with CKKSLinalgContext.with_rotation_keys()."
        )


class LevelExhausted(CKKSLinalgError, RuntimeError):
    """The multiplicative depth budget of a ciphertext is used up.

    The only remedy is re-creating the context with a larger ``mult_depth``.
    """

    def __init__(self, operation: str, level: int):
        self.operation = operation
        self.level = level
        super().__init__(
            f"Cannot {operation}: ciphertext is at level {level} and has no "
            f"multiplicative budget left. Increase mult_depth in LinalgConfig."
        )


class OperandMismatch(CKKSLinalgError, ValueError):
    """Two ciphertexts disagree on level or scale where they must match."""


class BackendUnavailable(CKKSLinalgError, RuntimeError):
    """No homomorphic backend could be loaded."""
