"""
Ciphertext - thin wrapper around a backend ciphertext handle.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict

if TYPE_CHECKING:
    from .backend.base import CKKSBackend


class Ciphertext:
    """A CKKS ciphertext produced by a backend.

    The handle itself is opaque. The kernel only reads the metadata the
    backend reports (level, scale, scale degree) to decide whether an
    operation is legal, plus two bookkeeping fields kept on the Python side:

    - ``length``: number of meaningful slots (the rest is zero padding).
    - ``depth``: ciphertext multiplications applied since encryption.

    Example:
        >>> ct = ctx.encrypt([1.0, 2.0, 3.0])
        >>> ct.level, ct.length
        (7, 3)
    """

    def __init__(self, cipher: Any, backend: "CKKSBackend", length: int, depth: int = 0):
        self._cipher = cipher
        self._backend = backend
        self._length = int(length)
        self._depth = depth

    @property
    def handle(self) -> Any:
        """The backend's native ciphertext object."""
        return self._cipher

    @property
    def backend(self) -> "CKKSBackend":
        return self._backend

    @property
    def length(self) -> int:
        """Number of meaningful slots."""
        return self._length

    @property
    def depth(self) -> int:
        """Ciphertext multiplications consumed so far."""
        return self._depth

    @property
    def metadata(self) -> Dict[str, Any]:
        """Get ciphertext metadata (level, scale, scale_degree)."""
        return self._backend.cipher_metadata(self._cipher)

    @property
    def level(self) -> int:
        """Current level (remaining multiplicative depth)."""
        return int(self.metadata.get("level", 0))

    @property
    def scale(self) -> float:
        """Current scale factor."""
        return float(self.metadata.get("scale", 0.0))

    @property
    def scale_degree(self) -> int:
        """1 when rescaled, 2 after an un-rescaled multiplication."""
        return int(self.metadata.get("scale_degree", 1))

    def clone(self) -> "Ciphertext":
        """New wrapper over the same handle.

        Backend operations never mutate their inputs, so sharing the handle
        is safe for independent reductions.
        """
        return Ciphertext(self._cipher, self._backend, self._length, self._depth)

    def __repr__(self) -> str:
        meta = self.metadata
        return (
            f"Ciphertext(length={self._length}, "
            f"depth={self._depth}, "
            f"level={meta.get('level')}, "
            f"scale={meta.get('scale', 0):.2e})"
        )
