"""
Evaluation capabilities: rotation key registry and evaluator views.

The set of rotations a session can perform grows over time as new offsets
are needed. Keys therefore live in an append-only :class:`RotationKeySet`
owned by the session context, while an :class:`Evaluator` is an immutable
view over that registry. ``Evaluator.with_rotation_keys`` returns a *new*
evaluator that can also rotate by the requested offsets; the original
evaluator is left untouched and keeps its narrower capability.
"""

from __future__ import annotations

import logging
import math
import threading
from typing import TYPE_CHECKING, FrozenSet, Iterable, Iterator

from .ciphertext import Ciphertext
from .errors import LevelExhausted, MissingRotationKey, OperandMismatch

if TYPE_CHECKING:
    from .backend.base import CKKSBackend

logger = logging.getLogger(__name__)


def _normalize_offsets(offsets: Iterable[int]) -> FrozenSet[int]:
    return frozenset(int(o) for o in offsets if int(o) != 0)


class RotationKeySet:
    """Append-only registry of rotation offsets with generated Galois keys.

    Keys are generated at most once per offset. Nothing is ever removed.
    """

    def __init__(self, backend: "CKKSBackend"):
        self._backend = backend
        self._offsets: FrozenSet[int] = frozenset()
        self._lock = threading.Lock()

    def register(self, offsets: Iterable[int]) -> FrozenSet[int]:
        """Generate keys for any offsets not yet registered.

        Returns:
            The normalized set of requested offsets (zero dropped).
        """
        requested = _normalize_offsets(offsets)
        with self._lock:
            missing = sorted(requested - self._offsets)
            if missing:
                logger.info("Generating rotation keys for offsets %s", missing)
                self._backend.generate_rotation_keys(missing)
                self._offsets = self._offsets | frozenset(missing)
        return requested

    @property
    def offsets(self) -> FrozenSet[int]:
        return self._offsets

    def __contains__(self, offset: object) -> bool:
        return offset in self._offsets

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._offsets))

    def __len__(self) -> int:
        return len(self._offsets)

    def __repr__(self) -> str:
        return f"RotationKeySet(offsets={sorted(self._offsets)})"


class Evaluator:
    """Immutable evaluation capability over a backend and a key registry.

    Every operation returns a new :class:`Ciphertext`. Level and scale
    metadata are checked before the backend is called, so an illegal
    operation fails without touching any ciphertext.
    """

    __slots__ = ("_backend", "_keys", "_offsets")

    def __init__(
        self,
        backend: "CKKSBackend",
        keys: RotationKeySet,
        offsets: Iterable[int] = (),
    ):
        self._backend = backend
        self._keys = keys
        self._offsets = _normalize_offsets(offsets)

    @property
    def backend(self) -> "CKKSBackend":
        return self._backend

    @property
    def rotation_offsets(self) -> FrozenSet[int]:
        """Offsets this evaluator is allowed to rotate by."""
        return self._offsets

    def with_rotation_keys(self, offsets: Iterable[int]) -> "Evaluator":
        """Return a new evaluator that can also rotate by ``offsets``.

        Missing keys are generated in the shared registry; ``self`` is not
        modified.
        """
        added = self._keys.register(offsets)
        return Evaluator(self._backend, self._keys, self._offsets | added)

    def can_rotate(self, offset: int) -> bool:
        return offset == 0 or (offset in self._offsets and offset in self._keys)

    # -------------------------------------------------------------------------
    # Ciphertext Operations
    # -------------------------------------------------------------------------

    def add(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        """Elementwise addition of two ciphertexts at the same level and scale."""
        meta_a, meta_b = a.metadata, b.metadata
        if meta_a["level"] != meta_b["level"]:
            raise OperandMismatch(
                f"Cannot add ciphertexts at different levels ({meta_a['level']} vs {meta_b['level']})"
            )
        if meta_a.get("scale_degree", 1) != meta_b.get("scale_degree", 1) or not math.isclose(
            meta_a["scale"], meta_b["scale"], rel_tol=1e-9
        ):
            raise OperandMismatch(
                f"Cannot add ciphertexts with different scales ({meta_a['scale']:.3e} vs {meta_b['scale']:.3e})"
            )
        new_cipher = self._backend.add(a.handle, b.handle)
        return Ciphertext(new_cipher, self._backend, max(a.length, b.length), max(a.depth, b.depth))

    def multiply_relin(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        """Elementwise multiplication followed by relinearization.

        Raises:
            LevelExhausted: If either operand has no level left.
            OperandMismatch: If an operand still waits for a rescale.
        """
        level = min(a.level, b.level)
        if level <= 0:
            raise LevelExhausted("multiply", level)
        if a.scale_degree > 1 or b.scale_degree > 1:
            raise OperandMismatch("Rescale ciphertexts before multiplying them again")
        new_cipher = self._backend.multiply_relin(a.handle, b.handle)
        return Ciphertext(new_cipher, self._backend, max(a.length, b.length), max(a.depth, b.depth) + 1)

    def rescale(self, ct: Ciphertext) -> Ciphertext:
        """Restore the nominal scale, consuming one level."""
        level = ct.level
        if level <= 0:
            raise LevelExhausted("rescale", level)
        return Ciphertext(self._backend.rescale(ct.handle), self._backend, ct.length, ct.depth)

    def multiply_rescale(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        """Multiply, relinearize and rescale in one step."""
        return self.rescale(self.multiply_relin(a, b))

    def rotate(self, ct: Ciphertext, offset: int) -> Ciphertext:
        """Cyclically rotate slots left by ``offset``.

        Raises:
            MissingRotationKey: If ``offset`` is not among this evaluator's keys.
        """
        offset = int(offset)
        if offset == 0:
            return ct
        if not self.can_rotate(offset):
            raise MissingRotationKey(offset, self._offsets)
        return Ciphertext(self._backend.rotate(ct.handle, offset), self._backend, ct.length, ct.depth)

    def __repr__(self) -> str:
        return f"Evaluator(backend={self._backend.name}, rotations={sorted(self._offsets)})"
