"""
CKKS linear-algebra context - parameter configuration and session state.

This module holds the scheme parameters (:class:`LinalgConfig`) and the
session object (:class:`CKKSLinalgContext`) that owns the backend, the
rotation key registry and the encryptor/decryptor capabilities.
"""

from __future__ import annotations

import logging
import math
import pickle
import threading
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union

import torch

from .backend import CKKSBackend, create_backend
from .ciphertext import Ciphertext
from .evaluator import Evaluator, RotationKeySet
from .layout import check_capacity
from .reduction import DEFAULT_STRATEGY, reduction_rotations

logger = logging.getLogger(__name__)

_MIN_POLY_MOD_DEGREE = 16384


@dataclass
class LinalgConfig:
    """Scheme parameters for encrypted matrix-vector products.

    The defaults give 128-bit security with a depth-7 modulus chain:
    ring degree 2^14, a 55-bit first prime and seven 45-bit primes.

    Attributes:
        poly_mod_degree: Ring dimension (power of 2). Slots = poly_mod_degree / 2.
            A backend may pick a larger ring when this one is not secure for
            the modulus chain; the context then reports the backend's slots.
        scale_bits: log2 of the nominal scale; also the size of each rescaling prime.
        first_mod_bits: Size of the first prime; bounds the integer part of decoded values.
        mult_depth: Number of multiply+rescale pairs a fresh ciphertext supports.
            One matrix-vector product uses one.
        security_level: Security level string ("128_classic", ...). None to disable.
        batch_size: Number of slots to use. Defaults to poly_mod_degree // 2.
    """
    poly_mod_degree: int = 16384
    scale_bits: int = 45
    first_mod_bits: int = 55
    mult_depth: int = 7
    security_level: Optional[str] = "128_classic"
    batch_size: Optional[int] = None

    def __post_init__(self) -> None:
        if self.poly_mod_degree <= 0 or self.poly_mod_degree & (self.poly_mod_degree - 1):
            raise ValueError(f"poly_mod_degree must be a power of 2, got {self.poly_mod_degree}")
        if self.mult_depth < 0:
            raise ValueError(f"mult_depth must be >= 0, got {self.mult_depth}")
        if self.batch_size is not None:
            if not 0 < self.batch_size <= self.poly_mod_degree // 2:
                raise ValueError(
                    f"batch_size must be in (0, {self.poly_mod_degree // 2}], got {self.batch_size}"
                )
            if self.batch_size & (self.batch_size - 1):
                raise ValueError(f"batch_size must be a power of 2, got {self.batch_size}")

    @property
    def num_slots(self) -> int:
        """Number of plaintext slots available."""
        if self.batch_size:
            return int(self.batch_size)
        return self.poly_mod_degree // 2

    @property
    def coeff_mod_bits(self) -> Tuple[int, ...]:
        """Bit sizes of the ciphertext modulus chain."""
        return (self.first_mod_bits,) + (self.scale_bits,) * self.mult_depth

    @classmethod
    def for_depth(cls, mult_depth: int, **kwargs: Any) -> "LinalgConfig":
        """Create a config for a given multiplicative depth."""
        return cls(mult_depth=max(1, mult_depth), **kwargs)

    @classmethod
    def for_shape(cls, rows: int, cols: int, batch: int = 1, **kwargs: Any) -> "LinalgConfig":
        """Smallest ring whose slots hold ``batch`` copies of a rows x cols matrix.

        Args:
            rows: Matrix row count (block width).
            cols: Matrix column count.
            batch: Number of vectors to pack per ciphertext.
            **kwargs: Overrides forwarded to __init__.
        """
        needed = rows * cols * max(1, batch)
        poly_mod_degree = max(_MIN_POLY_MOD_DEGREE, 1 << math.ceil(math.log2(2 * needed)))
        poly_mod_degree = kwargs.pop("poly_mod_degree", poly_mod_degree)
        return cls(poly_mod_degree=poly_mod_degree, **kwargs)


class CKKSLinalgContext:
    """Session context for encrypted linear algebra.

    Owns the backend (and through it all key material), the append-only
    rotation key registry, and a base :class:`Evaluator` that can rotate by
    the offsets given at construction. The backend is created lazily on first
    use.

    Example:
        >>> ctx = CKKSLinalgContext.for_shape(4, 4)
        >>> result = ckks_linalg.multiply(matrix, vector, ctx)
    """

    def __init__(
        self,
        config: Optional[LinalgConfig] = None,
        *,
        backend: Union[str, CKKSBackend, None] = None,
        rotations: Optional[Iterable[int]] = None,
    ):
        self.config = config or LinalgConfig()
        self._backend_spec = backend
        self._rotations: List[int] = sorted({int(r) for r in (rotations or []) if int(r) != 0})
        self._initialized = False
        self._init_lock = threading.Lock()

    def _ensure_initialized(self) -> None:
        """Lazy initialization of the backend and key registry."""
        if self._initialized:
            return

        with self._init_lock:
            if self._initialized:
                return

            if isinstance(self._backend_spec, CKKSBackend):
                backend = self._backend_spec
            else:
                backend = create_backend(self.config, self._backend_spec)

            self._backend = backend
            self._keys = RotationKeySet(backend)
            self._evaluator = Evaluator(backend, self._keys).with_rotation_keys(self._rotations)
            self._initialized = True
            logger.info(
                "Initialized %s backend: slots=%d max_level=%d rotations=%s",
                backend.name, backend.slot_count, backend.max_level, self._rotations,
            )

    @property
    def num_slots(self) -> int:
        """Number of available plaintext slots."""
        if self._initialized:
            return self._backend.slot_count
        return self.config.num_slots

    @property
    def max_level(self) -> int:
        """Level of a freshly encrypted ciphertext."""
        self._ensure_initialized()
        return self._backend.max_level

    @property
    def backend(self) -> CKKSBackend:
        """Access the underlying backend."""
        self._ensure_initialized()
        return self._backend

    @property
    def rotation_keys(self) -> RotationKeySet:
        """The session's rotation key registry."""
        self._ensure_initialized()
        return self._keys

    @property
    def evaluator(self) -> Evaluator:
        """Evaluator holding the rotation keys requested at construction."""
        self._ensure_initialized()
        return self._evaluator

    def with_rotation_keys(self, offsets: Iterable[int]) -> Evaluator:
        """Evaluator that can also rotate by ``offsets``.

        Generates any missing keys; the context's base evaluator is unchanged.
        """
        return self.evaluator.with_rotation_keys(offsets)

    # -------------------------------------------------------------------------
    # Encoding and Encryption
    # -------------------------------------------------------------------------

    def _as_slots(self, values: Union[torch.Tensor, Sequence[float]]) -> torch.Tensor:
        flat = torch.as_tensor(values, dtype=torch.float64).detach().cpu().reshape(-1)
        check_capacity(flat.numel(), self.num_slots)
        return flat

    def encode(self, values: Union[torch.Tensor, Sequence[float]], level: Optional[int] = None) -> Any:
        """Encode a slot vector into a backend plaintext."""
        self._ensure_initialized()
        return self._backend.encode(self._as_slots(values), level)

    def decode(self, plaintext: Any) -> torch.Tensor:
        """Decode a backend plaintext into a float64 tensor of all slots."""
        self._ensure_initialized()
        return self._backend.decode(plaintext)

    def encrypt(self, values: Union[torch.Tensor, Sequence[float]]) -> Ciphertext:
        """Encode and encrypt a slot vector at the maximum level.

        Raises:
            EncodingOverflow: If the vector is longer than the slot capacity.
        """
        self._ensure_initialized()
        flat = self._as_slots(values)
        cipher = self._backend.encrypt(self._backend.encode(flat))
        return Ciphertext(cipher, self._backend, flat.numel())

    def decrypt(self, ct: Ciphertext, length: Optional[int] = None) -> torch.Tensor:
        """Decrypt and decode, keeping the first ``length`` slots.

        ``length`` defaults to the ciphertext's payload length.
        """
        self._ensure_initialized()
        values = self._backend.decode(self._backend.decrypt(ct.handle))
        n = ct.length if length is None else int(length)
        return values[:n].clone()

    # -------------------------------------------------------------------------
    # Constructors and Persistence
    # -------------------------------------------------------------------------

    @classmethod
    def for_shape(
        cls,
        rows: int,
        cols: int,
        *,
        batch: int = 1,
        strategy: str = DEFAULT_STRATEGY,
        backend: Union[str, CKKSBackend, None] = None,
        **config_kwargs: Any,
    ) -> "CKKSLinalgContext":
        """Context sized and keyed for products with a rows x cols matrix.

        Args:
            rows: Matrix row count.
            cols: Matrix column count.
            batch: Vectors packed per ciphertext.
            strategy: Reduction strategy the rotation keys are generated for.
            backend: Backend name or instance.
            **config_kwargs: Overrides forwarded to LinalgConfig.for_shape().
        """
        config = LinalgConfig.for_shape(rows, cols, batch=batch, **config_kwargs)
        rotations = reduction_rotations(rows, strategy=strategy)
        return cls(config, backend=backend, rotations=rotations)

    def __repr__(self) -> str:
        status = "initialized" if self._initialized else "not initialized"
        return (
            f"CKKSLinalgContext("
            f"slots={self.num_slots}, "
            f"depth={self.config.mult_depth}, "
            f"rotations={self._rotations}, "
            f"status={status})"
        )

    def save_context(self, path: Union[str, Path]) -> None:
        """Save the context configuration to a file.

        Only parameters are saved; keys live in the backend and are
        regenerated when the loaded context initializes.
        """
        config_data = {
            "poly_mod_degree": self.config.poly_mod_degree,
            "scale_bits": self.config.scale_bits,
            "first_mod_bits": self.config.first_mod_bits,
            "mult_depth": self.config.mult_depth,
            "security_level": self.config.security_level,
            "batch_size": self.config.batch_size,
            "rotations": self._rotations,
            "backend": self._backend_spec if isinstance(self._backend_spec, str) else None,
        }
        with open(path, "wb") as f:
            pickle.dump(config_data, f)

    @classmethod
    def load_context(
        cls,
        path: Union[str, Path],
        backend: Union[str, CKKSBackend, None] = None,
    ) -> "CKKSLinalgContext":
        """Load a context configuration saved by :meth:`save_context`.

        Args:
            path: Path to the saved configuration.
            backend: Optional backend overriding the saved backend name.
        """
        with open(path, "rb") as f:
            config_data = pickle.load(f)
        warnings.warn(
            "CKKSLinalgContext.load_context() uses pickle deserialization which can "
            "execute arbitrary code. Only load context files from trusted sources.",
            stacklevel=2,
        )

        config = LinalgConfig(
            poly_mod_degree=config_data["poly_mod_degree"],
            scale_bits=config_data["scale_bits"],
            first_mod_bits=config_data["first_mod_bits"],
            mult_depth=config_data["mult_depth"],
            security_level=config_data["security_level"],
            batch_size=config_data["batch_size"],
        )
        return cls(
            config,
            backend=backend if backend is not None else config_data["backend"],
            rotations=config_data["rotations"],
        )

    load = load_context
