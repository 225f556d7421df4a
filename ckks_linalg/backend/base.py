"""
Contract for the homomorphic arithmetic backend.

The kernel never touches ring elements or keys directly. Everything it needs
from CKKS goes through a :class:`CKKSBackend`: encoding, encryption, the three
ciphertext operations (add, multiply-relinearize, rotate), rescaling and
rotation key generation.

Handles returned by a backend are opaque to the kernel. The only thing it
inspects is :meth:`CKKSBackend.cipher_metadata`, which reports:

    level         remaining multiplicative budget (0 = exhausted)
    scale         current fixed-point scale
    scale_degree  1 after rescale, 2 right after a multiplication
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Sequence

import torch


class CKKSBackend(ABC):
    """Abstract CKKS backend.

    Implementations must return new handles from every operation and never
    mutate their arguments; the kernel relies on this to keep ciphertexts
    unaliased between calls.
    """

    name: str = "abstract"

    @property
    @abstractmethod
    def slot_count(self) -> int:
        """Number of SIMD slots per ciphertext."""

    @property
    @abstractmethod
    def max_level(self) -> int:
        """Multiplicative budget of a freshly encrypted ciphertext."""

    @abstractmethod
    def encode(self, values: Sequence[float], level: Optional[int] = None) -> Any:
        """Encode real values into a plaintext at ``level`` (default: max level)."""

    @abstractmethod
    def decode(self, plaintext: Any) -> torch.Tensor:
        """Decode a plaintext into a float64 tensor of ``slot_count`` values."""

    @abstractmethod
    def encrypt(self, plaintext: Any) -> Any:
        """Encrypt a plaintext."""

    @abstractmethod
    def decrypt(self, cipher: Any) -> Any:
        """Decrypt a ciphertext into a plaintext."""

    @abstractmethod
    def add(self, a: Any, b: Any) -> Any:
        """Elementwise addition. Operands must share level and scale."""

    @abstractmethod
    def multiply_relin(self, a: Any, b: Any) -> Any:
        """Elementwise multiplication followed by relinearization."""

    @abstractmethod
    def rescale(self, cipher: Any) -> Any:
        """Divide out one scale factor, consuming one level."""

    @abstractmethod
    def rotate(self, cipher: Any, offset: int) -> Any:
        """Cyclic left rotation of the slot vector by ``offset``."""

    @abstractmethod
    def generate_rotation_keys(self, offsets: Sequence[int]) -> None:
        """Generate Galois keys for the given rotation offsets."""

    @abstractmethod
    def cipher_metadata(self, cipher: Any) -> Dict[str, Any]:
        """Return ``{"level", "scale", "scale_degree"}`` for a ciphertext."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(slots={self.slot_count}, max_level={self.max_level})"
