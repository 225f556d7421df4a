"""Mock CKKS backend for unit testing without OpenFHE.

This module provides a plaintext implementation of the CKKSBackend contract.
Slot vectors are kept in the clear, but level, scale degree and rotation keys
are tracked exactly like a real leveled backend, so the kernel's bookkeeping
and error paths can be tested without the native library.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import torch

from ckks_linalg.backend.base import CKKSBackend
from ckks_linalg.context import LinalgConfig


@dataclass
class MockPlaintext:
    data: torch.Tensor
    level: int


@dataclass
class MockCipher:
    data: torch.Tensor
    level: int
    scale_degree: int = 1


class MockCKKSBackend(CKKSBackend):
    """Mock backend that operates on plaintext slot vectors.

    Args:
        config: Scheme parameters; only ``num_slots``, ``mult_depth`` and
            ``scale_bits`` are used.
        noise: Standard deviation of Gaussian noise added on encryption,
            to mimic CKKS approximation error. 0 disables it.
        seed: Seed for the noise generator.
    """

    name = "mock"

    def __init__(self, config: Optional[LinalgConfig] = None, *, noise: float = 0.0, seed: int = 0):
        self.config = config or LinalgConfig()
        self.noise = noise
        self._generator = torch.Generator().manual_seed(seed)
        self.rotation_keys: set = set()
        self.keygen_calls: List[List[int]] = []
        self.calls: List[str] = []
        self.op_counts: Counter = Counter()

    def _record(self, op: str) -> None:
        self.calls.append(op)
        self.op_counts[op] += 1

    @property
    def slot_count(self) -> int:
        return self.config.num_slots

    @property
    def max_level(self) -> int:
        return self.config.mult_depth

    def encode(self, values: Sequence[float], level: Optional[int] = None) -> MockPlaintext:
        self._record("encode")
        flat = torch.as_tensor(values, dtype=torch.float64).reshape(-1)
        if flat.numel() > self.slot_count:
            raise ValueError(f"{flat.numel()} values exceed {self.slot_count} slots")
        padded = torch.zeros(self.slot_count, dtype=torch.float64)
        padded[: flat.numel()] = flat
        return MockPlaintext(padded, self.max_level if level is None else int(level))

    def decode(self, plaintext: MockPlaintext) -> torch.Tensor:
        self._record("decode")
        return plaintext.data.clone()

    def encrypt(self, plaintext: MockPlaintext) -> MockCipher:
        self._record("encrypt")
        data = plaintext.data.clone()
        if self.noise:
            data = data + torch.randn(data.shape, generator=self._generator, dtype=torch.float64) * self.noise
        return MockCipher(data, plaintext.level)

    def decrypt(self, cipher: MockCipher) -> MockPlaintext:
        self._record("decrypt")
        return MockPlaintext(cipher.data.clone(), cipher.level)

    def add(self, a: MockCipher, b: MockCipher) -> MockCipher:
        self._record("add")
        if a.level != b.level or a.scale_degree != b.scale_degree:
            raise RuntimeError("mock add: operands differ in level or scale")
        return MockCipher(a.data + b.data, a.level, a.scale_degree)

    def multiply_relin(self, a: MockCipher, b: MockCipher) -> MockCipher:
        self._record("multiply_relin")
        level = min(a.level, b.level)
        if level <= 0:
            raise RuntimeError("mock multiply: no levels left")
        return MockCipher(a.data * b.data, level, a.scale_degree + b.scale_degree)

    def rescale(self, cipher: MockCipher) -> MockCipher:
        self._record("rescale")
        if cipher.level <= 0:
            raise RuntimeError("mock rescale: no levels left")
        return MockCipher(cipher.data.clone(), cipher.level - 1, max(1, cipher.scale_degree - 1))

    def rotate(self, cipher: MockCipher, offset: int) -> MockCipher:
        self._record("rotate")
        if int(offset) not in self.rotation_keys:
            raise RuntimeError(f"mock rotate: no Galois key for offset {offset}")
        return MockCipher(torch.roll(cipher.data, shifts=-int(offset)), cipher.level, cipher.scale_degree)

    def generate_rotation_keys(self, offsets: Sequence[int]) -> None:
        self._record("keygen")
        self.keygen_calls.append([int(o) for o in offsets])
        self.rotation_keys.update(int(o) for o in offsets)

    def cipher_metadata(self, cipher: MockCipher) -> Dict[str, Any]:
        return {
            "level": cipher.level,
            "scale": float(2 ** self.config.scale_bits) ** cipher.scale_degree,
            "scale_degree": cipher.scale_degree,
        }
