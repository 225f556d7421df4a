"""Mock CKKS backend for testing without OpenFHE."""

from .mock_backend import (
    MockCipher,
    MockCKKSBackend,
    MockPlaintext,
)

__all__ = [
    "MockCipher",
    "MockCKKSBackend",
    "MockPlaintext",
]
