"""
Batching utilities for encrypted matrix-vector products.

This module provides tools for packing several independent slot payloads
(e.g. tiled vectors) into a single CKKS ciphertext, so that one ciphertext
multiplication and one rotate-sum reduction serve the whole batch.

Classes:
    SlotPacker: Pack/unpack multiple payloads into CKKS slots.
"""

from .packing import SlotPacker

__all__ = ["SlotPacker"]
