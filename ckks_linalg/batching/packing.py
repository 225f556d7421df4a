"""
Slot packing utilities for batched matrix-vector products.

This module packs several slot payloads of equal width into one slot vector,
so a single ciphertext can carry a whole batch of tiled vectors.
"""

from __future__ import annotations

from typing import List, Sequence

import torch

from ..errors import EncodingOverflow, ShapeError


class SlotPacker:
    """Packs multiple payloads into CKKS slots for batch processing.

    CKKS ciphertexts have a fixed number of "slots" (N/2 for ring degree N).
    Each payload gets a region of ``slots_per_sample`` consecutive slots:
    payload ``i`` starts at slot ``i * slots_per_sample``. Keeping the
    region width equal to the matrix payload width (k*n) keeps every
    column block aligned across the batch.

    Example:
        >>> packer = SlotPacker(slots_per_sample=12, total_slots=8192)
        >>> packed = packer.pack([tile(v, 3) for v in vectors])
        >>> packer.offset(2)
        24
    """

    def __init__(self, slots_per_sample: int, total_slots: int):
        """Initialize the SlotPacker.

        Args:
            slots_per_sample: Number of slots each payload occupies.
            total_slots: Total number of slots available in the ciphertext.

        Raises:
            ValueError: If slots_per_sample <= 0 or total_slots <= 0.
            EncodingOverflow: If a single payload cannot fit at all.
        """
        if slots_per_sample <= 0:
            raise ValueError(f"slots_per_sample must be positive, got {slots_per_sample}")
        if total_slots <= 0:
            raise ValueError(f"total_slots must be positive, got {total_slots}")
        if slots_per_sample > total_slots:
            raise EncodingOverflow(slots_per_sample, total_slots, "packed sample")

        self.slots_per_sample = slots_per_sample
        self.total_slots = total_slots

    @property
    def max_batch_size(self) -> int:
        """Maximum number of payloads that can be packed."""
        return self.total_slots // self.slots_per_sample

    def offset(self, index: int) -> int:
        """First slot of payload ``index``."""
        return index * self.slots_per_sample

    def pack(self, samples: Sequence[torch.Tensor]) -> torch.Tensor:
        """Pack payloads contiguously into a single slot vector.

        Payloads shorter than ``slots_per_sample`` are zero padded.

        Raises:
            ShapeError: If samples is empty or payload sizes differ.
            EncodingOverflow: If there are too many payloads or one is too wide.
        """
        if not samples:
            raise ShapeError("Cannot pack empty list of samples")

        num_samples = len(samples)
        if num_samples > self.max_batch_size:
            raise EncodingOverflow(
                num_samples * self.slots_per_sample, self.total_slots, f"batch of {num_samples}"
            )

        flat_samples: List[torch.Tensor] = []
        sample_size: int | None = None

        for i, sample in enumerate(samples):
            flat = torch.as_tensor(sample).detach().to(dtype=torch.float64, device="cpu").reshape(-1)

            if flat.numel() > self.slots_per_sample:
                raise EncodingOverflow(flat.numel(), self.slots_per_sample, f"sample {i}")

            if sample_size is None:
                sample_size = flat.numel()
            elif flat.numel() != sample_size:
                raise ShapeError(
                    f"Inconsistent sample sizes: sample 0 has {sample_size} elements, "
                    f"sample {i} has {flat.numel()} elements"
                )

            if flat.numel() < self.slots_per_sample:
                padded = torch.zeros(self.slots_per_sample, dtype=torch.float64)
                padded[: flat.numel()] = flat
                flat_samples.append(padded)
            else:
                flat_samples.append(flat)

        return torch.cat(flat_samples, dim=0)

    def unpack(self, packed: torch.Tensor, num_samples: int) -> List[torch.Tensor]:
        """Split a slot vector back into ``num_samples`` payload regions."""
        if num_samples <= 0:
            raise ValueError(f"num_samples must be positive, got {num_samples}")
        if num_samples > self.max_batch_size:
            raise ValueError(
                f"num_samples ({num_samples}) exceeds max batch size ({self.max_batch_size})"
            )

        required_slots = num_samples * self.slots_per_sample
        flat_packed = packed.detach().to(dtype=torch.float64).reshape(-1)
        if flat_packed.numel() < required_slots:
            raise ShapeError(
                f"Packed tensor has {flat_packed.numel()} elements, "
                f"but {required_slots} are required for {num_samples} samples"
            )

        return [
            flat_packed[self.offset(i) : self.offset(i) + self.slots_per_sample].clone()
            for i in range(num_samples)
        ]

    def __repr__(self) -> str:
        return (
            f"SlotPacker(slots_per_sample={self.slots_per_sample}, "
            f"total_slots={self.total_slots}, max_batch={self.max_batch_size})"
        )
