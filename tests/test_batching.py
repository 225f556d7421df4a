"""Tests for slot packing."""

import pytest
import torch

from ckks_linalg.errors import EncodingOverflow, ShapeError


class TestSlotPacker:

    def test_pack_single_sample(self):
        from ckks_linalg.batching import SlotPacker

        packer = SlotPacker(slots_per_sample=4, total_slots=32)
        samples = [torch.tensor([1.0, 2.0, 3.0, 4.0])]

        packed = packer.pack(samples)

        assert packed.shape == (4,)
        torch.testing.assert_close(packed, samples[0].to(torch.float64))

    def test_pack_multiple_samples(self):
        from ckks_linalg.batching import SlotPacker

        packer = SlotPacker(slots_per_sample=4, total_slots=32)
        samples = [
            torch.tensor([1.0, 2.0, 3.0, 4.0]),
            torch.tensor([5.0, 6.0, 7.0, 8.0]),
            torch.tensor([9.0, 10.0, 11.0, 12.0]),
        ]

        packed = packer.pack(samples)

        expected = torch.arange(1, 13, dtype=torch.float64)
        torch.testing.assert_close(packed, expected)

    def test_pack_with_padding(self):
        from ckks_linalg.batching import SlotPacker

        packer = SlotPacker(slots_per_sample=5, total_slots=32)
        samples = [torch.tensor([1.0, 2.0, 3.0]), torch.tensor([4.0, 5.0, 6.0])]

        packed = packer.pack(samples)

        expected = torch.tensor([1.0, 2.0, 3.0, 0.0, 0.0, 4.0, 5.0, 6.0, 0.0, 0.0], dtype=torch.float64)
        torch.testing.assert_close(packed, expected)

    def test_offsets(self):
        from ckks_linalg.batching import SlotPacker

        packer = SlotPacker(slots_per_sample=6, total_slots=32)

        assert [packer.offset(i) for i in range(3)] == [0, 6, 12]
        assert packer.max_batch_size == 5

    def test_unpack_roundtrip(self):
        from ckks_linalg.batching import SlotPacker

        packer = SlotPacker(slots_per_sample=3, total_slots=32)
        samples = [torch.randn(3, dtype=torch.float64) for _ in range(4)]

        recovered = packer.unpack(packer.pack(samples), num_samples=4)

        for original, back in zip(samples, recovered):
            torch.testing.assert_close(back, original)

    def test_too_many_samples_overflows(self):
        from ckks_linalg.batching import SlotPacker

        packer = SlotPacker(slots_per_sample=10, total_slots=32)

        with pytest.raises(EncodingOverflow):
            packer.pack([torch.zeros(10) for _ in range(4)])

    def test_sample_wider_than_region_overflows(self):
        from ckks_linalg.batching import SlotPacker

        packer = SlotPacker(slots_per_sample=2, total_slots=32)

        with pytest.raises(EncodingOverflow):
            packer.pack([torch.zeros(3)])

    def test_region_wider_than_capacity_overflows(self):
        from ckks_linalg.batching import SlotPacker

        with pytest.raises(EncodingOverflow):
            SlotPacker(slots_per_sample=64, total_slots=32)

    def test_inconsistent_sizes_raise(self):
        from ckks_linalg.batching import SlotPacker

        packer = SlotPacker(slots_per_sample=4, total_slots=32)

        with pytest.raises(ShapeError, match="Inconsistent"):
            packer.pack([torch.zeros(4), torch.zeros(3)])

    def test_empty_raises(self):
        from ckks_linalg.batching import SlotPacker

        packer = SlotPacker(slots_per_sample=4, total_slots=32)

        with pytest.raises(ShapeError):
            packer.pack([])

    def test_invalid_construction(self):
        from ckks_linalg.batching import SlotPacker

        with pytest.raises(ValueError):
            SlotPacker(slots_per_sample=0, total_slots=32)
        with pytest.raises(ValueError):
            SlotPacker(slots_per_sample=4, total_slots=0)
