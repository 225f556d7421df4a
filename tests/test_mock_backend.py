import pytest
import torch

from mocks.mock_backend import MockCKKSBackend

from ckks_linalg import LinalgConfig


@pytest.fixture
def backend():
    return MockCKKSBackend(LinalgConfig(poly_mod_degree=16, mult_depth=2, security_level=None))


class TestMockCKKSBackend:

    def test_encode_decode_roundtrip(self, backend):
        decoded = backend.decode(backend.encode([1.0, 2.0, 3.0]))

        assert decoded.shape == (8,)
        torch.testing.assert_close(decoded[:3], torch.tensor([1.0, 2.0, 3.0], dtype=torch.float64))
        assert torch.all(decoded[3:] == 0)

    def test_encrypt_starts_at_max_level(self, backend):
        ct = backend.encrypt(backend.encode([1.0]))

        assert backend.cipher_metadata(ct)["level"] == 2

    def test_multiply_then_rescale_consumes_one_level(self, backend):
        a = backend.encrypt(backend.encode([2.0, 3.0]))
        b = backend.encrypt(backend.encode([4.0, 5.0]))

        product = backend.multiply_relin(a, b)
        assert backend.cipher_metadata(product)["scale_degree"] == 2
        assert backend.cipher_metadata(product)["level"] == 2

        rescaled = backend.rescale(product)
        assert backend.cipher_metadata(rescaled) == {
            "level": 1,
            "scale": float(2 ** 45),
            "scale_degree": 1,
        }
        torch.testing.assert_close(
            backend.decode(backend.decrypt(rescaled))[:2], torch.tensor([8.0, 15.0], dtype=torch.float64)
        )

    def test_rotate_is_cyclic_left_shift(self, backend):
        backend.generate_rotation_keys([1])
        ct = backend.encrypt(backend.encode([1.0, 2.0, 3.0, 4.0, 5.0, 6.0, 7.0, 8.0]))

        rotated = backend.rotate(ct, 1)

        torch.testing.assert_close(
            backend.decode(backend.decrypt(rotated)),
            torch.tensor([2.0, 3.0, 4.0, 5.0, 6.0, 7.0, 8.0, 1.0], dtype=torch.float64),
        )

    def test_rotate_without_key_fails(self, backend):
        ct = backend.encrypt(backend.encode([1.0]))

        with pytest.raises(RuntimeError, match="Galois key"):
            backend.rotate(ct, 3)

    def test_operations_do_not_mutate_inputs(self, backend):
        backend.generate_rotation_keys([1])
        ct = backend.encrypt(backend.encode([1.0, 2.0]))
        before = ct.data.clone()

        backend.add(ct, ct)
        backend.rotate(ct, 1)
        backend.multiply_relin(ct, ct)

        torch.testing.assert_close(ct.data, before)

    def test_noise_is_small_and_seeded(self):
        config = LinalgConfig(poly_mod_degree=16, security_level=None)
        a = MockCKKSBackend(config, noise=1e-6, seed=3)
        b = MockCKKSBackend(config, noise=1e-6, seed=3)

        ct_a = a.encrypt(a.encode([1.0, 2.0]))
        ct_b = b.encrypt(b.encode([1.0, 2.0]))

        torch.testing.assert_close(ct_a.data, ct_b.data)
        assert not torch.equal(ct_a.data[:2], torch.tensor([1.0, 2.0], dtype=torch.float64))
        torch.testing.assert_close(ct_a.data[:2], torch.tensor([1.0, 2.0], dtype=torch.float64), atol=1e-4, rtol=0)

    def test_call_log(self, backend):
        backend.encrypt(backend.encode([1.0]))

        assert backend.calls == ["encode", "encrypt"]
        assert backend.op_counts["encode"] == 1
