import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from mocks.mock_backend import MockCKKSBackend

from ckks_linalg import CKKSLinalgContext, LinalgConfig
from ckks_linalg.backend import is_openfhe_available, register_backend

# Small ring: 32 slots is plenty for the mock and keeps failures readable
MOCK_POLY_MOD_DEGREE = 64

register_backend("mock", MockCKKSBackend)


@pytest.fixture
def mock_config():
    return LinalgConfig(poly_mod_degree=MOCK_POLY_MOD_DEGREE, security_level=None)


@pytest.fixture
def mock_backend(mock_config):
    return MockCKKSBackend(mock_config)


@pytest.fixture
def mock_context(mock_backend):
    return CKKSLinalgContext(mock_backend.config, backend=mock_backend)


@pytest.fixture
def make_context():
    """Factory for mock contexts keyed for a given matrix row count."""

    def _make(rows=None, *, strategy="log", mult_depth=7, poly_mod_degree=MOCK_POLY_MOD_DEGREE, noise=0.0):
        from ckks_linalg.reduction import reduction_rotations

        config = LinalgConfig(
            poly_mod_degree=poly_mod_degree,
            mult_depth=mult_depth,
            security_level=None,
        )
        backend = MockCKKSBackend(config, noise=noise)
        rotations = reduction_rotations(rows, strategy=strategy) if rows else None
        return CKKSLinalgContext(config, backend=backend, rotations=rotations)

    return _make


# =============================================================================
# Real OpenFHE Backend Fixtures
# =============================================================================

requires_real_backend = pytest.mark.skipif(
    not is_openfhe_available(),
    reason="OpenFHE backend not available"
)


@pytest.fixture
def real_context():
    """Real OpenFHE context with the default depth-7 parameters."""
    if not is_openfhe_available():
        pytest.skip("OpenFHE backend not available")

    config = LinalgConfig(security_level=None)
    return CKKSLinalgContext(config, backend="openfhe", rotations=[1, 2, 3])
