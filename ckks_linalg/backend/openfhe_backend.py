"""
CKKS backend on top of the ``openfhe`` Python bindings.

The crypto context uses ``FIXEDMANUAL`` scaling so rescaling is an explicit
step, matching the kernel's encode -> encrypt -> multiply -> rescale -> rotate
ordering. ``openfhe`` is imported lazily: importing ckks_linalg never loads
the native extension.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional, Sequence

import torch

from ..errors import BackendUnavailable
from .base import CKKSBackend

if TYPE_CHECKING:
    from ..context import LinalgConfig

logger = logging.getLogger(__name__)

_openfhe = None


def _load_openfhe():
    global _openfhe
    if _openfhe is not None:
        return _openfhe
    try:
        import openfhe
    except ImportError as exc:
        raise BackendUnavailable(
            "OpenFHE backend not available. Please install it:\n"
            "  pip install 'ckks-linalg[openfhe]'"
        ) from exc
    _openfhe = openfhe
    return _openfhe


def is_openfhe_available() -> bool:
    """Check whether the openfhe bindings can be imported."""
    try:
        _load_openfhe()
    except BackendUnavailable:
        return False
    return True


_SECURITY_LEVELS = {
    "128_classic": "HEStd_128_classic",
    "192_classic": "HEStd_192_classic",
    "256_classic": "HEStd_256_classic",
    "128_quantum": "HEStd_128_quantum",
    "192_quantum": "HEStd_192_quantum",
    "256_quantum": "HEStd_256_quantum",
    "notset": "HEStd_NotSet",
    "none": "HEStd_NotSet",
    "off": "HEStd_NotSet",
}


def _security_level(openfhe: Any, level: Optional[str]) -> Any:
    key = "notset" if level is None else str(level).lower()
    if key not in _SECURITY_LEVELS:
        raise ValueError(
            "Unknown security level. Use one of: " + ", ".join(sorted(_SECURITY_LEVELS.keys()))
        )
    return getattr(openfhe.SecurityLevel, _SECURITY_LEVELS[key])


class OpenFHEBackend(CKKSBackend):
    """CKKS RNS backend using OpenFHE.

    Key material (secret, public, relinearization and Galois keys) lives in
    the OpenFHE crypto context created here and never leaves this object.
    """

    name = "openfhe"

    def __init__(self, config: "LinalgConfig"):
        openfhe = _load_openfhe()
        self.config = config

        try:
            cc = openfhe.GenCryptoContext(self._params(openfhe, config, pin_ring_dim=True))
        except RuntimeError as exc:
            if config.security_level is None:
                raise BackendUnavailable(f"OpenFHE rejected the CKKS parameters: {exc}") from exc
            # ring too small for the modulus chain at this security level
            logger.warning(
                "Ring dimension %d is not secure for depth %d at %s, letting OpenFHE choose",
                config.poly_mod_degree, config.mult_depth, config.security_level,
            )
            try:
                cc = openfhe.GenCryptoContext(self._params(openfhe, config, pin_ring_dim=False))
            except RuntimeError as retry_exc:
                raise BackendUnavailable(
                    f"OpenFHE rejected the CKKS parameters: {retry_exc}"
                ) from retry_exc
        cc.Enable(openfhe.PKESchemeFeature.PKE)
        cc.Enable(openfhe.PKESchemeFeature.KEYSWITCH)
        cc.Enable(openfhe.PKESchemeFeature.LEVELEDSHE)

        self._cc = cc
        self._keys = cc.KeyGen()
        cc.EvalMultKeyGen(self._keys.secretKey)
        self._depth = int(config.mult_depth)
        self._slots = int(config.batch_size or cc.GetRingDimension() // 2)
        logger.info(
            "OpenFHE CKKS context ready: ring_dim=%d slots=%d depth=%d",
            cc.GetRingDimension(), self._slots, self._depth,
        )

    @staticmethod
    def _params(openfhe: Any, config: "LinalgConfig", pin_ring_dim: bool) -> Any:
        params = openfhe.CCParamsCKKSRNS()
        params.SetMultiplicativeDepth(int(config.mult_depth))
        params.SetScalingModSize(int(config.scale_bits))
        params.SetFirstModSize(int(config.first_mod_bits))
        params.SetScalingTechnique(openfhe.ScalingTechnique.FIXEDMANUAL)
        params.SetSecurityLevel(_security_level(openfhe, config.security_level))
        if pin_ring_dim:
            params.SetRingDim(int(config.poly_mod_degree))
        if config.batch_size:
            params.SetBatchSize(int(config.batch_size))
        return params

    @property
    def slot_count(self) -> int:
        return self._slots

    @property
    def max_level(self) -> int:
        return self._depth

    def encode(self, values: Sequence[float], level: Optional[int] = None) -> Any:
        # OpenFHE counts levels consumed, the kernel counts levels remaining
        consumed = 0 if level is None else self._depth - int(level)
        flat = torch.as_tensor(values, dtype=torch.float64).reshape(-1).tolist()
        return self._cc.MakeCKKSPackedPlaintext(flat, 1, consumed)

    def decode(self, plaintext: Any) -> torch.Tensor:
        plaintext.SetLength(self._slots)
        return torch.tensor(plaintext.GetRealPackedValue(), dtype=torch.float64)

    def encrypt(self, plaintext: Any) -> Any:
        return self._cc.Encrypt(self._keys.publicKey, plaintext)

    def decrypt(self, cipher: Any) -> Any:
        return self._cc.Decrypt(cipher, self._keys.secretKey)

    def add(self, a: Any, b: Any) -> Any:
        return self._cc.EvalAdd(a, b)

    def multiply_relin(self, a: Any, b: Any) -> Any:
        # EvalMult relinearizes when an EvalMult key is present
        return self._cc.EvalMult(a, b)

    def rescale(self, cipher: Any) -> Any:
        return self._cc.Rescale(cipher)

    def rotate(self, cipher: Any, offset: int) -> Any:
        return self._cc.EvalRotate(cipher, int(offset))

    def generate_rotation_keys(self, offsets: Sequence[int]) -> None:
        offsets = [int(o) for o in offsets]
        if offsets:
            self._cc.EvalRotateKeyGen(self._keys.secretKey, offsets)

    def cipher_metadata(self, cipher: Any) -> Dict[str, Any]:
        return {
            "level": self._depth - int(cipher.GetLevel()),
            "scale": float(cipher.GetScalingFactor()),
            "scale_degree": int(cipher.GetNoiseScaleDeg()),
        }
