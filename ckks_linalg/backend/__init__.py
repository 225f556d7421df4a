"""
Homomorphic arithmetic backends.

Backends are selected by name. ``CKKS_LINALG_BACKEND`` overrides the default
(``openfhe``); a backend instance can also be passed straight to
:class:`ckks_linalg.CKKSLinalgContext`.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Callable, Dict, Optional

from ..errors import BackendUnavailable
from .base import CKKSBackend
from .openfhe_backend import OpenFHEBackend, is_openfhe_available

if TYPE_CHECKING:
    from ..context import LinalgConfig

BackendFactory = Callable[["LinalgConfig"], CKKSBackend]

_BACKENDS: Dict[str, BackendFactory] = {
    "openfhe": OpenFHEBackend,
}

DEFAULT_BACKEND = "openfhe"


def register_backend(name: str, factory: BackendFactory) -> None:
    """Make a backend factory selectable by name."""
    _BACKENDS[name.lower()] = factory


def available_backends() -> list:
    return sorted(_BACKENDS)


def create_backend(config: "LinalgConfig", name: Optional[str] = None) -> CKKSBackend:
    """Instantiate the named backend (or the environment/default one)."""
    name = (name or os.environ.get("CKKS_LINALG_BACKEND") or DEFAULT_BACKEND).lower()
    if name not in _BACKENDS:
        raise BackendUnavailable(
            f"Unknown backend {name!r}. Available: {', '.join(available_backends())}"
        )
    return _BACKENDS[name](config)


__all__ = [
    "CKKSBackend",
    "OpenFHEBackend",
    "BackendFactory",
    "DEFAULT_BACKEND",
    "available_backends",
    "create_backend",
    "is_openfhe_available",
    "register_backend",
]
