"""
Dynamic setup.py that adds the homomorphic backend package as an optional
install extra when a prebuilt wheel is expected for this platform.

Environment variable overrides:
    CKKS_LINALG_BACKEND_PACKAGE=openfhe==1.2.3   Force a specific backend requirement
    CKKS_LINALG_NO_BACKEND=1                      Leave the backend extra empty

This file works alongside pyproject.toml (PEP 517).  setuptools reads
static metadata from pyproject.toml and merges the dynamic
extras_require produced here.
"""

import os
import platform
import sys
import warnings

from setuptools import setup

# Platforms with published openfhe wheels
_WHEEL_PLATFORMS = {
    ("Linux", "x86_64"),
    ("Linux", "aarch64"),
}


def _get_backend_dependency() -> list:
    """Return ``["openfhe"]`` when a wheel is expected, or ``[]``."""

    # ── Override: skip backend entirely ──────────────────────────────────
    if os.environ.get("CKKS_LINALG_NO_BACKEND", "").strip() in ("1", "true", "yes"):
        return []

    # ── Override: force specific requirement ─────────────────────────────
    forced = os.environ.get("CKKS_LINALG_BACKEND_PACKAGE", "").strip()
    if forced:
        if forced.startswith("openfhe"):
            return [forced]
        warnings.warn(
            f"CKKS_LINALG_BACKEND_PACKAGE={forced!r} is not an openfhe requirement, ignoring.",
            stacklevel=2,
        )
        return []

    # ── Auto-detect from platform ────────────────────────────────────────
    key = (platform.system(), platform.machine())
    if key not in _WHEEL_PLATFORMS:
        print(
            f"WARNING: no prebuilt openfhe wheel for {key[0]}/{key[1]}. "
            f"Build openfhe-python from source to use the OpenFHE backend.",
            file=sys.stderr,
        )
        return []

    return ["openfhe"]


setup(
    extras_require={
        "openfhe": _get_backend_dependency(),
        "test": ["pytest>=7.0"],
    },
)
