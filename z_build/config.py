"""Environment-driven defaults for z-build.

Every value here is only a default: explicit options passed to
``configure()`` / ``build()`` / ``test()`` or CLI flags always win.
"""

from __future__ import annotations

import os
from pathlib import Path

MANIFEST_FILE = "vcpkg.json"
COMPONENTS_FILE = "components.json"
DEFAULT_BUILD_DIR = "build"
DEFAULT_BUILD_TYPE = "Debug"
BUILD_TYPES = ("Debug", "Release", "RelWithDebInfo", "MinSizeRel")

DEFAULT_TEST_TIMEOUT = 60.0  # seconds per test case
DEFAULT_DISCOVERY_TIMEOUT = 30.0  # seconds for --list-test-names-only


def default_triplet() -> str | None:
    """Triplet from ``Z_BUILD_DEFAULT_TRIPLET`` (falls back to ``VCPKG_DEFAULT_TRIPLET``)."""
    return os.environ.get("Z_BUILD_DEFAULT_TRIPLET") or os.environ.get("VCPKG_DEFAULT_TRIPLET")


def default_install_root() -> Path:
    root = os.environ.get("Z_BUILD_INSTALL_ROOT")
    if root:
        return Path(root)
    return Path.home() / ".cache" / "z-build" / "installed"


def default_registry() -> Path | None:
    registry = os.environ.get("Z_BUILD_REGISTRY")
    return Path(registry) if registry else None


def default_jobs() -> int:
    raw = os.environ.get("Z_BUILD_JOBS")
    if raw:
        try:
            return max(1, int(raw))
        except ValueError:
            pass
    return os.cpu_count() or 1


def default_test_timeout() -> float:
    return float(os.environ.get("Z_BUILD_TEST_TIMEOUT", DEFAULT_TEST_TIMEOUT))


def compiler_commands() -> dict[str, str]:
    """Compiler driver commands, honouring the usual ``CC``/``CXX``/``AR`` overrides."""
    return {
        "c": os.environ.get("CC", "cc"),
        "cxx": os.environ.get("CXX", "c++"),
        "ar": os.environ.get("AR", "ar"),
    }
