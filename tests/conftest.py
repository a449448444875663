"""Shared pytest fixtures for z-build tests."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from z_build.models.triplet import Triplet
from z_build.resolver.registry import PortRegistry
from z_build.testing import FakeInstaller
from z_build.toolchain import ToolchainContext

X64_LINUX = Triplet.parse("x64-linux")


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Keep host settings (triplet, install root, registry) out of the tests."""
    for var in (
        "Z_BUILD_DEFAULT_TRIPLET",
        "VCPKG_DEFAULT_TRIPLET",
        "Z_BUILD_REGISTRY",
        "Z_BUILD_PREFIX_PATH",
        "Z_BUILD_JOBS",
        "Z_BUILD_TEST_TIMEOUT",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("Z_BUILD_INSTALL_ROOT", str(tmp_path / "installed"))


@pytest.fixture
def registry():
    """A small port registry: catch2, fmt (two versions), spdlog -> fmt, editline."""
    reg = PortRegistry()
    reg.add("catch2", "3.5.2", targets={"Catch2::Catch2": {"libraries": ["Catch2"]}})
    reg.add("fmt", "9.1.0")
    reg.add("fmt", "10.2.1")
    reg.add(
        "spdlog",
        "1.13.0",
        dependencies=[{"name": "fmt", "version>=": "9.0.0"}],
        features={"wchar": []},
    )
    reg.add("editline", "1.17.1", targets={"editline::editline": {"libraries": ["edit"]}})
    return reg


@pytest.fixture
def installer():
    return FakeInstaller()


@pytest.fixture
def install_root(tmp_path):
    return tmp_path / "installed"


@pytest.fixture
def context(tmp_path):
    """Root toolchain context for an empty project (no packages)."""
    source = tmp_path / "src"
    source.mkdir()
    return ToolchainContext(
        triplet=X64_LINUX,
        build_type="Debug",
        source_root=source,
        build_dir=source / "build",
        install_root=tmp_path / "installed",
    )


def write_json(path: Path, data) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2))
    return path


def snapshot_tree(root: Path) -> dict[str, tuple[int, int]]:
    """Map every path under *root* to (mtime_ns, size) to detect filesystem writes."""
    result = {}
    for path in sorted(root.rglob("*")):
        st = path.stat()
        result[str(path.relative_to(root))] = (st.st_mtime_ns, st.st_size)
    return result


def write_sdb_project(root: Path, dependencies=("editline", "catch2")) -> Path:
    """A small project: library + executable (uses editline) + Catch2 test binary."""
    write_json(root / "vcpkg.json", {"name": "sdb", "dependencies": list(dependencies)})
    write_json(
        root / "components.json",
        {"namespace": "sdb", "subdirectories": ["src", "tools", "test"]},
    )
    write_json(
        root / "src" / "components.json",
        {
            "components": [
                {
                    "name": "libsdb",
                    "kind": "static-library",
                    "sources": ["*.cpp"],
                    "include_dirs": {"public": ["../include"], "private": ["."]},
                    "features": {"public": ["cxx_std_17"]},
                }
            ]
        },
    )
    write_json(
        root / "tools" / "components.json",
        {
            "components": [
                {
                    "name": "sdb",
                    "kind": "executable",
                    "sources": ["sdb.cpp"],
                    "dependencies": {"private": ["sdb::libsdb", "editline::editline"]},
                }
            ]
        },
    )
    write_json(
        root / "test" / "components.json",
        {
            "components": [
                {
                    "name": "sdb-tests",
                    "kind": "test-binary",
                    "sources": ["tests.cpp"],
                    "dependencies": {"private": ["sdb::libsdb", "Catch2::Catch2"]},
                }
            ]
        },
    )
    (root / "include" / "libsdb").mkdir(parents=True)
    (root / "include" / "libsdb" / "process.hpp").write_text("#pragma once\n")
    (root / "src" / "process.cpp").write_text("")
    (root / "tools" / "sdb.cpp").write_text("")
    (root / "test" / "tests.cpp").write_text("")
    return root
