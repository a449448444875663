"""Tests for loading hierarchical components.json files."""

from __future__ import annotations

import pytest
from conftest import write_json

from z_build.exceptions import ManifestError
from z_build.graph.loader import load_project
from z_build.models.component import ComponentKind, Scope


@pytest.fixture
def project(tmp_path):
    root = tmp_path / "sdb"
    write_json(
        root / "components.json",
        {
            "namespace": "sdb",
            "include_dirs": ["common"],
            "definitions": ["PROJECT=1"],
            "subdirectories": ["src", "tools"],
        },
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
                    "alias": "sdb::libsdb",
                }
            ]
        },
    )
    (root / "src" / "process.cpp").write_text("")
    (root / "src" / "pipe.cpp").write_text("")
    write_json(
        root / "tools" / "components.json",
        {
            "definitions": ["TOOL=1"],
            "components": [
                {
                    "name": "sdb",
                    "kind": "executable",
                    "sources": ["sdb.cpp"],
                    "dependencies": {"private": ["sdb::libsdb", "editline::editline"]},
                }
            ],
        },
    )
    return root


class TestLoadProject:
    def test_declarations_in_depth_first_order(self, project):
        loaded = load_project(project)
        assert loaded.namespace == "sdb"
        assert [d.name for d in loaded.declarations] == ["libsdb", "sdb"]

    def test_sources_expanded_against_declaring_directory(self, project):
        lib = load_project(project).declarations[0]
        src = project.resolve() / "src"
        assert lib.sources == (str(src / "pipe.cpp"), str(src / "process.cpp"))
        assert lib.directory == "src"
        assert lib.kind == ComponentKind.STATIC_LIBRARY

    def test_public_and_private_requirements(self, project):
        lib = load_project(project).declarations[0]
        root = project.resolve()
        assert lib.exposed.include_dirs == [str(root / "include")]
        assert lib.exposed.features == ["cxx_std_17"]
        assert lib.internal.include_dirs == [str(root / "common"), str(root / "src")]

    def test_directory_scope_is_inherited_not_exposed(self, project):
        lib, exe = load_project(project).declarations
        assert lib.internal.definitions == ["PROJECT=1"]
        assert exe.internal.definitions == ["PROJECT=1", "TOOL=1"]
        assert exe.exposed.definitions == []

    def test_dependencies_keep_scope(self, project):
        exe = load_project(project).declarations[1]
        assert [(d.target, d.scope) for d in exe.dependencies] == [
            ("sdb::libsdb", Scope.PRIVATE),
            ("editline::editline", Scope.PRIVATE),
        ]

    def test_namespace_defaults_to_directory_name(self, tmp_path):
        root = tmp_path / "mylib"
        write_json(root / "components.json", {"components": []})
        assert load_project(root).namespace == "mylib"

    def test_imports_are_absolute(self, tmp_path):
        root = tmp_path / "app"
        write_json(root / "components.json", {"imports": ["../dep/share/dep/dep-targets.json"]})
        loaded = load_project(root)
        assert loaded.imports == [(tmp_path / "dep/share/dep/dep-targets.json").resolve()]


class TestLoadErrors:
    def test_missing_components_file(self, tmp_path):
        with pytest.raises(ManifestError, match="components file not found"):
            load_project(tmp_path)

    def test_missing_subdirectory_file(self, tmp_path):
        write_json(tmp_path / "components.json", {"subdirectories": ["lib"]})
        with pytest.raises(ManifestError, match="lib"):
            load_project(tmp_path)

    def test_unknown_key(self, tmp_path):
        write_json(
            tmp_path / "components.json",
            {"components": [{"name": "a", "kind": "executable", "visibility": "public"}]},
        )
        with pytest.raises(ManifestError):
            load_project(tmp_path)

    def test_interface_scope_requires_interface_library(self, tmp_path):
        write_json(
            tmp_path / "components.json",
            {
                "components": [
                    {
                        "name": "core",
                        "kind": "static-library",
                        "include_dirs": {"interface": ["include"]},
                    }
                ]
            },
        )
        with pytest.raises(ManifestError, match="interface libraries"):
            load_project(tmp_path)

    def test_interface_library_rejects_private_dependencies(self, tmp_path):
        write_json(
            tmp_path / "components.json",
            {
                "components": [
                    {
                        "name": "headers",
                        "kind": "interface-library",
                        "dependencies": {"private": ["fmt::fmt"]},
                    }
                ]
            },
        )
        with pytest.raises(ManifestError, match="private dependencies"):
            load_project(tmp_path)

    def test_interface_library_accepts_interface_scope(self, tmp_path):
        write_json(
            tmp_path / "components.json",
            {
                "components": [
                    {
                        "name": "headers",
                        "kind": "interface-library",
                        "include_dirs": {"interface": ["include"]},
                    }
                ]
            },
        )
        decl = load_project(tmp_path).declarations[0]
        assert decl.exposed.include_dirs == [str((tmp_path / "include").resolve())]
        assert decl.internal.include_dirs == []
