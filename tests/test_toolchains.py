"""Tests for CommandToolchain command lines (compiler invocations are mocked)."""

from __future__ import annotations

import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from z_build.build.toolchains import CommandToolchain
from z_build.exceptions import CompileFailure, ComponentNotComposed
from z_build.graph.composer import BuildGraphComposer
from z_build.graph.loader import ComponentDeclaration
from z_build.models.component import Component, ComponentKind, Dependency, Requirements, Scope

COMMANDS = {"c": "gcc", "cxx": "g++", "ar": "ar"}


@pytest.fixture
def graph(context):
    return BuildGraphComposer(context, "sdb").compose(
        [
            ComponentDeclaration(
                name="libsdb",
                kind=ComponentKind.STATIC_LIBRARY,
                sources=("/src/process.cpp", "/src/pipe.c"),
                exposed=Requirements(include_dirs=["/src/include"], features=["cxx_std_17"]),
                internal=Requirements(definitions=["SDB_INTERNAL"], features=["cxx_std_14"]),
            ),
            ComponentDeclaration(
                name="sdb",
                kind=ComponentKind.EXECUTABLE,
                sources=("/tools/sdb.cpp",),
                dependencies=(Dependency("libsdb", Scope.PRIVATE),),
            ),
            ComponentDeclaration(
                name="plugin",
                kind=ComponentKind.SHARED_LIBRARY,
                sources=("/plugin/plugin.cpp",),
            ),
            ComponentDeclaration(name="headers", kind=ComponentKind.INTERFACE_LIBRARY),
        ]
    )


@pytest.fixture
def toolchain():
    return CommandToolchain(build_type="Debug", commands=COMMANDS)


def _completed(returncode=0, stderr=""):
    return MagicMock(returncode=returncode, stdout="", stderr=stderr)


class TestCompileCommand:
    def test_cxx_source(self, graph, toolchain):
        lib = graph["libsdb"]
        cmd = toolchain.compile_command(lib, Path("/src/process.cpp"), Path("/obj/process.o"))
        assert cmd[0] == "g++"
        assert cmd[1:3] == ["-O0", "-g"]
        # highest requested standard wins
        assert "-std=c++17" in cmd
        assert "-I/src/include" in cmd
        assert "-DSDB_INTERNAL" in cmd
        assert cmd[-4:] == ["-c", "/src/process.cpp", "-o", "/obj/process.o"]

    def test_c_source_uses_c_driver(self, graph, toolchain):
        cmd = toolchain.compile_command(graph["libsdb"], Path("/src/pipe.c"), Path("/obj/pipe.o"))
        assert cmd[0] == "gcc"
        assert not any(flag.startswith("-std=") for flag in cmd)

    def test_consumer_inherits_exposed_only(self, graph, toolchain):
        cmd = toolchain.compile_command(graph["sdb"], Path("/tools/sdb.cpp"), Path("/o/sdb.o"))
        assert "-I/src/include" in cmd
        assert "-DSDB_INTERNAL" not in cmd

    def test_shared_library_is_position_independent(self, graph, toolchain):
        cmd = toolchain.compile_command(graph["plugin"], Path("/p.cpp"), Path("/p.o"))
        assert "-fPIC" in cmd

    def test_release_flags(self, graph):
        tc = CommandToolchain(build_type="Release", commands=COMMANDS)
        cmd = tc.compile_command(graph["sdb"], Path("/tools/sdb.cpp"), Path("/o/sdb.o"))
        assert "-O2" in cmd and "-DNDEBUG" in cmd


class TestLinkCommand:
    def test_static_library_archives(self, graph, toolchain):
        lib = graph["libsdb"]
        assert toolchain.link_command(lib, ["a.o", "b.o"]) == [
            "ar",
            "rcs",
            lib.artifact,
            "a.o",
            "b.o",
        ]

    def test_executable_links_dependencies(self, graph, toolchain):
        exe = graph["sdb"]
        cmd = toolchain.link_command(exe, ["sdb.o"])
        assert cmd == ["g++", "-o", exe.artifact, "sdb.o", graph["libsdb"].artifact]

    def test_shared_library(self, graph, toolchain):
        cmd = toolchain.link_command(graph["plugin"], ["p.o"])
        assert cmd[:2] == ["g++", "-shared"]


class TestBuild:
    def test_compiles_each_source_then_links(self, graph, toolchain):
        with patch("subprocess.run", return_value=_completed()) as run:
            artifact = toolchain.build(graph["libsdb"])
        assert artifact == Path(graph["libsdb"].artifact)
        tools = [call.args[0][0] for call in run.call_args_list]
        assert tools == ["g++", "gcc", "ar"]

    def test_interface_library_builds_nothing(self, graph, toolchain):
        with patch("subprocess.run") as run:
            assert toolchain.build(graph["headers"]) is None
        run.assert_not_called()

    def test_uncomposed_component(self, toolchain):
        component = Component(name="loose", kind=ComponentKind.EXECUTABLE, sources=["/a.cpp"])
        with pytest.raises(ComponentNotComposed, match="loose"):
            toolchain.compile_command(component, Path("/a.cpp"), Path("/a.o"))

    def test_compiler_error(self, graph, toolchain):
        with patch("subprocess.run", return_value=_completed(1, "process.cpp:3: error")):
            with pytest.raises(CompileFailure, match="process.cpp:3: error") as exc_info:
                toolchain.build(graph["libsdb"])
        assert exc_info.value.component == "libsdb"

    def test_missing_compiler(self, graph, toolchain):
        with patch("subprocess.run", side_effect=FileNotFoundError("g++")):
            with pytest.raises(CompileFailure, match="cannot run g\\+\\+"):
                toolchain.build(graph["sdb"])

    def test_timeout(self, graph, toolchain):
        with patch("subprocess.run", side_effect=subprocess.TimeoutExpired("g++", 600)):
            with pytest.raises(CompileFailure, match="timed out"):
                toolchain.build(graph["sdb"])
