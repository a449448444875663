"""Tests for the parallel builder."""

from __future__ import annotations

from pathlib import Path

import pytest

from z_build.build.builder import Builder
from z_build.graph.composer import BuildGraphComposer
from z_build.graph.loader import ComponentDeclaration
from z_build.models.component import ComponentKind, Dependency, Scope
from z_build.progress import ProgressTracker
from z_build.testing import FakeToolchain


def _decl(name, kind, *deps):
    return ComponentDeclaration(
        name=name,
        kind=ComponentKind(kind),
        sources=(f"/src/{name}.cpp",),
        dependencies=tuple(Dependency(d, Scope.PRIVATE) for d in deps),
    )


@pytest.fixture
def graph(context):
    return BuildGraphComposer(context, "proj").compose(
        [
            _decl("core", "static-library"),
            _decl("util", "static-library"),
            _decl("app", "executable", "core"),
            _decl("core-tests", "test-binary", "core", "util"),
        ]
    )


class TestBuilder:
    def test_builds_everything(self, graph):
        toolchain = FakeToolchain(tests={"core-tests": ["one", "two"]})
        result = Builder(graph, toolchain, jobs=4).build()
        assert result.ok
        assert sorted(result.artifacts) == ["app", "core", "core-tests", "util"]
        assert all(Path(p).is_file() for p in result.artifacts.values())
        assert [c.name for c in result.tests] == ["one", "two"]

    def test_dependencies_built_first(self, graph):
        toolchain = FakeToolchain()
        Builder(graph, toolchain, jobs=4).build()
        calls = toolchain.calls
        assert calls.index("core") < calls.index("app")
        assert calls.index("util") < calls.index("core-tests")

    def test_failure_skips_dependents_only(self, graph):
        toolchain = FakeToolchain(failing={"core"})
        result = Builder(graph, toolchain, jobs=2).build()
        assert not result.ok
        assert result.failures == {"core": "fake compiler error"}
        assert result.skipped == {"app": "core", "core-tests": "core"}
        assert list(result.artifacts) == ["util"]
        assert "app" not in toolchain.calls
        assert str(result.first_failure()) == "Failed to build 'core': fake compiler error"

    def test_graph_dependents(self, graph):
        assert graph.dependents("core") == {"app", "core-tests"}
        assert graph.dependents("util") == {"core-tests"}
        assert graph.dependents("app") == set()

    def test_clean_removes_previous_outputs(self, graph):
        stale = graph.context.output_dir / "stale.o"
        stale.parent.mkdir(parents=True)
        stale.write_text("")
        Builder(graph, FakeToolchain()).build(clean=True)
        assert not stale.exists()

    def test_discovery_failure_is_a_warning(self, graph):
        class BrokenBinaries(FakeToolchain):
            def build(self, component, verbose=False):
                artifact = super().build(component, verbose)
                if component.kind == ComponentKind.TEST_BINARY:
                    artifact.write_text("#!/bin/sh\nexit 9\n")
                return artifact

        result = Builder(graph, BrokenBinaries()).build()
        assert result.ok
        assert result.tests == []
        assert len(result.warnings) == 1
        assert "exit code 9" in result.warnings[0]

    def test_progress_phases(self, graph):
        progress = ProgressTracker()
        Builder(graph, FakeToolchain(failing={"util"}), progress=progress).build()
        assert progress.get("compile").status == "failed"
        assert progress.get("discover").status == "skipped"
