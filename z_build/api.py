"""Library entry points: configure -> build -> test / export.

    graph = configure("path/to/project", ConfigureOptions(build_type="Release"))
    result = build(graph, BuildOptions(jobs=8))
    report = test(result, TestOptions(filter="parses*"))
    descriptor = export(graph, result, "/opt/sdb")

Configuration fails fast: any resolution or composition error propagates and
no partial graph is returned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path

from z_build import config
from z_build.build.builder import Builder, BuildResult
from z_build.build.toolchains import CommandToolchain, Toolchain
from z_build.exceptions import (
    CompileFailure,
    CompositionError,
    ResolutionError,
    ZBuildError,
)
from z_build.graph.composer import BuildGraphComposer
from z_build.graph.loader import load_project
from z_build.models.graph import BuildGraph
from z_build.models.testcase import TestReport
from z_build.packaging.exporter import Exporter, load_descriptor
from z_build.progress import ProgressTracker
from z_build.resolver.installer import PackageInstaller
from z_build.resolver.registry import PortRegistry
from z_build.schemas.descriptor import ExportDescriptor
from z_build.testrun.discovery import TestDiscoveryRunner
from z_build.testrun.runner import TestRunner
from z_build.toolchain import RootConfig, ToolchainInjector

logger = logging.getLogger(__name__)


class ExitCode(IntEnum):
    SUCCESS = 0
    FAILURE = 1
    RESOLUTION = 3
    COMPOSITION = 4
    COMPILE = 5
    TEST = 6

    @classmethod
    def for_error(cls, exc: BaseException) -> ExitCode:
        if isinstance(exc, ResolutionError):
            return cls.RESOLUTION
        if isinstance(exc, CompositionError):
            return cls.COMPOSITION
        if isinstance(exc, CompileFailure):
            return cls.COMPILE
        return cls.FAILURE


# ── Options ───────────────────────────────────────────────────────────────


@dataclass
class ConfigureOptions:
    toolchain: str = "auto"
    build_type: str = config.DEFAULT_BUILD_TYPE
    triplet: str | None = None
    install_root: Path | None = None
    registry: PortRegistry | Path | None = None
    build_dir: Path | None = None
    namespace: str | None = None
    installer: PackageInstaller | None = None


@dataclass
class BuildOptions:
    jobs: int | None = None
    verbose: bool = False
    clean: bool = False
    toolchain: Toolchain | None = None
    discovery: TestDiscoveryRunner | None = None


@dataclass
class TestOptions:
    __test__ = False

    filter: str | None = None
    timeout: float | None = None
    jobs: int | None = None


# ── Entry points ──────────────────────────────────────────────────────────


def configure(
    source_root: str | Path,
    options: ConfigureOptions | None = None,
    progress: ProgressTracker | None = None,
) -> BuildGraph:
    """Select the toolchain, resolve dependencies and compose the build graph.

    Raises:
        ResolutionError: the manifest is invalid or cannot be satisfied.
        CompositionError: the component declarations do not form a valid graph.
    """
    options = options or ConfigureOptions()
    progress = progress or ProgressTracker()

    injector = ToolchainInjector(installer=options.installer, progress=progress)
    with progress.track("toolchain") as phase:
        context = injector.apply(
            RootConfig(
                source_root=Path(source_root),
                triplet=options.triplet,
                build_type=options.build_type,
                toolchain=options.toolchain,
                install_root=options.install_root,
                registry=options.registry,
                build_dir=options.build_dir,
            )
        )
        phase.detail = f"{context.triplet} {context.build_type}"

    with progress.track("compose") as phase:
        project = load_project(context.source_root, options.namespace)
        imports = [load_descriptor(path) for path in project.imports]
        composer = BuildGraphComposer(context, project.namespace, imports)
        graph = composer.compose(project.declarations)
        phase.detail = f"{len(graph)} components"
    return graph


def build(
    graph: BuildGraph,
    options: BuildOptions | None = None,
    progress: ProgressTracker | None = None,
) -> BuildResult:
    """Compile every component; failures are recorded on the result, not raised."""
    options = options or BuildOptions()
    toolchain = options.toolchain or _toolchain_for(graph)
    builder = Builder(
        graph,
        toolchain,
        discovery=options.discovery,
        jobs=options.jobs or config.default_jobs(),
        verbose=options.verbose,
        progress=progress,
    )
    return builder.build(clean=options.clean)


def test(
    result: BuildResult,
    options: TestOptions | None = None,
    progress: ProgressTracker | None = None,
) -> TestReport:
    """Run the test cases discovered during ``build()``."""
    options = options or TestOptions()
    progress = progress or ProgressTracker()
    runner = TestRunner(timeout=options.timeout, jobs=options.jobs)
    with progress.track("test") as phase:
        report = runner.run(result.tests, options.filter)
        phase.detail = f"{len(report.passed)}/{report.total} passed"
    return report


test.__test__ = False  # type: ignore[attr-defined]


def export(
    graph: BuildGraph,
    result: BuildResult,
    install_root: str | Path,
    progress: ProgressTracker | None = None,
) -> ExportDescriptor:
    """Install the built artifacts under *install_root* and write the descriptor.

    Raises:
        CompileFailure: the build did not succeed; nothing is exported.
    """
    failure = result.first_failure()
    if failure is not None:
        raise failure
    if not result.ok:
        raise ZBuildError(f"Build incomplete; skipped: {', '.join(sorted(result.skipped))}")
    progress = progress or ProgressTracker()
    with progress.track("export") as phase:
        descriptor = Exporter(graph, install_root).export(result.artifacts)
        phase.detail = f"{len(descriptor.targets)} targets"
    return descriptor


def _toolchain_for(graph: BuildGraph) -> Toolchain:
    name = graph.context.toolchain
    if name in ("auto", "command"):
        return CommandToolchain(build_type=graph.context.build_type)
    raise ZBuildError(f"Unknown toolchain '{name}' (expected 'auto' or 'command')")
