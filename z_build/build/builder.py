"""Parallel build of a composed graph.

Every component gets one task. A task first waits for the tasks of its
project-local dependencies (the completion barrier of each edge), then
compiles under a shared semaphore sized to ``jobs``. If any dependency
failed or was skipped, the component is skipped as well; components that do
not depend on the failure keep building.
"""

from __future__ import annotations

import asyncio
import shutil
from dataclasses import dataclass, field

import structlog

from z_build.build.toolchains import Toolchain
from z_build.exceptions import CompileFailure, DiscoveryError
from z_build.models.component import Component, ComponentKind
from z_build.models.graph import BuildGraph
from z_build.models.testcase import TestCase
from z_build.progress import ProgressTracker
from z_build.testrun.discovery import TestDiscoveryRunner

log = structlog.get_logger("z_build.build")

BUILT = "built"
FAILED = "failed"
SKIPPED = "skipped"


@dataclass
class BuildResult:
    graph: BuildGraph
    artifacts: dict[str, str] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)
    skipped: dict[str, str] = field(default_factory=dict)  # name -> failed dependency
    tests: list[TestCase] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures and not self.skipped

    def first_failure(self) -> CompileFailure | None:
        for name, reason in self.failures.items():
            return CompileFailure(name, reason)
        return None


class Builder:
    """Build every component of a graph with bounded parallelism."""

    def __init__(
        self,
        graph: BuildGraph,
        toolchain: Toolchain,
        discovery: TestDiscoveryRunner | None = None,
        jobs: int = 1,
        verbose: bool = False,
        progress: ProgressTracker | None = None,
    ) -> None:
        self.graph = graph
        self.toolchain = toolchain
        self.discovery = discovery or TestDiscoveryRunner()
        self.jobs = max(1, jobs)
        self.verbose = verbose
        self.progress = progress or ProgressTracker()

    def build(self, clean: bool = False) -> BuildResult:
        output_dir = self.graph.context.output_dir
        if clean and output_dir.exists():
            log.info("build.clean", output_dir=str(output_dir))
            shutil.rmtree(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        result = BuildResult(graph=self.graph)
        self.progress.start_phase("compile")
        asyncio.run(self._build_all(result))
        if result.failures:
            self.progress.fail_phase("compile", f"{len(result.failures)} component(s) failed")
        else:
            self.progress.complete_phase("compile", f"{len(result.artifacts)} artifacts")

        self._discover(result)
        log.info(
            "build.done",
            ok=result.ok,
            built=sorted(result.artifacts),
            failed=sorted(result.failures),
            skipped=sorted(result.skipped),
            tests=len(result.tests),
        )
        return result

    async def _build_all(self, result: BuildResult) -> None:
        sem = asyncio.Semaphore(self.jobs)
        tasks: dict[str, asyncio.Task[str]] = {}

        async def build_one(component: Component) -> str:
            deps = self.graph.local_dependencies(component.name)
            statuses = await asyncio.gather(*(tasks[d] for d in deps))
            for dep, status in zip(deps, statuses):
                if status != BUILT:
                    result.skipped[component.name] = dep
                    log.warning("build.skipped", component=component.name, blocked_by=dep)
                    return SKIPPED
            async with sem:
                log.info("build.component", component=component.name, kind=component.kind.value)
                try:
                    artifact = await asyncio.to_thread(
                        self.toolchain.build, component, self.verbose
                    )
                except CompileFailure as e:
                    result.failures[component.name] = e.reason
                    log.error(
                        "build.failed",
                        component=component.name,
                        reason=e.reason,
                        blocks=sorted(self.graph.dependents(component.name)),
                    )
                    return FAILED
            if artifact is not None:
                result.artifacts[component.name] = str(artifact)
            return BUILT

        # Declaration order is topological, so every dependency task exists already.
        for component in self.graph:
            tasks[component.name] = asyncio.create_task(build_one(component))
        await asyncio.gather(*tasks.values())

    def _discover(self, result: BuildResult) -> None:
        binaries = [
            c for c in self.graph.of_kind(ComponentKind.TEST_BINARY) if c.name in result.artifacts
        ]
        if not binaries:
            self.progress.skip_phase("discover", "no test binaries built")
            return
        self.progress.start_phase("discover")
        for component in binaries:
            try:
                cases = self.discovery.discover(result.artifacts[component.name])
            except DiscoveryError as e:
                result.warnings.append(str(e))
                log.warning("build.discovery_failed", component=component.name, error=e.reason)
                continue
            result.tests.extend(cases)
        self.progress.complete_phase("discover", f"{len(result.tests)} test cases")
