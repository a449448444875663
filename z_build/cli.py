"""CLI entry point: z-build.

Subcommands:
    z-build configure [SOURCE]                # resolve dependencies, compose the graph
    z-build build [SOURCE] [-c] [-r] [-t] [-v] [-j N]
    z-build test [SOURCE] [--filter NAME]     # build, then run discovered test cases
    z-build resolve [SOURCE]                  # install the manifest's dependencies only
    z-build export [SOURCE] --prefix DIR      # build, then install + write the descriptor
    z-build triplet                           # print the triplet that would be used
"""

from __future__ import annotations

import functools
import sys
from pathlib import Path
from typing import Any, Callable

import click

from z_build import config
from z_build.api import (
    BuildOptions,
    ConfigureOptions,
    ExitCode,
    TestOptions,
    build,
    configure,
    export,
    test,
)
from z_build.build.builder import BuildResult
from z_build.core.logging import setup_logging
from z_build.exceptions import ZBuildError
from z_build.models.component import ComponentKind
from z_build.models.testcase import TestReport
from z_build.progress import ProgressTracker
from z_build.toolchain import RootConfig, ToolchainInjector, select_triplet

_ARTIFACT_LABELS = {
    ComponentKind.STATIC_LIBRARY: "Library",
    ComponentKind.SHARED_LIBRARY: "Library",
    ComponentKind.EXECUTABLE: "Executable",
    ComponentKind.TEST_BINARY: "Tests",
}


def _configure_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by every command that configures a project."""
    options = [
        click.argument("source", default=".", type=click.Path(exists=True, file_okay=False)),
        click.option("-r", "--release", is_flag=True, help="Release build (default: Debug)"),
        click.option("--build-type", default=None, type=click.Choice(config.BUILD_TYPES)),
        click.option("--triplet", default=None, help="Target triplet, e.g. x64-linux"),
        click.option("--install-root", default=None, type=click.Path(), help="Package root"),
        click.option("--registry", default=None, type=click.Path(), help="Port registry directory"),
        click.option("--build-dir", default=None, type=click.Path(), help="Build directory"),
    ]
    for option in reversed(options):
        fn = option(fn)
    return fn


def _configure_from(kwargs: dict[str, Any]) -> ConfigureOptions:
    build_type = kwargs.pop("build_type") or ("Release" if kwargs.pop("release") else None)
    kwargs.pop("release", None)
    return ConfigureOptions(
        build_type=build_type or config.DEFAULT_BUILD_TYPE,
        triplet=kwargs.pop("triplet"),
        install_root=_path(kwargs.pop("install_root")),
        registry=_path(kwargs.pop("registry")),
        build_dir=_path(kwargs.pop("build_dir")),
    )


def _path(value: str | None) -> Path | None:
    return Path(value) if value else None


def _handle_errors(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Report z-build errors on stderr and exit with their class's exit code."""

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except ZBuildError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(ExitCode.for_error(e))
        except ValueError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(ExitCode.FAILURE)

    return wrapper


@click.group()
@click.option("--log-verbose", is_flag=True, help="Debug-level logging")
def main(log_verbose: bool) -> None:
    """z-build: dependency resolution, component graph builds and test discovery."""
    setup_logging(verbose=log_verbose)


@main.command("configure")
@_configure_options
@_handle_errors
def configure_cmd(source: str, **kwargs: Any) -> None:
    """Resolve dependencies and compose the component graph."""
    progress = ProgressTracker()
    graph = configure(source, _configure_from(kwargs), progress=progress)
    context = graph.context
    click.echo("Configuration:")
    click.echo(f"  Source directory: {context.source_root}")
    click.echo(f"  Output directory: {context.output_dir}")
    click.echo(f"  Triplet: {context.triplet}")
    click.echo(f"  Build type: {context.build_type}")
    click.echo(f"  Packages: {', '.join(sorted(context.packages)) or '(none)'}")
    click.echo(f"\nComponents ({len(graph)}):")
    for component in graph:
        alias = f" [{component.alias}]" if component.alias else ""
        click.echo(f"  {component.name} ({component.kind.value}){alias}")
    _print_progress(progress)


@main.command("build")
@_configure_options
@click.option("-c", "--clean", is_flag=True, help="Clean build directory before building")
@click.option("-t", "--test", "run_tests", is_flag=True, help="Run tests after building")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
@click.option("-j", "--jobs", default=None, type=click.IntRange(min=1), help="Parallel jobs")
@_handle_errors
def build_cmd(
    source: str,
    clean: bool,
    run_tests: bool,
    verbose: bool,
    jobs: int | None,
    **kwargs: Any,
) -> None:
    """Configure and build the project (optionally run its tests)."""
    progress = ProgressTracker()
    graph = configure(source, _configure_from(kwargs), progress=progress)
    result = build(graph, BuildOptions(jobs=jobs, verbose=verbose, clean=clean), progress=progress)
    _print_artifacts(result)
    if not result.ok:
        click.echo("\nBuild failed!", err=True)
        _print_progress(progress)
        sys.exit(ExitCode.COMPILE)
    click.echo("\nBuild successful!")

    if run_tests:
        report = test(result, TestOptions(jobs=jobs), progress=progress)
        _print_report(report)
        if not report.ok:
            _print_progress(progress)
            sys.exit(ExitCode.TEST)
    _print_progress(progress)


@main.command("test")
@_configure_options
@click.option("--filter", "pattern", default=None, help="Exact test name or wildcard pattern")
@click.option("--timeout", default=None, type=float, help="Per-case timeout in seconds")
@click.option("-j", "--jobs", default=None, type=click.IntRange(min=1), help="Parallel jobs")
@_handle_errors
def test_cmd(
    source: str,
    pattern: str | None,
    timeout: float | None,
    jobs: int | None,
    **kwargs: Any,
) -> None:
    """Build the project and run its discovered test cases."""
    progress = ProgressTracker()
    graph = configure(source, _configure_from(kwargs), progress=progress)
    result = build(graph, BuildOptions(jobs=jobs), progress=progress)
    if not result.ok:
        _print_artifacts(result)
        sys.exit(ExitCode.COMPILE)
    for warning in result.warnings:
        click.echo(f"Warning: {warning}", err=True)
    options = TestOptions(filter=pattern, timeout=timeout, jobs=jobs)
    report = test(result, options, progress=progress)
    _print_report(report)
    if pattern and report.total == 0:
        click.echo(f"No test cases matched '{pattern}'", err=True)
        sys.exit(ExitCode.TEST)
    if not report.ok:
        sys.exit(ExitCode.TEST)


@main.command("resolve")
@_configure_options
@_handle_errors
def resolve_cmd(source: str, **kwargs: Any) -> None:
    """Install the manifest's dependencies for the selected triplet."""
    options = _configure_from(kwargs)
    injector = ToolchainInjector()
    context = injector.apply(
        RootConfig(
            source_root=Path(source),
            triplet=options.triplet,
            build_type=options.build_type,
            install_root=options.install_root,
            registry=options.registry,
            build_dir=options.build_dir,
        )
    )
    if context.plan is None:
        click.echo("No manifest found; nothing to resolve.")
        return
    click.echo(f"Install plan for {context.triplet}:")
    for entry in context.plan.entries:
        click.echo(f"  [{entry.action}] {entry.package.name} {entry.package.version}")
    click.echo(
        f"\n{len(context.plan.installed)} installed, {len(context.plan.skipped)} up to date"
        f" under {context.triplet_root}"
    )


@main.command("export")
@_configure_options
@click.option("--prefix", required=True, type=click.Path(), help="Install prefix")
@click.option("-j", "--jobs", default=None, type=click.IntRange(min=1), help="Parallel jobs")
@_handle_errors
def export_cmd(source: str, prefix: str, jobs: int | None, **kwargs: Any) -> None:
    """Build, install artifacts under PREFIX and write the export descriptor."""
    progress = ProgressTracker()
    graph = configure(source, _configure_from(kwargs), progress=progress)
    result = build(graph, BuildOptions(jobs=jobs), progress=progress)
    descriptor = export(graph, result, prefix, progress=progress)
    click.echo(f"Exported {len(descriptor.targets)} targets to {descriptor.install_root}:")
    for alias, entry in sorted(descriptor.targets.items()):
        click.echo(f"  {alias} ({entry.kind.value})")


@main.command("triplet")
@click.option("--triplet", default=None, help="Explicit override")
@_handle_errors
def triplet_cmd(triplet: str | None) -> None:
    """Print the triplet a configure would use."""
    click.echo(str(select_triplet(triplet)))


# ── Output helpers ──


def _print_artifacts(result: BuildResult) -> None:
    click.echo("\nBuild artifacts:")
    for component in result.graph:
        label = _ARTIFACT_LABELS.get(component.kind)
        if label is None:
            continue
        artifact = result.artifacts.get(component.name)
        if artifact and Path(artifact).is_file():
            size = _human_size(Path(artifact).stat().st_size)
            click.echo(f"  + {label}: {artifact} ({size})")
        elif component.name in result.failures:
            click.echo(f"  ! {label}: {component.name} FAILED: {result.failures[component.name]}")
        elif component.name in result.skipped:
            blocked_by = result.skipped[component.name]
            click.echo(f"  - {label}: {component.name} SKIPPED (depends on {blocked_by})")
        else:
            click.echo(f"  ! {label}: {component.name} NOT FOUND")
    for warning in result.warnings:
        click.echo(f"Warning: {warning}", err=True)


def _print_report(report: TestReport) -> None:
    click.echo(f"\nRunning tests ({report.total}):")
    for r in report.results:
        status = "passed" if r.passed else ("timeout" if r.timed_out else "FAILED")
        click.echo(f"  [{status}] {r.case.name} ({r.duration}s)")
        if not r.passed and (r.output or r.error):
            # mirrors ctest --output-on-failure
            for line in (r.output or r.error or "").rstrip().splitlines():
                click.echo(f"      {line}")
    if report.ok:
        click.echo("All tests passed!")
    else:
        click.echo(f"{len(report.failed)} of {report.total} tests failed!")


def _print_progress(progress: ProgressTracker) -> None:
    summary = progress.get_summary()
    click.echo(f"\nPipeline summary (total: {summary['total_duration']}s):")
    for p in summary["phases"]:
        status_icon = {
            "completed": "+",
            "failed": "!",
            "skipped": "-",
            "running": "~",
            "pending": ".",
        }.get(p["status"], "?")
        duration = f" ({p['duration']}s)" if p["duration"] else ""
        detail = f" - {p['detail']}" if p["detail"] else ""
        click.echo(f"  [{status_icon}] {p['phase']}{duration}{detail}")


def _human_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "K", "M", "G"):
        if value < 1024 or unit == "G":
            return f"{value:.0f}{unit}" if unit == "B" else f"{value:.1f}{unit}"
        value /= 1024
    return f"{size}B"


if __name__ == "__main__":
    main()
