"""Test doubles for z_build: use in integration tests and downstream tooling.

Usage::

    from z_build.testing import FakeInstaller, FakeToolchain

    graph = configure(root, ConfigureOptions(installer=FakeInstaller()))
    result = build(graph, BuildOptions(toolchain=FakeToolchain(failing={"core"})))
"""

from __future__ import annotations

import stat
import threading
from pathlib import Path
from typing import Iterable

from z_build.exceptions import CompileFailure, InstallIOFailure
from z_build.models.component import Component, ComponentKind
from z_build.models.triplet import Triplet
from z_build.resolver.registry import PortSpec
from z_build.testrun.discovery import LIST_FLAG, escape_test_name


def _sh_quote(text: str) -> str:
    return "'" + text.replace("'", "'\\''") + "'"


def write_fake_test_binary(
    path: str | Path,
    cases: Iterable[str],
    failing: Iterable[str] = (),
    hanging: Iterable[str] = (),
    list_exit_code: int = 0,
    list_stderr: str = "",
) -> Path:
    """Write a shell script that behaves like a Catch2 test binary.

    ``--list-test-names-only`` prints *cases*; invoked with an escaped case
    name it exits 0, or 1 for names in *failing*, or sleeps for names in
    *hanging*. *list_exit_code* and *list_stderr* shape the listing run.
    """
    path = Path(path)
    cases = list(cases)
    failing, hanging = set(failing), set(hanging)
    lines = [
        "#!/bin/sh",
        f'if [ "$1" = "{LIST_FLAG}" ]; then',
        *(f"  printf '%s\\n' {_sh_quote(name)}" for name in cases),
        *([f"  echo {_sh_quote(list_stderr)} >&2"] if list_stderr else []),
        f"  exit {list_exit_code}",
        "fi",
        'case "$1" in',
    ]
    for name in cases:
        if name in hanging:
            action = "exec sleep 30"
        elif name in failing:
            action = f"echo {_sh_quote('FAILED: ' + name)}; exit 1"
        else:
            action = f"echo {_sh_quote('passed: ' + name)}; exit 0"
        lines.append(f"  {_sh_quote(escape_test_name(name))}) {action} ;;")
    lines += ["esac", "echo 'No test cases matched' >&2", "exit 2", ""]
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines))
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


class FakeToolchain:
    """Drop-in :class:`~z_build.build.toolchains.Toolchain` that writes placeholder artifacts.

    Parameters
    ----------
    failing:
        Component names whose build raises :class:`CompileFailure`.
    tests:
        Test-binary name -> case names; those binaries become runnable fake
        Catch2 scripts (see :func:`write_fake_test_binary`).
    """

    def __init__(
        self,
        failing: Iterable[str] = (),
        tests: dict[str, list[str]] | None = None,
    ) -> None:
        self.failing = set(failing)
        self.tests = tests or {}
        self._lock = threading.Lock()
        self._calls: list[str] = []

    @property
    def calls(self) -> list[str]:
        """Component names built, in completion order."""
        return self._calls

    def build(self, component: Component, verbose: bool = False) -> Path | None:
        with self._lock:
            self._calls.append(component.name)
        if component.name in self.failing:
            raise CompileFailure(component.name, "fake compiler error")
        if not component.kind.produces_artifact or component.artifact is None:
            return None
        artifact = Path(component.artifact)
        if component.kind == ComponentKind.TEST_BINARY:
            return write_fake_test_binary(artifact, self.tests.get(component.name, []))
        artifact.parent.mkdir(parents=True, exist_ok=True)
        artifact.write_text(f"{component.kind.value}:{component.name}\n")
        return artifact


class FakeInstaller:
    """Drop-in :class:`~z_build.resolver.installer.PackageInstaller` that records installs.

    Writes one header and one library file per package so install paths are
    real directories; names in *failing* raise :class:`InstallIOFailure`.
    """

    def __init__(self, failing: Iterable[str] = ()) -> None:
        self.failing = set(failing)
        self._lock = threading.Lock()
        self._calls: list[tuple[str, str, str, frozenset[str]]] = []

    @property
    def calls(self) -> list[tuple[str, str, str, frozenset[str]]]:
        """``(name, version, triplet, features)`` for every install performed."""
        return self._calls

    def install(
        self,
        port: PortSpec,
        triplet: Triplet,
        features: frozenset[str],
        destination: Path,
    ) -> None:
        with self._lock:
            self._calls.append((port.name, str(port.version), str(triplet), features))
        if port.name in self.failing:
            raise InstallIOFailure(port.name, str(port.version), str(triplet), "fake I/O error")
        (destination / "include" / port.name).mkdir(parents=True, exist_ok=True)
        (destination / "include" / port.name / f"{port.name}.h").write_text(
            f"/* {port.name} {port.version} */\n"
        )
        (destination / "lib").mkdir(exist_ok=True)
        (destination / "lib" / f"lib{port.name}.a").write_text("")
