"""Toolchains: turn one finalized component into its artifact.

The builder only depends on the :class:`Toolchain` protocol. The bundled
:class:`CommandToolchain` drives a gcc/clang-compatible ``cc``/``c++`` plus
``ar``; anything more elaborate (MSVC, ninja, remote execution) plugs in
behind the same protocol.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Protocol

from z_build import config
from z_build.exceptions import CompileFailure
from z_build.models.component import Component, ComponentKind

logger = logging.getLogger(__name__)

_C_SUFFIXES = {".c"}
_BUILD_TYPE_FLAGS = {
    "Debug": ["-O0", "-g"],
    "Release": ["-O2", "-DNDEBUG"],
    "RelWithDebInfo": ["-O2", "-g", "-DNDEBUG"],
    "MinSizeRel": ["-Os", "-DNDEBUG"],
}


class Toolchain(Protocol):
    def build(self, component: Component, verbose: bool = False) -> Path | None:
        """Produce ``component.artifact``; return its path (None if nothing is built).

        Raises:
            CompileFailure: compilation or linking failed.
        """
        ...


class CommandToolchain:
    """Compile and link with command-line compiler drivers."""

    def __init__(
        self,
        build_type: str = config.DEFAULT_BUILD_TYPE,
        commands: dict[str, str] | None = None,
        timeout: float = 600,
    ) -> None:
        self.build_type = build_type
        self.commands = commands or config.compiler_commands()
        self.timeout = timeout

    def build(self, component: Component, verbose: bool = False) -> Path | None:
        if not component.kind.produces_artifact or component.artifact is None:
            return None
        if not component.sources:
            raise CompileFailure(component.name, "no sources")

        artifact = Path(component.artifact)
        object_dir = artifact.parent / f"{component.name}.dir"
        object_dir.mkdir(parents=True, exist_ok=True)

        objects = []
        for source in component.sources:
            obj = object_dir / (Path(source).name + ".o")
            self._run(component, self.compile_command(component, Path(source), obj), verbose)
            objects.append(str(obj))
        self._run(component, self.link_command(component, objects), verbose)
        return artifact

    def compile_command(self, component: Component, source: Path, obj: Path) -> list[str]:
        usage = component.require_usage()
        is_c = source.suffix in _C_SUFFIXES
        cmd = [self.commands["c" if is_c else "cxx"]]
        cmd += _BUILD_TYPE_FLAGS.get(self.build_type, [])
        standard = usage.language_standard("c" if is_c else "cxx")
        if standard is not None:
            cmd.append(f"-std={'c' if is_c else 'c++'}{standard}")
        if component.kind == ComponentKind.SHARED_LIBRARY:
            cmd.append("-fPIC")
        cmd += [f"-I{d}" for d in usage.include_dirs]
        cmd += [f"-D{d}" for d in usage.definitions]
        cmd += usage.options
        cmd += ["-c", str(source), "-o", str(obj)]
        return cmd

    def link_command(self, component: Component, objects: list[str]) -> list[str]:
        usage = component.require_usage()
        if component.artifact is None:
            raise CompileFailure(component.name, "no artifact to link")
        if component.kind == ComponentKind.STATIC_LIBRARY:
            return [self.commands["ar"], "rcs", component.artifact, *objects]
        libs = [a for a in usage.link_artifacts if a != component.artifact]
        cmd = [self.commands["cxx"]]
        if component.kind == ComponentKind.SHARED_LIBRARY:
            cmd.append("-shared")
        return [*cmd, "-o", component.artifact, *objects, *libs]

    def _run(self, component: Component, cmd: list[str], verbose: bool) -> None:
        if verbose:
            logger.info("%s", " ".join(cmd))
        else:
            logger.debug("%s", " ".join(cmd))
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired:
            raise CompileFailure(component.name, f"timed out after {self.timeout}s: {cmd[0]}")
        except OSError as e:
            raise CompileFailure(component.name, f"cannot run {cmd[0]}: {e}") from e
        if result.returncode != 0:
            raise CompileFailure(
                component.name,
                f"{cmd[0]} exited with {result.returncode}: {result.stderr.strip()[-1000:]}",
            )
