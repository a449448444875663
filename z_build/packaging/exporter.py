"""Install built artifacts and write the export descriptor.

Layout under the install root::

    bin/                              executables (and DLLs on windows)
    lib/                              static and shared libraries
    include/                          exposed headers from the source tree
    share/<ns>/<ns>-targets.json      the export descriptor

Only exposed requirements reach the descriptor; internal requirements and
privately consumed packages of non-archive components never appear in it.
"""

from __future__ import annotations

import json
import os
import shutil
from pathlib import Path
from typing import Mapping

import structlog
from pydantic import ValidationError

from z_build.exceptions import ExportSchemaError, ZBuildError
from z_build.models.component import Component, ComponentKind
from z_build.models.graph import BuildGraph
from z_build.schemas.descriptor import (
    SCHEMA_VERSION,
    DescriptorEntry,
    ExportDescriptor,
    ExportedRequirements,
)

log = structlog.get_logger("z_build.export")


def descriptor_path(install_root: str | Path, namespace: str) -> Path:
    return Path(install_root) / "share" / namespace / f"{namespace}-targets.json"


class Exporter:
    """Copy artifacts into an install prefix and describe them for consumers."""

    def __init__(self, graph: BuildGraph, install_root: str | Path) -> None:
        self.graph = graph
        self.install_root = Path(install_root).resolve()
        self.locations = {
            "bin": self.install_root / "bin",
            "lib": self.install_root / "lib",
            "include": self.install_root / "include",
            "share": self.install_root / "share" / graph.namespace,
        }
        # build-tree artifact -> installed path, filled as components are installed
        self._installed: dict[str, str] = {}

    def export(self, artifacts: Mapping[str, str | Path]) -> ExportDescriptor:
        """Install every exportable component and write the descriptor.

        *artifacts* maps component names to the files the builder produced.
        """
        exportable = [
            c
            for c in self.graph
            if c.kind not in (ComponentKind.TEST_BINARY, ComponentKind.IMPORTED)
            and c.alias is not None
        ]
        for component in exportable:
            if component.kind.produces_artifact:
                built = artifacts.get(component.name)
                if built is None or not Path(built).is_file():
                    raise ZBuildError(
                        f"Cannot export '{component.name}': no built artifact"
                        f" (expected {component.artifact})"
                    )
                self._install_artifact(component, Path(built))

        targets: dict[str, DescriptorEntry] = {}
        for component in exportable:
            targets[str(component.alias)] = DescriptorEntry(
                name=component.name,
                kind=component.kind,
                artifact=self._installed.get(component.artifact or ""),
                requirements=self._exported_requirements(component),
            )

        context = self.graph.context
        descriptor = ExportDescriptor(
            schema_version=SCHEMA_VERSION,
            namespace=self.graph.namespace,
            triplet=str(context.triplet),
            build_type=context.build_type,
            install_root=str(self.install_root),
            locations={role: str(path) for role, path in self.locations.items()},
            targets=targets,
        )
        path = descriptor_path(self.install_root, self.graph.namespace)
        _write_atomic(path, descriptor.model_dump_json(indent=2) + "\n")
        log.info(
            "export.written",
            namespace=self.graph.namespace,
            targets=sorted(targets),
            path=str(path),
        )
        return descriptor

    def _install_artifact(self, component: Component, built: Path) -> None:
        windows = self.graph.context.triplet.os == "windows"
        if component.kind == ComponentKind.EXECUTABLE:
            role = "bin"
        elif component.kind == ComponentKind.SHARED_LIBRARY and windows:
            role = "bin"
        else:
            role = "lib"
        destination = self.locations[role] / built.name
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(built, destination)
        self._installed[component.artifact or str(built)] = str(destination)
        self._installed[str(built)] = str(destination)
        log.debug("export.installed", component=component.name, destination=str(destination))

    def _exported_requirements(self, component: Component) -> ExportedRequirements:
        reqs = ExportedRequirements.from_requirements(component.require_interface())
        include_dirs: list[str] = []
        for include_dir in reqs.include_dirs:
            mapped = self._install_headers(include_dir)
            if mapped not in include_dirs:
                include_dirs.append(mapped)
        reqs.include_dirs = include_dirs
        reqs.link_artifacts = [self._installed.get(a, a) for a in reqs.link_artifacts]
        return reqs

    def _install_headers(self, include_dir: str) -> str:
        """Copy an include dir from the source tree; external dirs are kept as-is."""
        source = Path(include_dir)
        source_root = self.graph.context.source_root
        if not source.is_relative_to(source_root):
            return include_dir
        destination = self.locations["include"]
        if source.is_dir():
            shutil.copytree(source, destination, dirs_exist_ok=True)
        else:
            destination.mkdir(parents=True, exist_ok=True)
        return str(destination)


def export(
    graph: BuildGraph,
    install_root: str | Path,
    artifacts: Mapping[str, str | Path],
) -> ExportDescriptor:
    return Exporter(graph, install_root).export(artifacts)


def load_descriptor(path: str | Path) -> ExportDescriptor:
    """Read an export descriptor back, rejecting unknown schema versions."""
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ExportSchemaError(f"Cannot read export descriptor {path}: {e}") from e
    version = data.get("schema_version") if isinstance(data, dict) else None
    if version != SCHEMA_VERSION:
        raise ExportSchemaError(
            f"Unsupported export descriptor schema version {version!r} in {path}"
            f" (expected {SCHEMA_VERSION})"
        )
    try:
        return ExportDescriptor.model_validate(data)
    except ValidationError as e:
        raise ExportSchemaError(f"Invalid export descriptor {path}: {e}") from e


def _write_atomic(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(text, encoding="utf-8")
    os.replace(tmp, path)
