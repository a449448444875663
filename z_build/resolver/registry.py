"""Port registry: the catalog of third-party package versions the resolver picks from.

On-disk layout::

    <ports>/<name>/<version>.json      # one file per available version
    <ports>/<name>/<version>/          # optional payload (include/, lib/, bin/)
    <ports>/<name>/vcpkg.json          # single-version shorthand
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from z_build.exceptions import ManifestError
from z_build.models.manifest import DependencyDeclaration
from z_build.resolver.versions import Version
from z_build.schemas.manifest import PortSchema, PortTargetSchema

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PortSpec:
    """One version of a port, as declared in the registry."""

    name: str
    version: Version
    dependencies: tuple[DependencyDeclaration, ...] = ()
    features: dict[str, tuple[DependencyDeclaration, ...]] = field(default_factory=dict)
    default_features: tuple[str, ...] = ()
    targets: dict[str, PortTargetSchema] = field(default_factory=dict)
    payload_dir: Path | None = None
    digest: str = ""

    def dependencies_for(self, features: frozenset[str]) -> list[DependencyDeclaration]:
        deps = list(self.dependencies)
        for feature in sorted(features):
            deps.extend(self.features.get(feature, ()))
        return deps


def port_from_dict(
    data: dict[str, Any],
    name: str | None = None,
    payload_dir: Path | None = None,
    source: str = "<memory>",
) -> PortSpec:
    """Validate a port definition and build its :class:`PortSpec`."""
    try:
        schema = PortSchema.model_validate(data)
    except ValidationError as e:
        raise ManifestError(source, str(e)) from e
    port_name = schema.name or name
    if not port_name:
        raise ManifestError(source, "port has no name")
    targets = schema.targets or {f"{port_name}::{port_name}": PortTargetSchema()}
    digest = hashlib.sha256(
        json.dumps(schema.model_dump(by_alias=True), sort_keys=True).encode()
    ).hexdigest()
    return PortSpec(
        name=port_name,
        version=Version.parse(schema.version),
        dependencies=tuple(DependencyDeclaration.from_item(d) for d in schema.dependencies),
        features={
            feat: tuple(DependencyDeclaration.from_item(d) for d in deps)
            for feat, deps in schema.features.items()
        },
        default_features=tuple(schema.default_features),
        targets=targets,
        payload_dir=payload_dir,
        digest=digest,
    )


class PortRegistry:
    """Registry of available port versions, keyed by name then version."""

    def __init__(self) -> None:
        self._ports: dict[str, dict[Version, PortSpec]] = {}

    def register(self, port: PortSpec, source: str = "<memory>") -> None:
        versions = self._ports.setdefault(port.name, {})
        if port.version in versions:
            # 1.2 and 1.2.0 compare equal, so both would claim the same slot
            raise ManifestError(
                source, f"duplicate version {port.version} of port '{port.name}'"
            )
        versions[port.version] = port
        logger.debug("Registered port: %s@%s", port.name, port.version)

    def add(self, name: str, version: str, **data: Any) -> PortSpec:
        """Convenience for in-memory registries: ``add("fmt", "10.1.0", dependencies=[...])``."""
        port = port_from_dict({"name": name, "version": version, **data})
        self.register(port)
        return port

    def __contains__(self, name: str) -> bool:
        return name in self._ports

    def versions(self, name: str) -> list[Version]:
        """Available versions of *name*, highest first."""
        return sorted(self._ports.get(name, {}), reverse=True)

    def get(self, name: str, version: Version) -> PortSpec | None:
        return self._ports.get(name, {}).get(version)

    @classmethod
    def from_directory(cls, path: str | Path) -> PortRegistry:
        root = Path(path)
        registry = cls()
        if not root.is_dir():
            logger.warning("Port registry directory not found: %s", root)
            return registry
        for port_dir in sorted(p for p in root.iterdir() if p.is_dir()):
            for port_file in sorted(port_dir.glob("*.json")):
                source = str(port_file)
                try:
                    data = json.loads(port_file.read_text(encoding="utf-8"))
                except (OSError, json.JSONDecodeError) as e:
                    raise ManifestError(source, f"cannot read port file: {e}") from e
                if port_file.name != "vcpkg.json":
                    data.setdefault("version", port_file.stem)
                payload = port_dir / str(data.get("version", ""))
                registry.register(
                    port_from_dict(
                        data,
                        name=port_dir.name,
                        payload_dir=payload if payload.is_dir() else None,
                        source=source,
                    ),
                    source=source,
                )
        return registry
