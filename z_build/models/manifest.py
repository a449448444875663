"""Parsed manifest model: immutable once loaded."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from z_build.exceptions import ManifestError
from z_build.schemas.manifest import DependencyItem, ManifestSchema


@dataclass(frozen=True)
class DependencyDeclaration:
    """A dependency as declared by a manifest or a port."""

    name: str
    constraint: str = ""
    features: frozenset[str] = frozenset()
    default_features: bool = True

    @classmethod
    def from_item(cls, item: DependencyItem) -> DependencyDeclaration:
        if isinstance(item, str):
            return cls(name=item)
        return cls(
            name=item.name,
            constraint=item.constraint_expr(),
            features=frozenset(item.features),
            default_features=item.default_features,
        )


@dataclass(frozen=True)
class Manifest:
    name: str
    version: str | None = None
    dependencies: tuple[DependencyDeclaration, ...] = field(default_factory=tuple)
    path: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str = "<memory>") -> Manifest:
        try:
            schema = ManifestSchema.model_validate(data)
        except ValidationError as e:
            raise ManifestError(path, _format_errors(e)) from e
        return cls(
            name=schema.name,
            version=schema.version,
            dependencies=tuple(DependencyDeclaration.from_item(d) for d in schema.dependencies),
            path=path,
        )


def load_manifest(path: str | Path) -> Manifest:
    """Read and validate a ``vcpkg.json``-style manifest."""
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ManifestError(str(path), f"cannot read file: {e}") from e
    except json.JSONDecodeError as e:
        raise ManifestError(str(path), f"invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ManifestError(str(path), "top-level value must be a JSON object")
    return Manifest.from_dict(data, path=str(path))


def _format_errors(exc: ValidationError) -> str:
    messages = []
    for err in exc.errors():
        loc = " → ".join(str(part) for part in err["loc"])
        messages.append(f"{loc}: {err['msg']}")
    return "; ".join(messages)


__all__ = ["DependencyDeclaration", "Manifest", "load_manifest"]
