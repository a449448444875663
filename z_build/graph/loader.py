"""Load hierarchical ``components.json`` files into flat component declarations.

Each directory is visited with an immutable :class:`DirectoryScope` inherited
from its parent. Directory-level include dirs and definitions apply to the
compilation of components declared in that directory (and below); they are
never exposed to consumers.
"""

from __future__ import annotations

import glob
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import ValidationError

from z_build import config
from z_build.exceptions import ManifestError
from z_build.models.component import ComponentKind, Dependency, Requirements, Scope
from z_build.schemas.components import ComponentSchema, DirectorySchema

logger = logging.getLogger(__name__)

_GLOB_CHARS = set("*?[")


@dataclass(frozen=True)
class ComponentDeclaration:
    """A component as declared, before composition."""

    name: str
    kind: ComponentKind
    sources: tuple[str, ...] = ()
    directory: str = "."
    exposed: Requirements = field(default_factory=Requirements)
    internal: Requirements = field(default_factory=Requirements)
    dependencies: tuple[Dependency, ...] = ()
    alias: str | None = None


@dataclass(frozen=True)
class DirectoryScope:
    """Settings a directory inherits from its parent."""

    directory: Path
    include_dirs: tuple[str, ...] = ()
    definitions: tuple[str, ...] = ()

    def child(self, directory: Path, schema: DirectorySchema) -> DirectoryScope:
        return DirectoryScope(
            directory=directory,
            include_dirs=self.include_dirs
            + tuple(_absolute(directory, p) for p in schema.include_dirs),
            definitions=self.definitions + tuple(schema.definitions),
        )


@dataclass
class ProjectDeclarations:
    namespace: str
    declarations: list[ComponentDeclaration]
    imports: list[Path]


def load_project(source_root: str | Path, namespace: str | None = None) -> ProjectDeclarations:
    """Walk ``components.json`` files depth-first starting at *source_root*."""
    root = Path(source_root).resolve()
    root_schema = _read_directory(root)
    project_namespace = namespace or root_schema.namespace or root.name
    declarations: list[ComponentDeclaration] = []
    imports: list[Path] = []

    def visit(directory: Path, schema: DirectorySchema, parent: DirectoryScope) -> None:
        scope = parent.child(directory, schema)
        imports.extend(Path(_absolute(directory, p)) for p in schema.imports)
        for component in schema.components:
            declarations.append(_declaration(component, directory, root, scope))
        for sub in schema.subdirectories:
            sub_dir = (directory / sub).resolve()
            visit(sub_dir, _read_directory(sub_dir), scope)

    visit(root, root_schema, DirectoryScope(directory=root))
    logger.info(
        "Loaded %d component declarations from %s (namespace: %s)",
        len(declarations),
        root,
        project_namespace,
    )
    return ProjectDeclarations(
        namespace=project_namespace, declarations=declarations, imports=imports
    )


def _read_directory(directory: Path) -> DirectorySchema:
    path = directory / config.COMPONENTS_FILE
    if not path.is_file():
        raise ManifestError(str(path), "components file not found")
    try:
        return DirectorySchema.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except json.JSONDecodeError as e:
        raise ManifestError(str(path), f"invalid JSON: {e}") from e
    except ValidationError as e:
        raise ManifestError(str(path), str(e)) from e


def _declaration(
    schema: ComponentSchema,
    directory: Path,
    root: Path,
    scope: DirectoryScope,
) -> ComponentDeclaration:
    where = f"{directory / config.COMPONENTS_FILE}:{schema.name}"
    interface_only = schema.kind == ComponentKind.INTERFACE_LIBRARY

    exposed = Requirements()
    internal = Requirements(
        include_dirs=list(scope.include_dirs),
        definitions=list(scope.definitions),
    )
    for scope_name in ("public", "private", "interface"):
        reqs = _scoped_requirements(schema, scope_name, directory)
        if not _has_any(reqs):
            continue
        if scope_name == "interface" and not interface_only:
            raise ManifestError(
                where, "interface-scoped requirements are only valid on interface libraries"
            )
        if scope_name == "private" and interface_only:
            raise ManifestError(where, "interface libraries have no private requirements")
        target = internal if scope_name == "private" else exposed
        target.merge(reqs, schema.name, schema.name)

    if interface_only:
        # Interface libraries are never compiled; directory settings would be dead weight.
        internal = Requirements()

    dependencies = tuple(
        Dependency(target=target, scope=Scope(scope_name))
        for scope_name in ("public", "private", "interface")
        for target in getattr(schema.dependencies, scope_name)
    )
    if interface_only and any(d.scope == Scope.PRIVATE for d in dependencies):
        raise ManifestError(where, "interface libraries cannot have private dependencies")

    return ComponentDeclaration(
        name=schema.name,
        kind=schema.kind,
        sources=tuple(_expand_sources(directory, schema.sources)),
        directory=directory.relative_to(root).as_posix() if directory != root else ".",
        exposed=exposed,
        internal=internal,
        dependencies=dependencies,
        alias=schema.alias,
    )


def _scoped_requirements(schema: ComponentSchema, scope_name: str, directory: Path) -> Requirements:
    props = getattr(schema.properties, scope_name)
    return Requirements(
        include_dirs=[_absolute(directory, p) for p in getattr(schema.include_dirs, scope_name)],
        definitions=list(getattr(schema.definitions, scope_name)),
        options=list(getattr(schema.options, scope_name)),
        features=list(getattr(schema.features, scope_name)),
        link_artifacts=list(getattr(schema.link_libraries, scope_name)),
        properties=dict(props),
        origins={key: schema.name for key in props},
    )


def _has_any(reqs: Requirements) -> bool:
    return any(
        (
            reqs.include_dirs,
            reqs.definitions,
            reqs.options,
            reqs.features,
            reqs.link_artifacts,
            reqs.properties,
        )
    )


def _expand_sources(directory: Path, patterns: list[str]) -> list[str]:
    sources: list[str] = []
    for pattern in patterns:
        if _GLOB_CHARS & set(pattern):
            matches = sorted(glob.glob(str(directory / pattern), recursive=True))
            if not matches:
                logger.warning("Source pattern matched nothing: %s", directory / pattern)
            sources.extend(m for m in matches if m not in sources)
        else:
            path = _absolute(directory, pattern)
            if path not in sources:
                sources.append(path)
    return sources


def _absolute(directory: Path, path: str) -> str:
    p = Path(path)
    return str(p if p.is_absolute() else (directory / p).resolve())
