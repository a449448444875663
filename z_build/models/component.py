"""Component graph models: buildable units and their scoped requirements."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from z_build.exceptions import ComponentNotComposed, RequirementConflict

# cxx_std_17, c_std_11, cuda_std_14 ...
_STD_FEATURE_RE = re.compile(r"^([a-z]+)_std_(\d+)$")


class ComponentKind(str, Enum):
    STATIC_LIBRARY = "static-library"
    SHARED_LIBRARY = "shared-library"
    INTERFACE_LIBRARY = "interface-library"
    EXECUTABLE = "executable"
    TEST_BINARY = "test-binary"
    IMPORTED = "imported"  # prebuilt: package target or exported component of another project

    @property
    def produces_artifact(self) -> bool:
        return self not in (ComponentKind.INTERFACE_LIBRARY, ComponentKind.IMPORTED)

    @property
    def is_linkable(self) -> bool:
        return self in (ComponentKind.STATIC_LIBRARY, ComponentKind.SHARED_LIBRARY)


class Scope(str, Enum):
    PUBLIC = "public"  # own compilation + consumers
    PRIVATE = "private"  # own compilation only
    INTERFACE = "interface"  # consumers only

    @property
    def exposed(self) -> bool:
        return self in (Scope.PUBLIC, Scope.INTERFACE)

    @property
    def applies_locally(self) -> bool:
        return self in (Scope.PUBLIC, Scope.PRIVATE)


@dataclass
class Requirements:
    """Ordered, de-duplicated compile/link requirements.

    ``properties`` holds exclusive settings (one value per key); ``origins``
    remembers which component contributed each property so conflicts can
    name both sides.
    """

    include_dirs: list[str] = field(default_factory=list)
    definitions: list[str] = field(default_factory=list)
    options: list[str] = field(default_factory=list)
    features: list[str] = field(default_factory=list)
    link_artifacts: list[str] = field(default_factory=list)
    properties: dict[str, str] = field(default_factory=dict)
    origins: dict[str, str] = field(default_factory=dict)

    def copy(self) -> Requirements:
        return Requirements(
            include_dirs=list(self.include_dirs),
            definitions=list(self.definitions),
            options=list(self.options),
            features=list(self.features),
            link_artifacts=list(self.link_artifacts),
            properties=dict(self.properties),
            origins=dict(self.origins),
        )

    def merge(self, other: Requirements, component: str, origin: str) -> None:
        """Append *other* into self; raise on mutually exclusive values."""
        _extend_unique(self.include_dirs, other.include_dirs)
        self._merge_definitions(other.definitions, component, origin)
        _extend_unique(self.options, other.options)
        _extend_unique(self.features, other.features)
        _extend_unique(self.link_artifacts, other.link_artifacts)
        for key, value in other.properties.items():
            theirs = other.origins.get(key, origin)
            mine = self.properties.get(key)
            if mine is not None and mine != value:
                raise RequirementConflict(
                    component, key, [(self.origins.get(key, component), mine), (theirs, value)]
                )
            self.properties[key] = value
            self.origins.setdefault(key, theirs)

    def _merge_definitions(self, definitions: list[str], component: str, origin: str) -> None:
        known = {d.split("=", 1)[0]: d for d in self.definitions}
        for definition in definitions:
            macro = definition.split("=", 1)[0]
            existing = known.get(macro)
            if existing is None:
                self.definitions.append(definition)
                known[macro] = definition
            elif existing != definition:
                raise RequirementConflict(
                    component, macro, [(component, existing), (origin, definition)]
                )

    def normalized_features(self) -> list[str]:
        """Collapse ``<lang>_std_NN`` features to the maximum requested per language."""
        best: dict[str, int] = {}
        others: list[str] = []
        for feature in self.features:
            m = _STD_FEATURE_RE.match(feature)
            if m:
                lang, level = m.group(1), int(m.group(2))
                best[lang] = max(best.get(lang, level), level)
            elif feature not in others:
                others.append(feature)
        return [f"{lang}_std_{level}" for lang, level in sorted(best.items())] + others

    def language_standard(self, lang: str) -> int | None:
        for feature in self.normalized_features():
            m = _STD_FEATURE_RE.match(feature)
            if m and m.group(1) == lang:
                return int(m.group(2))
        return None

    def to_dict(self) -> dict:
        return {
            "include_dirs": list(self.include_dirs),
            "definitions": list(self.definitions),
            "options": list(self.options),
            "compile_features": self.normalized_features(),
            "link_artifacts": list(self.link_artifacts),
            "properties": dict(self.properties),
        }


def _extend_unique(target: list[str], items: list[str]) -> None:
    for item in items:
        if item not in target:
            target.append(item)


@dataclass(frozen=True)
class Dependency:
    """A scoped edge from a component to another component or package target."""

    target: str
    scope: Scope = Scope.PUBLIC


@dataclass
class Component:
    """A buildable unit.

    ``exposed`` and ``internal`` are the component's own declared
    requirements. ``usage`` (everything needed to compile it) and
    ``interface`` (what consumers inherit) are filled in once by the composer,
    after all dependencies have been processed.
    """

    name: str
    kind: ComponentKind
    sources: list[str] = field(default_factory=list)
    directory: str = "."
    exposed: Requirements = field(default_factory=Requirements)
    internal: Requirements = field(default_factory=Requirements)
    dependencies: list[Dependency] = field(default_factory=list)
    artifact: str | None = None
    alias: str | None = None
    usage: Requirements | None = None
    interface: Requirements | None = None
    # name of each resolved edge target: local component name, alias or package target id
    edges: list[tuple[str, Scope]] = field(default_factory=list)

    @property
    def finalized(self) -> bool:
        return self.interface is not None

    def require_usage(self) -> Requirements:
        if self.usage is None:
            raise ComponentNotComposed(self.name)
        return self.usage

    def require_interface(self) -> Requirements:
        if self.interface is None:
            raise ComponentNotComposed(self.name)
        return self.interface
