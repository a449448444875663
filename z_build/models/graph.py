"""The composed build graph."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from z_build.graph.aliases import AliasRegistry
from z_build.models.component import Component, ComponentKind

if TYPE_CHECKING:
    from z_build.toolchain import ToolchainContext


@dataclass
class BuildGraph:
    """Components in topological (declaration) order plus their alias table.

    Read-only once ``compose()`` returns.
    """

    namespace: str
    context: ToolchainContext
    components: list[Component] = field(default_factory=list)
    aliases: AliasRegistry = field(default_factory=AliasRegistry)
    imported: dict[str, Component] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self._by_name = {c.name: c for c in self.components}

    def get(self, name: str) -> Component | None:
        """Find a component by local name or alias."""
        component = self._by_name.get(name)
        if component is not None:
            return component
        local = self.aliases.resolve(name)
        if local is not None:
            return self._by_name.get(local)
        return self.imported.get(name)

    def __getitem__(self, name: str) -> Component:
        component = self.get(name)
        if component is None:
            raise KeyError(name)
        return component

    def __iter__(self):
        return iter(self.components)

    def __len__(self) -> int:
        return len(self.components)

    def local_dependencies(self, name: str) -> list[str]:
        """Names of project components *name* depends on directly."""
        return [target for target, _ in self[name].edges if target in self._by_name]

    def dependents(self, name: str) -> set[str]:
        """All components that (transitively) depend on *name*."""
        result: set[str] = set()
        frontier = [name]
        while frontier:
            current = frontier.pop()
            for component in self.components:
                if component.name in result:
                    continue
                if current in self.local_dependencies(component.name):
                    result.add(component.name)
                    frontier.append(component.name)
        return result

    def of_kind(self, *kinds: ComponentKind) -> list[Component]:
        return [c for c in self.components if c.kind in kinds]
