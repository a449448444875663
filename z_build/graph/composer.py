"""Build graph composition: declarations in, finalized alias-addressable DAG out.

Declaration order is treated as topological order: a component may only
depend on components declared before it, on exported targets of resolved
packages, or on targets imported from another project's export descriptor.
Each component's requirements are computed exactly once, when it is
processed, from the already-final interfaces of its dependencies.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

import structlog

from z_build.exceptions import CompositionError, CyclicDependency, UnknownTarget
from z_build.graph.aliases import AliasRegistry, split_alias
from z_build.graph.loader import ComponentDeclaration
from z_build.models.component import Component, ComponentKind, Requirements
from z_build.models.graph import BuildGraph
from z_build.models.triplet import Triplet

if TYPE_CHECKING:
    from z_build.schemas.descriptor import ExportDescriptor
    from z_build.toolchain import ToolchainContext

log = structlog.get_logger("z_build.graph")


def artifact_filename(kind: ComponentKind, name: str, triplet: Triplet) -> str | None:
    """File name of the artifact a component of *kind* produces on *triplet*."""
    windows = triplet.os == "windows"
    if kind == ComponentKind.STATIC_LIBRARY:
        return f"{name}.lib" if windows else f"lib{name}.a"
    if kind == ComponentKind.SHARED_LIBRARY:
        if windows:
            return f"{name}.dll"
        return f"lib{name}.dylib" if triplet.os == "osx" else f"lib{name}.so"
    if kind in (ComponentKind.EXECUTABLE, ComponentKind.TEST_BINARY):
        return f"{name}.exe" if windows else name
    return None


class BuildGraphComposer:
    """Compose component declarations into a :class:`BuildGraph`."""

    def __init__(
        self,
        context: ToolchainContext,
        namespace: str,
        imports: Sequence[ExportDescriptor] = (),
    ) -> None:
        self.context = context
        self.namespace = namespace
        self.imports = list(imports)
        self._imported: dict[str, Component] = {}

    def compose(self, declarations: Sequence[ComponentDeclaration]) -> BuildGraph:
        """Build the graph; fails fast without returning a partial graph.

        Raises:
            CyclicDependency: declared components depend on each other in a loop.
            UnknownTarget: an edge names an undeclared or later-declared target.
            RequirementConflict: mutually exclusive requirements meet.
        """
        position = self._index(declarations)
        aliases = self._register_aliases(declarations)
        self._check_cycles(declarations, aliases)

        processed: dict[str, Component] = {}
        ordered: list[Component] = []
        for decl in declarations:
            component = self._compose_one(decl, position, aliases, processed)
            processed[decl.name] = component
            ordered.append(component)

        aliases.freeze()
        graph = BuildGraph(
            namespace=self.namespace,
            context=self.context,
            components=ordered,
            aliases=aliases,
            imported=dict(self._imported),
        )
        log.info(
            "graph.composed",
            namespace=self.namespace,
            components=[c.name for c in ordered],
            imported=sorted(self._imported),
        )
        return graph

    # ── pre-passes ───────────────────────────────────────────────────────

    @staticmethod
    def _index(declarations: Sequence[ComponentDeclaration]) -> dict[str, int]:
        position: dict[str, int] = {}
        for i, decl in enumerate(declarations):
            if decl.name in position:
                raise CompositionError(f"Component '{decl.name}' is declared more than once")
            position[decl.name] = i
        return position

    def _register_aliases(self, declarations: Sequence[ComponentDeclaration]) -> AliasRegistry:
        aliases = AliasRegistry()
        for decl in declarations:
            if decl.alias:
                namespace, external = split_alias(decl.alias)
                aliases.register_alias(namespace, decl.name, external)
            elif decl.kind != ComponentKind.TEST_BINARY:
                aliases.register_alias(self.namespace, decl.name)
        return aliases

    def _check_cycles(
        self, declarations: Sequence[ComponentDeclaration], aliases: AliasRegistry
    ) -> None:
        names = {d.name for d in declarations}
        edges = {
            d.name: [
                local
                for dep in d.dependencies
                if (local := _local_name(dep.target, names, aliases)) is not None
            ]
            for d in declarations
        }
        visiting: list[str] = []
        done: set[str] = set()

        def visit(name: str) -> None:
            if name in done:
                return
            if name in visiting:
                raise CyclicDependency(visiting[visiting.index(name) :] + [name])
            visiting.append(name)
            for dep in edges[name]:
                visit(dep)
            visiting.pop()
            done.add(name)

        for decl in declarations:
            visit(decl.name)

    # ── per-component ────────────────────────────────────────────────────

    def _compose_one(
        self,
        decl: ComponentDeclaration,
        position: dict[str, int],
        aliases: AliasRegistry,
        processed: dict[str, Component],
    ) -> Component:
        component = Component(
            name=decl.name,
            kind=decl.kind,
            sources=list(decl.sources),
            directory=decl.directory,
            exposed=decl.exposed.copy(),
            internal=decl.internal.copy(),
            dependencies=list(decl.dependencies),
            alias=aliases.alias_of(decl.name),
        )
        filename = artifact_filename(decl.kind, decl.name, self.context.triplet)
        if filename is not None:
            component.artifact = str(self.context.output_dir / decl.directory / filename)

        usage = Requirements()
        interface = Requirements()
        if decl.kind != ComponentKind.INTERFACE_LIBRARY:
            usage.merge(component.internal, decl.name, decl.name)
            usage.merge(component.exposed, decl.name, decl.name)
        interface.merge(component.exposed, decl.name, decl.name)

        for dep in decl.dependencies:
            target = self._target(decl, dep.target, position, aliases, processed)
            component.edges.append((target.name, dep.scope))
            exposed = target.require_interface()
            if dep.scope.applies_locally:
                usage.merge(exposed, decl.name, target.name)
            if dep.scope.exposed:
                interface.merge(exposed, decl.name, target.name)

        if decl.kind.is_linkable and component.artifact:
            rest = [a for a in interface.link_artifacts if a != component.artifact]
            interface.link_artifacts = [component.artifact, *rest]

        component.usage = usage
        component.interface = interface
        log.debug(
            "graph.component_finalized",
            component=decl.name,
            kind=decl.kind.value,
            edges=[f"{t}({s.value})" for t, s in component.edges],
        )
        return component

    def _target(
        self,
        decl: ComponentDeclaration,
        target: str,
        position: dict[str, int],
        aliases: AliasRegistry,
        processed: dict[str, Component],
    ) -> Component:
        local = _local_name(target, set(position), aliases)
        if local is not None:
            if local not in processed:
                raise UnknownTarget(
                    decl.name, target, f"'{local}' is declared after '{decl.name}'"
                )
            return processed[local]
        imported = self._imported_target(target)
        if imported is None:
            raise UnknownTarget(decl.name, target)
        return imported

    # ── imported targets ─────────────────────────────────────────────────

    def _imported_target(
        self, target_id: str, _seen: frozenset[str] = frozenset()
    ) -> Component | None:
        cached = self._imported.get(target_id)
        if cached is not None:
            return cached
        if target_id in _seen:
            raise CyclicDependency([*sorted(_seen), target_id])

        interface = Requirements()
        found = self.context.find_target(target_id)
        if found is not None:
            package, target = found
            interface.merge(
                Requirements(
                    include_dirs=list(target.include_dirs),
                    definitions=list(target.definitions),
                    features=list(target.compile_features),
                    link_artifacts=list(target.link_artifacts),
                ),
                target_id,
                package.name,
            )
            for linked in target.link:
                sub = self._imported_target(linked, _seen | {target_id})
                if sub is None:
                    raise UnknownTarget(target_id, linked, f"not exported by {package.name}")
                interface.merge(sub.require_interface(), target_id, sub.name)
        else:
            entry = self._descriptor_entry(target_id)
            if entry is None:
                return None
            interface = entry

        component = Component(
            name=target_id,
            kind=ComponentKind.IMPORTED,
            alias=target_id,
            exposed=interface.copy(),
            interface=interface,
            usage=Requirements(),
        )
        self._imported[target_id] = component
        return component

    def _descriptor_entry(self, alias: str) -> Requirements | None:
        for descriptor in self.imports:
            reqs = descriptor.requirements_for(alias)
            if reqs is not None:
                return reqs
        return None


def _local_name(target: str, names: set[str], aliases: AliasRegistry) -> str | None:
    if target in names:
        return target
    return aliases.resolve(target)
