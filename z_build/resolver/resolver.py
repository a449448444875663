"""Manifest resolver: manifest + triplet -> installed, cached packages.

Resolution runs in two steps:

1. ``plan()``: pick a concrete version for every package in the transitive
   closure and order them dependency-first. Pure; touches no files.
2. ``apply()``: install each planned package unless a matching install marker
   already exists. Independent packages of the same wave install concurrently.
"""

from __future__ import annotations

import asyncio
import hashlib
import heapq
import shutil
from collections import deque
from dataclasses import dataclass
from pathlib import Path

import structlog

from z_build.exceptions import (
    CyclicDependency,
    InstallIOFailure,
    ResolutionError,
    UnresolvedDependency,
    VersionConflict,
)
from z_build.models.manifest import DependencyDeclaration, Manifest
from z_build.models.package import InstallPlan, PackageTarget, PlanEntry, ResolvedPackage
from z_build.models.triplet import Triplet
from z_build.resolver.installer import PackageInstaller, PortOverlayInstaller
from z_build.resolver.markers import InstallMarkerStore, LockTimeout
from z_build.resolver.registry import PortRegistry, PortSpec
from z_build.resolver.versions import Constraint, Version, highest_satisfying
from z_build.schemas.manifest import PortTargetSchema

log = structlog.get_logger("z_build.resolver")

_MAX_ROUNDS = 100  # selection fixpoint bound; real graphs settle in depth+1 rounds


@dataclass(frozen=True)
class _Request:
    requester: str
    constraint: Constraint
    features: frozenset[str]
    default_features: bool


class ManifestResolver:
    """Resolve manifests against a port registry into a triplet-scoped install root."""

    def __init__(
        self,
        registry: PortRegistry,
        install_root: str | Path,
        installer: PackageInstaller | None = None,
        jobs: int = 4,
    ) -> None:
        self.registry = registry
        self.install_root = Path(install_root)
        self.installer = installer or PortOverlayInstaller()
        self.jobs = max(1, jobs)
        self._cache: dict[tuple[str, str, str], ResolvedPackage] = {}

    def triplet_root(self, triplet: Triplet) -> Path:
        return self.install_root / str(triplet)

    # ── public API ───────────────────────────────────────────────────────

    def resolve(self, manifest: Manifest, triplet: Triplet) -> InstallPlan:
        """Plan and install *manifest*'s dependencies for *triplet*.

        Raises:
            UnresolvedDependency: a package, version or feature is missing.
            VersionConflict: two requesters want incompatible versions.
            InstallIOFailure: an install step failed; no marker is left behind.
        """
        plan = self.plan(manifest, triplet)
        return self.apply(plan)

    def plan(self, manifest: Manifest, triplet: Triplet) -> InstallPlan:
        requests, selected = self._select(manifest)
        features = {
            name: self._features_for(name, selected[name], requests[name]) for name in selected
        }
        edges = {
            name: sorted(
                {d.name for d in self._port(name, selected[name]).dependencies_for(features[name])}
            )
            for name in selected
        }
        order = _topological_order(edges)

        plan = InstallPlan(triplet=triplet)
        for name in order:
            port = self._port(name, selected[name])
            plan.entries.append(
                PlanEntry(
                    package=self._package(port, triplet, features[name]),
                    requested_by=[r.requester for r in requests[name]],
                    dependencies=edges[name],
                    abi_hash=_abi_hash(port, triplet, features[name]),
                )
            )
        log.info(
            "resolver.planned",
            manifest=manifest.name,
            triplet=str(triplet),
            packages=[f"{e.package.name}@{e.package.version}" for e in plan.entries],
        )
        return plan

    def apply(self, plan: InstallPlan) -> InstallPlan:
        """Install every entry of *plan*; blocks until done or failed."""
        asyncio.run(self._apply_async(plan))
        log.info(
            "resolver.applied",
            triplet=str(plan.triplet),
            installed=plan.installed,
            skipped=plan.skipped,
        )
        return plan

    # ── selection ────────────────────────────────────────────────────────

    def _select(
        self, manifest: Manifest
    ) -> tuple[dict[str, list[_Request]], dict[str, Version]]:
        selected: dict[str, Version] = {}
        for _ in range(_MAX_ROUNDS):
            requests = self._collect(manifest, selected)
            chosen: dict[str, Version] = {}
            for name in sorted(requests):
                chosen[name] = self._choose(name, requests[name])
            if chosen == selected:
                return requests, selected
            selected = chosen
        raise ResolutionError(f"Version selection for '{manifest.name}' did not converge")

    def _collect(
        self, manifest: Manifest, selected: dict[str, Version]
    ) -> dict[str, list[_Request]]:
        """Gather every request reachable from the manifest under the current selection."""
        requests: dict[str, list[_Request]] = {}
        queue: deque[tuple[str, DependencyDeclaration]] = deque(
            (manifest.name, d) for d in sorted(manifest.dependencies, key=lambda d: d.name)
        )
        expanded: dict[str, frozenset[str]] = {}
        while queue:
            requester, decl = queue.popleft()
            requests.setdefault(decl.name, []).append(
                _Request(
                    requester=requester,
                    constraint=_parse_constraint(decl, requester),
                    features=decl.features,
                    default_features=decl.default_features,
                )
            )
            version = selected.get(decl.name)
            if version is None:
                continue
            port = self._port(decl.name, version)
            features = self._features_for(decl.name, version, requests[decl.name], strict=False)
            if decl.name not in expanded:
                deps = port.dependencies_for(features)
            else:
                # Only the dependencies of newly requested features are new.
                deps = [d for f in sorted(features - expanded[decl.name]) for d in port.features[f]]
            expanded[decl.name] = features
            for dep in sorted(deps, key=lambda d: d.name):
                queue.append((f"{decl.name}@{version}", dep))
        for reqs in requests.values():
            reqs.sort(key=lambda r: r.requester)
        return requests

    def _choose(self, name: str, requests: list[_Request]) -> Version:
        for i, first in enumerate(requests):
            for second in requests[i + 1 :]:
                if not first.constraint.compatible_with(second.constraint):
                    raise VersionConflict(
                        name,
                        (first.requester, str(first.constraint)),
                        (second.requester, str(second.constraint)),
                    )
        if name not in self.registry:
            raise UnresolvedDependency(name, requests[0].requester)
        combined = Constraint()
        for r in requests:
            combined = combined.intersect(r.constraint)
        version = highest_satisfying(self.registry.versions(name), combined)
        if version is None:
            requesters = ", ".join(r.requester for r in requests)
            raise UnresolvedDependency(name, requesters, str(combined))
        return version

    def _features_for(
        self,
        name: str,
        version: Version,
        requests: list[_Request],
        strict: bool = True,
    ) -> frozenset[str]:
        port = self._port(name, version)
        features: set[str] = set()
        for r in requests:
            for feature in r.features:
                if feature not in port.features:
                    if strict:
                        raise UnresolvedDependency(name, r.requester, feature=feature)
                    continue
                features.add(feature)
            if r.default_features:
                features.update(port.default_features)
        return frozenset(features)

    def _port(self, name: str, version: Version) -> PortSpec:
        port = self.registry.get(name, version)
        if port is None:
            raise UnresolvedDependency(name, "<registry>", f"=={version}")
        return port

    # ── packages ─────────────────────────────────────────────────────────

    def _package(
        self, port: PortSpec, triplet: Triplet, features: frozenset[str]
    ) -> ResolvedPackage:
        key = (port.name, str(port.version), str(triplet))
        cached = self._cache.get(key)
        if cached is not None and cached.features == features:
            return cached
        install_path = self.triplet_root(triplet) / port.name / str(port.version)
        package = ResolvedPackage(
            name=port.name,
            version=str(port.version),
            triplet=triplet,
            install_path=install_path,
            features=features,
            targets=tuple(
                _package_target(target_id, spec, install_path, triplet)
                for target_id, spec in sorted(port.targets.items())
            ),
        )
        self._cache[key] = package
        return package

    # ── install ──────────────────────────────────────────────────────────

    async def _apply_async(self, plan: InstallPlan) -> None:
        markers = InstallMarkerStore(self.triplet_root(plan.triplet))
        semaphore = asyncio.Semaphore(self.jobs)

        async def _guarded(entry: PlanEntry) -> None:
            async with semaphore:
                await asyncio.to_thread(self._install_one, entry, plan.triplet, markers)

        for wave in plan.waves():
            results = await asyncio.gather(*(_guarded(e) for e in wave), return_exceptions=True)
            for result in results:
                if isinstance(result, BaseException):
                    raise result

    def _install_one(self, entry: PlanEntry, triplet: Triplet, markers: InstallMarkerStore) -> None:
        package = entry.package
        if markers.is_current(package.name, package.version, entry.abi_hash, package.install_path):
            entry.action = "skip"
            log.debug("resolver.cached", package=package.name, version=package.version)
            return

        try:
            with markers.lock(package.name, package.version):
                # Another process may have finished while we waited for the lock.
                if markers.is_current(
                    package.name, package.version, entry.abi_hash, package.install_path
                ):
                    entry.action = "skip"
                    return
                self._install_staged(entry, triplet, markers)
        except LockTimeout as e:
            raise InstallIOFailure(package.name, package.version, str(triplet), str(e)) from e
        except OSError as e:
            raise InstallIOFailure(package.name, package.version, str(triplet), str(e)) from e
        entry.action = "install"

    def _install_staged(
        self, entry: PlanEntry, triplet: Triplet, markers: InstallMarkerStore
    ) -> None:
        package = entry.package
        port = self._port(package.name, Version.parse(package.version))
        staging = package.install_path.with_name(package.install_path.name + ".partial")

        markers.remove(package.name)
        staging.parent.mkdir(parents=True, exist_ok=True)
        if staging.exists():
            shutil.rmtree(staging)
        log.info(
            "resolver.install",
            package=package.name,
            version=package.version,
            triplet=str(triplet),
            features=sorted(package.features),
        )
        try:
            self.installer.install(port, triplet, package.features, staging)
        except InstallIOFailure:
            shutil.rmtree(staging, ignore_errors=True)
            raise
        except Exception as e:
            shutil.rmtree(staging, ignore_errors=True)
            raise InstallIOFailure(package.name, package.version, str(triplet), str(e)) from e

        if package.install_path.exists():
            shutil.rmtree(package.install_path)
        staging.rename(package.install_path)
        markers.write(
            package.name,
            {
                "name": package.name,
                "version": package.version,
                "triplet": str(triplet),
                "abi": entry.abi_hash,
                "features": sorted(package.features),
            },
        )


def _parse_constraint(decl: DependencyDeclaration, requester: str) -> Constraint:
    try:
        return Constraint.parse(decl.constraint)
    except ValueError as e:
        raise UnresolvedDependency(decl.name, requester, decl.constraint) from e


def _abi_hash(port: PortSpec, triplet: Triplet, features: frozenset[str]) -> str:
    h = hashlib.sha256()
    parts = (port.name, str(port.version), str(triplet), ",".join(sorted(features)), port.digest)
    for part in parts:
        h.update(part.encode())
        h.update(b"\0")
    return h.hexdigest()


def _library_file(triplet: Triplet, lib: str) -> str:
    if triplet.os == "windows":
        return f"{lib}.lib"
    if triplet.linkage == "dynamic":
        suffix = ".dylib" if triplet.os == "osx" else ".so"
        return f"lib{lib}{suffix}"
    return f"lib{lib}.a"


def _package_target(
    target_id: str, spec: PortTargetSchema, install_path: Path, triplet: Triplet
) -> PackageTarget:
    lib_dir = install_path / "lib"
    return PackageTarget(
        name=target_id,
        include_dirs=(str(install_path / "include"),),
        link_artifacts=tuple(str(lib_dir / _library_file(triplet, lib)) for lib in spec.libraries),
        definitions=tuple(spec.definitions),
        compile_features=tuple(spec.compile_features),
        link=tuple(spec.link),
    )


def _topological_order(edges: dict[str, list[str]]) -> list[str]:
    """Dependency-first order; ties broken by name so the result is deterministic."""
    pending = {name: len([d for d in deps if d in edges]) for name, deps in edges.items()}
    dependents: dict[str, list[str]] = {name: [] for name in edges}
    for name, deps in edges.items():
        for dep in deps:
            if dep in dependents:
                dependents[dep].append(name)

    ready = [name for name, count in pending.items() if count == 0]
    heapq.heapify(ready)
    order: list[str] = []
    while ready:
        name = heapq.heappop(ready)
        order.append(name)
        for dependent in dependents[name]:
            pending[dependent] -= 1
            if pending[dependent] == 0:
                heapq.heappush(ready, dependent)

    if len(order) != len(edges):
        remaining = {n for n in edges if n not in order}
        raise CyclicDependency(_find_cycle(edges, remaining))
    return order


def _find_cycle(edges: dict[str, list[str]], nodes: set[str]) -> list[str]:
    start = min(nodes)
    path = [start]
    seen = {start}
    current = start
    while True:
        current = min(d for d in edges[current] if d in nodes)
        if current in seen:
            return path[path.index(current) :] + [current]
        path.append(current)
        seen.add(current)
