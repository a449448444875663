"""Toolchain injection: runs before composition and fixes the build's platform context.

``ToolchainInjector.apply()`` picks the triplet, resolves the manifest (if
any) into the triplet-scoped install root and returns an immutable
:class:`ToolchainContext`. The search-path list lives on that context and is
passed down the composition call chain; nothing here touches process-wide
state.
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

import structlog

from z_build import config
from z_build.models.manifest import Manifest, load_manifest
from z_build.models.package import InstallPlan, PackageTarget, ResolvedPackage
from z_build.models.triplet import Triplet, host_triplet
from z_build.progress import ProgressTracker
from z_build.resolver.installer import PackageInstaller
from z_build.resolver.registry import PortRegistry
from z_build.resolver.resolver import ManifestResolver

log = structlog.get_logger("z_build.toolchain")


@dataclass(frozen=True)
class RootConfig:
    """Everything ``configure()`` needs to know about the root project."""

    source_root: Path
    triplet: str | None = None
    build_type: str = config.DEFAULT_BUILD_TYPE
    toolchain: str = "auto"
    install_root: Path | None = None
    registry: PortRegistry | Path | None = None
    build_dir: Path | None = None
    manifest: Manifest | None = None


@dataclass(frozen=True)
class ToolchainContext:
    """Immutable platform context handed to the composer and the builder."""

    triplet: Triplet
    build_type: str
    source_root: Path
    build_dir: Path
    install_root: Path
    search_paths: tuple[Path, ...] = ()
    packages: Mapping[str, ResolvedPackage] = field(default_factory=lambda: MappingProxyType({}))
    plan: InstallPlan | None = None
    toolchain: str = "auto"

    @property
    def triplet_root(self) -> Path:
        return self.install_root / str(self.triplet)

    @property
    def output_dir(self) -> Path:
        """Build outputs are namespaced by triplet and build type."""
        return self.build_dir / f"{self.triplet}-{self.build_type.lower()}"

    def child(self, **changes) -> ToolchainContext:
        """Derive a nested context; the parent stays untouched."""
        return dataclasses.replace(self, **changes)

    def with_search_path(self, path: Path) -> ToolchainContext:
        if path in self.search_paths:
            return self
        return self.child(search_paths=(path, *self.search_paths))

    def find_target(self, target_id: str) -> tuple[ResolvedPackage, PackageTarget] | None:
        """Look up an exported package target (``fmt::fmt``) among resolved packages."""
        for name in sorted(self.packages):
            package = self.packages[name]
            target = package.target(target_id)
            if target is not None:
                return package, target
        return None


def select_triplet(override: str | None = None) -> Triplet:
    """Explicit override > environment default > host auto-detection."""
    if override:
        return Triplet.parse(override)
    env = config.default_triplet()
    if env:
        return Triplet.parse(env)
    return host_triplet()


def _base_search_paths() -> tuple[Path, ...]:
    raw = os.environ.get("Z_BUILD_PREFIX_PATH", "")
    return tuple(Path(p) for p in raw.split(os.pathsep) if p)


class ToolchainInjector:
    """Select the triplet, resolve the manifest and build the root :class:`ToolchainContext`."""

    def __init__(
        self,
        installer: PackageInstaller | None = None,
        jobs: int | None = None,
        progress: ProgressTracker | None = None,
    ) -> None:
        self.installer = installer
        self.jobs = jobs or config.default_jobs()
        self.progress = progress or ProgressTracker()
        self.resolver: ManifestResolver | None = None

    def apply(self, root: RootConfig) -> ToolchainContext:
        """Create the configuration context. Blocks until dependencies are installed.

        Raises:
            ResolutionError: manifest invalid or dependencies unresolvable;
                configuration must stop.
        """
        source_root = Path(root.source_root).resolve()
        if root.build_type not in config.BUILD_TYPES:
            raise ValueError(
                f"Unknown build type '{root.build_type}' (expected one of {config.BUILD_TYPES})"
            )
        triplet = select_triplet(root.triplet)
        install_root = Path(root.install_root or config.default_install_root())
        build_dir = Path(root.build_dir or source_root / config.DEFAULT_BUILD_DIR)

        context = ToolchainContext(
            triplet=triplet,
            build_type=root.build_type,
            source_root=source_root,
            build_dir=build_dir,
            install_root=install_root,
            search_paths=_base_search_paths(),
            toolchain=root.toolchain,
        )
        context = context.with_search_path(context.triplet_root)
        log.info(
            "toolchain.selected",
            triplet=str(triplet),
            build_type=root.build_type,
            install_root=str(install_root),
        )

        manifest = root.manifest
        manifest_path = source_root / config.MANIFEST_FILE
        if manifest is None and manifest_path.is_file():
            manifest = load_manifest(manifest_path)
        if manifest is None:
            log.info("toolchain.no_manifest", source_root=str(source_root))
            self.progress.skip_phase("resolve", "no manifest")
            return context

        registry = self._registry(root.registry)
        self.resolver = ManifestResolver(
            registry, install_root, installer=self.installer, jobs=self.jobs
        )
        with self.progress.track("resolve") as phase:
            plan = self.resolver.resolve(manifest, triplet)
            phase.detail = f"{len(plan.installed)} installed, {len(plan.skipped)} up to date"
        return context.child(packages=MappingProxyType(dict(plan.packages)), plan=plan)

    @staticmethod
    def _registry(registry: PortRegistry | Path | None) -> PortRegistry:
        if isinstance(registry, PortRegistry):
            return registry
        path = registry or config.default_registry()
        if path is None:
            log.warning("toolchain.no_registry")
            return PortRegistry()
        return PortRegistry.from_directory(path)
