"""Data models for resolved third-party packages and install plans."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from z_build.models.triplet import Triplet


@dataclass(frozen=True)
class PackageTarget:
    """An importable target exported by an installed package (e.g. ``catch2::catch2``)."""

    name: str
    include_dirs: tuple[str, ...] = ()
    link_artifacts: tuple[str, ...] = ()
    definitions: tuple[str, ...] = ()
    compile_features: tuple[str, ...] = ()
    link: tuple[str, ...] = ()  # other target ids this one re-exports


@dataclass(frozen=True)
class ResolvedPackage:
    """A package pinned to a concrete version and installed for one triplet."""

    name: str
    version: str
    triplet: Triplet
    install_path: Path
    features: frozenset[str] = frozenset()
    targets: tuple[PackageTarget, ...] = ()

    def target(self, target_id: str) -> PackageTarget | None:
        for t in self.targets:
            if t.name == target_id:
                return t
        return None


@dataclass
class PlanEntry:
    """One step of an install plan."""

    package: ResolvedPackage
    requested_by: list[str]
    dependencies: list[str]
    abi_hash: str
    action: str = "install"  # "install" | "skip"


@dataclass
class InstallPlan:
    """Dependency-first sequence of packages for one triplet."""

    triplet: Triplet
    entries: list[PlanEntry] = field(default_factory=list)

    @property
    def order(self) -> list[str]:
        return [e.package.name for e in self.entries]

    @property
    def packages(self) -> dict[str, ResolvedPackage]:
        return {e.package.name: e.package for e in self.entries}

    @property
    def installed(self) -> list[str]:
        return [e.package.name for e in self.entries if e.action == "install"]

    @property
    def skipped(self) -> list[str]:
        return [e.package.name for e in self.entries if e.action == "skip"]

    def waves(self) -> list[list[PlanEntry]]:
        """Group entries into levels whose members do not depend on each other."""
        level: dict[str, int] = {}
        waves: list[list[PlanEntry]] = []
        for entry in self.entries:
            depth = 1 + max((level[d] for d in entry.dependencies if d in level), default=-1)
            level[entry.package.name] = depth
            while len(waves) <= depth:
                waves.append([])
            waves[depth].append(entry)
        return waves
