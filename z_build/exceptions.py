"""Custom exceptions for z-build.

Errors are grouped by the phase that raises them so callers (and the CLI's
exit-code mapping) can tell resolution, composition, compile and test
failures apart.
"""

from __future__ import annotations


class ZBuildError(Exception):
    """Base exception for all z-build errors."""


# ── Resolution ──


class ResolutionError(ZBuildError):
    """Base for failures while turning a manifest into installed packages."""


class ManifestError(ResolutionError):
    """Raised when a manifest or port file does not match its schema."""

    def __init__(self, path: str, detail: str):
        self.path = path
        self.detail = detail
        super().__init__(f"Invalid manifest {path}: {detail}")


class UnresolvedDependency(ResolutionError):
    """Raised when no registry entry satisfies a requested dependency."""

    def __init__(self, name: str, requester: str, constraint: str = "", feature: str | None = None):
        self.name = name
        self.requester = requester
        self.constraint = constraint
        self.feature = feature
        if feature:
            msg = f"Package '{name}' has no feature '{feature}' (requested by {requester})"
        elif constraint:
            msg = f"No version of '{name}' satisfies '{constraint}' (requested by {requester})"
        else:
            msg = f"Package '{name}' not found in registry (requested by {requester})"
        super().__init__(msg)


class VersionConflict(ResolutionError):
    """Raised when two requesters demand mutually exclusive versions of a package."""

    def __init__(
        self,
        name: str,
        first: tuple[str, str],
        second: tuple[str, str],
    ):
        self.name = name
        self.requesters = (first[0], second[0])
        self.constraints = (first[1], second[1])
        super().__init__(
            f"Version conflict on '{name}': {first[0]} requires '{first[1]}' "
            f"but {second[0]} requires '{second[1]}'"
        )


class InstallIOFailure(ResolutionError):
    """Raised when installing a package fails on the filesystem or in the installer."""

    def __init__(self, name: str, version: str, triplet: str, reason: str):
        self.name = name
        self.version = version
        self.triplet = triplet
        self.reason = reason
        super().__init__(f"Failed to install {name}@{version} for {triplet}: {reason}")


# ── Composition ──


class CompositionError(ZBuildError):
    """Base for failures while composing the component graph."""


class CyclicDependency(CompositionError):
    """Raised when component (or port) dependencies form a cycle."""

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__("Dependency cycle detected: " + " -> ".join(cycle))


class UnknownTarget(CompositionError):
    """Raised when a dependency edge names something that is not (yet) declared."""

    def __init__(self, consumer: str, target: str, reason: str = "not declared"):
        self.consumer = consumer
        self.target = target
        super().__init__(f"Component '{consumer}' depends on unknown target '{target}' ({reason})")


class RequirementConflict(CompositionError):
    """Raised when mutually exclusive requirements meet in one closure."""

    def __init__(self, component: str, key: str, values: list[tuple[str, str]]):
        self.component = component
        self.key = key
        self.values = values
        detail = ", ".join(f"{origin}={value}" for origin, value in values)
        super().__init__(f"Conflicting '{key}' requirements for '{component}': {detail}")


class AliasConflict(CompositionError):
    """Raised when an alias would map two local targets onto one external id."""

    def __init__(self, alias: str, existing: str, requested: str):
        self.alias = alias
        self.existing = existing
        self.requested = requested
        super().__init__(
            f"Alias '{alias}' already refers to '{existing}', cannot rebind to '{requested}'"
        )


class ComponentNotComposed(CompositionError):
    """Raised when a component's requirements are read before the composer filled them in."""

    def __init__(self, component: str):
        self.component = component
        super().__init__(f"Component '{component}' has not been composed")


# ── Build / test / export ──


class CompileFailure(ZBuildError):
    """Raised by a toolchain when a component fails to compile or link."""

    def __init__(self, component: str, reason: str):
        self.component = component
        self.reason = reason
        super().__init__(f"Failed to build '{component}': {reason}")


class DiscoveryError(ZBuildError):
    """Raised when a test binary cannot list its cases."""

    def __init__(self, binary: str, reason: str):
        self.binary = binary
        self.reason = reason
        super().__init__(f"Test discovery failed for {binary}: {reason}")


class ExportSchemaError(ZBuildError):
    """Raised when an export descriptor cannot be read back."""
