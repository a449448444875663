"""z-build: manifest-driven dependency resolution and component graph builds."""

__version__ = "0.1.0"

from z_build.api import (
    BuildOptions,
    ConfigureOptions,
    ExitCode,
    TestOptions,
    build,
    configure,
    export,
    test,
)
from z_build.build.builder import BuildResult
from z_build.exceptions import (
    AliasConflict,
    CompileFailure,
    ComponentNotComposed,
    CompositionError,
    CyclicDependency,
    DiscoveryError,
    ExportSchemaError,
    InstallIOFailure,
    ManifestError,
    RequirementConflict,
    ResolutionError,
    UnknownTarget,
    UnresolvedDependency,
    VersionConflict,
    ZBuildError,
)
from z_build.models.graph import BuildGraph
from z_build.models.testcase import TestCase, TestReport, TestResult
from z_build.schemas.descriptor import ExportDescriptor

__all__ = [
    "AliasConflict",
    "BuildGraph",
    "BuildOptions",
    "BuildResult",
    "CompileFailure",
    "ComponentNotComposed",
    "CompositionError",
    "ConfigureOptions",
    "CyclicDependency",
    "DiscoveryError",
    "ExitCode",
    "ExportDescriptor",
    "ExportSchemaError",
    "InstallIOFailure",
    "ManifestError",
    "RequirementConflict",
    "ResolutionError",
    "TestCase",
    "TestOptions",
    "TestReport",
    "TestResult",
    "UnknownTarget",
    "UnresolvedDependency",
    "VersionConflict",
    "ZBuildError",
    "build",
    "configure",
    "export",
    "test",
]
