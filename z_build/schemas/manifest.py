"""Manifest and port file schemas (``vcpkg.json`` style)."""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

from z_build.resolver.versions import Constraint, Version

NAME_PATTERN = r"^[a-z0-9]+(-[a-z0-9]+)*$"


def _check_version(v: str | None) -> str | None:
    if v is not None:
        Version.parse(v)
    return v


class DependencyEntrySchema(BaseModel):
    """Object form of a dependency: ``{"name": ..., "version>=": ..., "features": [...]}``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(pattern=NAME_PATTERN)
    version_ge: str | None = Field(default=None, alias="version>=")
    version: str | None = None
    features: list[str] = Field(default_factory=list)
    default_features: bool = Field(default=True, alias="default-features")

    @field_validator("version_ge")
    @classmethod
    def _valid_lower_bound(cls, v: str | None) -> str | None:
        return _check_version(v)

    @field_validator("version")
    @classmethod
    def _valid_constraint(cls, v: str | None) -> str | None:
        if v is not None:
            Constraint.parse(v)
        return v

    def constraint_expr(self) -> str:
        clauses = []
        if self.version_ge:
            clauses.append(f">={self.version_ge}")
        if self.version:
            clauses.append(self.version)
        return ", ".join(clauses)


DependencyItem = str | DependencyEntrySchema


class ManifestSchema(BaseModel):
    """Top-level project manifest."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(pattern=NAME_PATTERN)
    version: str | None = None
    dependencies: list[DependencyItem] = Field(default_factory=list)

    @field_validator("name", mode="before")
    @classmethod
    def _strip_whitespace(cls, v: str) -> str:
        return v.strip() if isinstance(v, str) else v

    @field_validator("version")
    @classmethod
    def _semver(cls, v: str | None) -> str | None:
        return _check_version(v)

    @field_validator("dependencies")
    @classmethod
    def _plain_names(cls, v: list[DependencyItem]) -> list[DependencyItem]:
        for item in v:
            if isinstance(item, str) and not re.match(NAME_PATTERN, item):
                raise ValueError(f"invalid dependency name '{item}'")
        return v


class PortTargetSchema(BaseModel):
    """One exported target of a port, e.g. ``catch2::catch2``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    libraries: list[str] = Field(default_factory=list)
    definitions: list[str] = Field(default_factory=list)
    compile_features: list[str] = Field(default_factory=list, alias="compile-features")
    link: list[str] = Field(default_factory=list)


class PortSchema(BaseModel):
    """One version of a third-party package in the port registry."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str | None = Field(default=None, pattern=NAME_PATTERN)
    version: str
    dependencies: list[DependencyItem] = Field(default_factory=list)
    features: dict[str, list[DependencyItem]] = Field(default_factory=dict)
    default_features: list[str] = Field(default_factory=list, alias="default-features")
    targets: dict[str, PortTargetSchema] = Field(default_factory=dict)

    @field_validator("version")
    @classmethod
    def _semver(cls, v: str) -> str:
        Version.parse(v)
        return v
