"""Export descriptor schema: ``share/<ns>/<ns>-targets.json``."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from z_build.models.component import ComponentKind, Requirements

SCHEMA_VERSION = 1


class ExportedRequirements(BaseModel):
    """Exposed-requirement closure of one exported component."""

    model_config = ConfigDict(extra="forbid")

    include_dirs: list[str] = Field(default_factory=list)
    definitions: list[str] = Field(default_factory=list)
    options: list[str] = Field(default_factory=list)
    compile_features: list[str] = Field(default_factory=list)
    link_artifacts: list[str] = Field(default_factory=list)
    properties: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_requirements(cls, reqs: Requirements) -> ExportedRequirements:
        return cls.model_validate(reqs.to_dict())

    def to_requirements(self, origin: str) -> Requirements:
        return Requirements(
            include_dirs=list(self.include_dirs),
            definitions=list(self.definitions),
            options=list(self.options),
            features=list(self.compile_features),
            link_artifacts=list(self.link_artifacts),
            properties=dict(self.properties),
            origins={key: origin for key in self.properties},
        )


class DescriptorEntry(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    kind: ComponentKind
    artifact: str | None = None  # installed location, None for interface libraries
    requirements: ExportedRequirements = Field(default_factory=ExportedRequirements)


class ExportDescriptor(BaseModel):
    """Everything a downstream project needs to consume the exported components."""

    model_config = ConfigDict(extra="forbid")

    schema_version: int = SCHEMA_VERSION
    namespace: str
    triplet: str
    build_type: str
    install_root: str
    locations: dict[str, str] = Field(default_factory=dict)
    targets: dict[str, DescriptorEntry] = Field(default_factory=dict)

    def requirements_for(self, alias: str) -> Requirements | None:
        entry = self.targets.get(alias)
        if entry is None:
            return None
        return entry.requirements.to_requirements(alias)
