"""``components.json`` schema: per-directory component declarations."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from z_build.models.component import ComponentKind


class ScopedList(BaseModel):
    model_config = ConfigDict(extra="forbid")

    public: list[str] = Field(default_factory=list)
    private: list[str] = Field(default_factory=list)
    interface: list[str] = Field(default_factory=list)


class ScopedMap(BaseModel):
    model_config = ConfigDict(extra="forbid")

    public: dict[str, str] = Field(default_factory=dict)
    private: dict[str, str] = Field(default_factory=dict)
    interface: dict[str, str] = Field(default_factory=dict)


class ComponentSchema(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(pattern=r"^[A-Za-z0-9_.+\-]+$")
    kind: ComponentKind
    sources: list[str] = Field(default_factory=list)
    include_dirs: ScopedList = Field(default_factory=ScopedList)
    definitions: ScopedList = Field(default_factory=ScopedList)
    options: ScopedList = Field(default_factory=ScopedList)
    features: ScopedList = Field(default_factory=ScopedList)
    link_libraries: ScopedList = Field(default_factory=ScopedList)
    properties: ScopedMap = Field(default_factory=ScopedMap)
    dependencies: ScopedList = Field(default_factory=ScopedList)
    alias: str | None = None


class DirectorySchema(BaseModel):
    """One ``components.json``; ``subdirectories`` are visited depth-first in order."""

    model_config = ConfigDict(extra="forbid")

    namespace: str | None = None
    imports: list[str] = Field(default_factory=list)
    include_dirs: list[str] = Field(default_factory=list)
    definitions: list[str] = Field(default_factory=list)
    components: list[ComponentSchema] = Field(default_factory=list)
    subdirectories: list[str] = Field(default_factory=list)
