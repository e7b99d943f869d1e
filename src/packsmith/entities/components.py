"""Domain models for pack components and their releases."""

from __future__ import annotations

import re
from datetime import datetime  # noqa: TC003
from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from packsmith.entities.graph import DependencyEdge, DependencyKind
from packsmith.versioning import ANY_VERSION, VersionRange, parse_range


class Category(StrEnum):
    """Kinds of installable content a pack can hold."""

    MOD = "mod"
    RESOURCEPACK = "resourcepack"
    SHADERPACK = "shaderpack"
    DATAPACK = "datapack"
    CONFIG = "config"

    @classmethod
    def _missing_(cls, value: object) -> Category | None:
        aliases = {"shader": cls.SHADERPACK, "plugin": cls.MOD}
        if isinstance(value, str):
            return aliases.get(value.strip().lower())
        return None

    @property
    def is_game_version_agnostic(self) -> bool:
        """Resourcepacks and shaderpacks load on any game version."""
        return self in (Category.RESOURCEPACK, Category.SHADERPACK)

    @property
    def runtime_directory(self) -> str:
        """Directory inside the game instance where this category lives."""
        return {
            Category.MOD: "mods",
            Category.RESOURCEPACK: "resourcepacks",
            Category.SHADERPACK: "shaderpacks",
            Category.DATAPACK: "datapacks",
            Category.CONFIG: "config",
        }[self]


def normalize_key(value: str) -> str:
    """Normalize a component key: trimmed, lowercased, inner spaces hyphenated."""
    return re.sub(r"\s+", "-", value.strip()).lower()


class RemoteOrigin(BaseModel):
    """Component backed by a registry project."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["remote"] = "remote"
    slug: str
    project_id: str | None = None


class LocalOrigin(BaseModel):
    """Component backed by a hand-authored declaration with no upstream."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["local"] = "local"
    path: str


Origin = Annotated[RemoteOrigin | LocalOrigin, Field(discriminator="kind")]


class Component(BaseModel):
    """A named, categorized unit of installable content."""

    model_config = ConfigDict(frozen=True)

    key: str
    category: Category
    origin: Origin

    @field_validator("key", mode="before")
    @classmethod
    def _normalize_key(cls, v: str) -> str:
        return normalize_key(v)


class SideRequirement(StrEnum):
    """Whether a component must, may, or must not be loaded on a side."""

    REQUIRED = "required"
    OPTIONAL = "optional"
    UNSUPPORTED = "unsupported"


class Environment(BaseModel):
    """Client- and server-side requirements of a release."""

    model_config = ConfigDict(frozen=True)

    client: SideRequirement = SideRequirement.REQUIRED
    server: SideRequirement = SideRequirement.REQUIRED

    @classmethod
    def client_only(cls) -> Environment:
        return cls(client=SideRequirement.REQUIRED, server=SideRequirement.UNSUPPORTED)

    @classmethod
    def server_only(cls) -> Environment:
        return cls(client=SideRequirement.UNSUPPORTED, server=SideRequirement.REQUIRED)


class ContentRef(BaseModel):
    """Where the bytes of a release live. Opaque to resolution."""

    model_config = ConfigDict(frozen=True)

    url: str | None = None
    path: str | None = None
    file_name: str | None = None
    size: int | None = None
    sha1: str | None = None
    sha512: str | None = None


class ComponentVersion(BaseModel):
    """One immutable, selectable release of a component.

    ``loaders`` and ``game_versions`` are the compatibility sets of this
    release. A ``"*"`` entry in either set marks it as unconstrained, which is
    how hand-authored declarations opt out of a check.
    """

    model_config = ConfigDict(frozen=True)

    component: str
    version: str
    version_id: str = ""
    dependencies: tuple[DependencyEdge, ...] = ()
    loaders: frozenset[str] = frozenset()
    game_versions: frozenset[str] = frozenset()
    published: datetime | None = None
    environment: Environment = Field(default_factory=Environment)
    content: ContentRef = Field(default_factory=ContentRef)

    @field_validator("component", mode="before")
    @classmethod
    def _normalize_component(cls, v: str) -> str:
        return normalize_key(v)

    @field_validator("loaders", mode="before")
    @classmethod
    def _normalize_loaders(cls, v: object) -> object:
        if isinstance(v, (list, tuple, set, frozenset)):
            return frozenset(str(item).strip().lower() for item in v)
        return v

    @field_validator("game_versions", mode="before")
    @classmethod
    def _normalize_game_versions(cls, v: object) -> object:
        if isinstance(v, (list, tuple, set, frozenset)):
            return frozenset(str(item).strip() for item in v)
        return v

    @field_serializer("loaders", "game_versions")
    def _serialize_sets(self, value: frozenset[str]) -> list[str]:
        return sorted(value)

    @property
    def label(self) -> str:
        """Human-readable ``key@version`` form."""
        return f"{self.component}@{self.version}"

    def edges_of_kind(self, kind: DependencyKind) -> tuple[DependencyEdge, ...]:
        """Return the dependency edges of one kind, in declaration order."""
        return tuple(edge for edge in self.dependencies if edge.kind == kind)

    def required_dependencies(self) -> tuple[DependencyEdge, ...]:
        return self.edges_of_kind(DependencyKind.REQUIRED)


class WantedComponent(BaseModel):
    """A node of the component graph.

    ``constraint`` is the pin given when the component was added explicitly.
    Implicit nodes (``explicit=False``) exist only because a selected release
    requires them.
    """

    model_config = ConfigDict(frozen=True)

    component: Component
    constraint: str = ANY_VERSION
    explicit: bool = True

    @field_validator("constraint", mode="before")
    @classmethod
    def _validate_constraint(cls, v: str | None) -> str:
        return parse_range(v).raw

    @property
    def key(self) -> str:
        return self.component.key

    @property
    def version_range(self) -> VersionRange:
        return parse_range(self.constraint)
