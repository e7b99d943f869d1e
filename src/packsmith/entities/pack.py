"""The pack-wide target every selected release must be compatible with."""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, field_serializer, field_validator, model_validator

from packsmith.versioning import ANY_VERSION, normalize_game_version

if TYPE_CHECKING:
    from collections.abc import Iterable

    from packsmith.entities.components import Category


class Loader(StrEnum):
    """Mod-loading platforms a release can target."""

    MINECRAFT = "minecraft"
    FORGE = "forge"
    NEOFORGE = "neoforge"
    FABRIC = "fabric"
    QUILT = "quilt"
    # Loaders we know nothing about, e.g. "iris" or "optifine" on shaderpacks.
    OTHER = "other"

    @classmethod
    def _missing_(cls, value: object) -> Loader:
        if isinstance(value, str):
            text = value.strip().lower()
            if text in ("vanilla", "none", "datapack"):
                return cls.MINECRAFT
            for member in cls:
                if member.value == text:
                    return member
        return cls.OTHER


def default_foreign_loaders(loader: Loader) -> frozenset[Loader]:
    """Loaders whose releases are accepted on top of ``loader``.

    Vanilla releases load everywhere, Forge and NeoForge accept each other's
    mods, and Quilt accepts Fabric mods but not the other way round.
    """
    allowed: set[Loader] = set()
    if loader != Loader.MINECRAFT:
        allowed.add(Loader.MINECRAFT)
    if loader == Loader.FORGE:
        allowed.add(Loader.NEOFORGE)
    elif loader == Loader.NEOFORGE:
        allowed.add(Loader.FORGE)
    elif loader == Loader.QUILT:
        allowed.add(Loader.FABRIC)
    return frozenset(allowed)


class PackTarget(BaseModel):
    """The fixed (loader, game version) pair all selections must satisfy."""

    model_config = ConfigDict(frozen=True)

    loader: Loader
    game_version: str
    loader_version: str | None = None
    allowed_foreign_loaders: frozenset[Loader] = frozenset()

    @model_validator(mode="before")
    @classmethod
    def _default_foreign_loaders(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("allowed_foreign_loaders") is None:
            data = dict(data)
            data["allowed_foreign_loaders"] = default_foreign_loaders(Loader(data["loader"]))
        return data

    @field_validator("game_version", mode="before")
    @classmethod
    def _strip_game_version(cls, v: str) -> str:
        return str(v).strip()

    @field_serializer("allowed_foreign_loaders")
    def _serialize_foreign(self, value: frozenset[Loader]) -> list[str]:
        return sorted(str(loader) for loader in value)

    def allowed_loaders(self) -> frozenset[Loader]:
        return frozenset({self.loader}) | self.allowed_foreign_loaders

    def accepts_loaders(self, loaders: Iterable[str]) -> bool:
        """Return True when a release built for ``loaders`` runs on this target."""
        allowed = self.allowed_loaders()
        for raw in loaders:
            if raw == ANY_VERSION:
                return True
            loader = Loader(raw)
            if loader == Loader.OTHER or loader in allowed:
                return True
        return False

    def accepts_game_versions(self, game_versions: Iterable[str], category: Category) -> bool:
        """Return True when a release lists this target's game version."""
        if category.is_game_version_agnostic:
            return True
        wanted = normalize_game_version(self.game_version)
        return any(
            raw == ANY_VERSION or normalize_game_version(raw) == wanted
            for raw in game_versions
        )
