"""Metadata provider reading hand-authored ``*.pack.yml`` declarations.

A declaration describes a component with no upstream registry, such as a
config bundle or a jar checked into the pack repository::

    key: house-rules
    category: config
    path: config/house-rules
    versions:
      - version: 1.2.0
        loaders: ["*"]
        game_versions: ["*"]
        dependencies:
          - target: sodium
            kind: optional
            constraint: ">=0.5"

Everything but ``path`` and ``category`` is optional. ``key`` defaults to the
file stem of ``path``; without ``versions`` the component has a single
release ``0.0.0`` compatible with every loader and game version.
"""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from packsmith.config import STORE_CONFIG
from packsmith.entities.components import (
    Category,
    Component,
    ComponentVersion,
    ContentRef,
    Environment,
    LocalOrigin,
    normalize_key,
)
from packsmith.entities.graph import DependencyEdge
from packsmith.errors import MalformedRecordError, NotFoundError
from packsmith.versioning import ANY_VERSION

logger = logging.getLogger(__name__)


class VersionDeclaration(BaseModel):
    model_config = ConfigDict(extra="forbid")

    version: str = "0.0.0"
    loaders: list[str] = Field(default_factory=lambda: [ANY_VERSION])
    game_versions: list[str] = Field(default_factory=lambda: [ANY_VERSION])
    dependencies: list[DependencyEdge] = Field(default_factory=list)
    environment: Environment = Field(default_factory=Environment)


class ComponentDeclaration(BaseModel):
    """Schema of one ``*.pack.yml`` file."""

    model_config = ConfigDict(extra="forbid")

    key: str | None = None
    category: Category
    path: str
    versions: list[VersionDeclaration] = Field(
        default_factory=lambda: [VersionDeclaration()]
    )

    @property
    def resolved_key(self) -> str:
        return normalize_key(self.key or PurePosixPath(self.path).stem)


class LocalProvider:
    """Serves components declared in a directory tree of YAML files.

    Files are read on first use and cached; ``reload()`` drops the cache.
    """

    def __init__(self, root: Path | str, pattern: str | None = None) -> None:
        self._root = Path(root)
        self._pattern = pattern or STORE_CONFIG.declaration_glob
        self._declarations: dict[str, ComponentDeclaration] | None = None

    @property
    def root(self) -> Path:
        return self._root

    def reload(self) -> None:
        self._declarations = None

    def keys(self) -> list[str]:
        return sorted(self._load())

    def fetch_component(self, key: str) -> Component:
        declaration = self._declaration(key)
        return Component(
            key=declaration.resolved_key,
            category=declaration.category,
            origin=LocalOrigin(path=declaration.path),
        )

    def fetch_versions(self, key: str) -> list[ComponentVersion]:
        declaration = self._declaration(key)
        content = ContentRef(
            path=declaration.path,
            file_name=PurePosixPath(declaration.path).name,
        )
        return [
            ComponentVersion(
                component=declaration.resolved_key,
                version=item.version,
                dependencies=tuple(item.dependencies),
                loaders=frozenset(item.loaders),
                game_versions=frozenset(item.game_versions),
                environment=item.environment,
                content=content,
            )
            for item in declaration.versions
        ]

    def _declaration(self, key: str) -> ComponentDeclaration:
        declarations = self._load()
        normalized = normalize_key(key)
        if normalized not in declarations:
            msg = f"No local declaration for {normalized!r} under {self._root}"
            raise NotFoundError(msg, key=normalized)
        return declarations[normalized]

    def _load(self) -> dict[str, ComponentDeclaration]:
        if self._declarations is not None:
            return self._declarations

        declarations: dict[str, ComponentDeclaration] = {}
        sources: dict[str, Path] = {}
        for file_path in sorted(self._root.rglob(self._pattern)):
            declaration = self._parse(file_path)
            key = declaration.resolved_key
            if key in declarations:
                msg = f"Component {key!r} is declared in both {sources[key]} and {file_path}"
                raise MalformedRecordError(msg, key=key)
            declarations[key] = declaration
            sources[key] = file_path

        logger.debug("Loaded %d local declaration(s) from %s", len(declarations), self._root)
        self._declarations = declarations
        return declarations

    @staticmethod
    def _parse(file_path: Path) -> ComponentDeclaration:
        try:
            data = yaml.safe_load(file_path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            msg = f"Invalid YAML in {file_path}: {exc}"
            raise MalformedRecordError(msg) from exc
        try:
            return ComponentDeclaration.model_validate(data)
        except (ValidationError, ValueError) as exc:
            msg = f"Invalid declaration in {file_path}: {exc}"
            raise MalformedRecordError(msg) from exc
