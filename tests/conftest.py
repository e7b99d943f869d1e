"""Shared test fixtures for packsmith."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime

import pytest

from packsmith.entities.components import (
    Category,
    Component,
    ComponentVersion,
    ContentRef,
    RemoteOrigin,
)
from packsmith.entities.graph import DependencyEdge, DependencyKind
from packsmith.entities.pack import Loader, PackTarget
from packsmith.errors import NotFoundError, ProviderError
from packsmith.workflows.session import PackSession


class FakeProvider:
    """In-memory metadata provider with call recording and injectable failures."""

    def __init__(self) -> None:
        self.components: dict[str, Component] = {}
        self.versions: dict[str, list[ComponentVersion]] = {}
        self.failures: dict[str, ProviderError] = {}
        self.calls: list[tuple[str, str]] = []

    def publish(
        self,
        key: str,
        version: str,
        *,
        requires: Mapping[str, str] | None = None,
        optional: Mapping[str, str] | None = None,
        incompatible: Mapping[str, str] | None = None,
        embedded: Mapping[str, str] | None = None,
        loaders: Sequence[str] = ("fabric",),
        game_versions: Sequence[str] = ("1.20.1",),
        category: Category = Category.MOD,
        published: datetime | None = None,
    ) -> ComponentVersion:
        """Append a release to ``key``, registering the component on first use."""
        if key not in self.components:
            self.components[key] = Component(
                key=key, category=category, origin=RemoteOrigin(slug=key)
            )
        edges: list[DependencyEdge] = []
        for kind, targets in (
            (DependencyKind.REQUIRED, requires),
            (DependencyKind.OPTIONAL, optional),
            (DependencyKind.INCOMPATIBLE, incompatible),
            (DependencyKind.EMBEDDED, embedded),
        ):
            for target, constraint in (targets or {}).items():
                edges.append(DependencyEdge(target=target, kind=kind, constraint=constraint))

        release = ComponentVersion(
            component=key,
            version=version,
            version_id=f"{key}-{version}",
            dependencies=tuple(edges),
            loaders=frozenset(loaders),
            game_versions=frozenset(game_versions),
            published=published,
            content=ContentRef(
                url=f"https://cdn.example.invalid/{key}/{version}/{key}-{version}.jar",
                file_name=f"{key}-{version}.jar",
                size=1024,
                sha1=f"sha1-{key}-{version}",
                sha512=f"sha512-{key}-{version}",
            ),
        )
        self.versions.setdefault(key, []).append(release)
        return release

    def fail(self, key: str, error: ProviderError) -> None:
        self.failures[key] = error

    def fetch_component(self, key: str) -> Component:
        self.calls.append(("component", key))
        self._raise_if_failing(key)
        if key not in self.components:
            msg = f"unknown component {key!r}"
            raise NotFoundError(msg, key=key)
        return self.components[key]

    def fetch_versions(self, key: str) -> list[ComponentVersion]:
        self.calls.append(("versions", key))
        self._raise_if_failing(key)
        if key not in self.versions:
            msg = f"unknown component {key!r}"
            raise NotFoundError(msg, key=key)
        return list(self.versions[key])

    def _raise_if_failing(self, key: str) -> None:
        if key in self.failures:
            raise self.failures[key]


@pytest.fixture
def fabric_target() -> PackTarget:
    """Fabric pack on 1.20.1."""
    return PackTarget(loader=Loader.FABRIC, game_version="1.20.1", loader_version="0.15.7")


@pytest.fixture
def provider() -> FakeProvider:
    """Empty in-memory provider."""
    return FakeProvider()


@pytest.fixture
def scenario_provider() -> FakeProvider:
    """fabric-api 1.0/1.1/2.0 and sodium releases requiring fabric-api >=1.1."""
    fake = FakeProvider()
    for version in ("1.0", "1.1", "2.0"):
        fake.publish("fabric-api", version)
    fake.publish("sodium", "0.5.0", requires={"fabric-api": ">=1.1"})
    fake.publish("sodium", "0.5.8", requires={"fabric-api": ">=1.1"})
    return fake


@pytest.fixture
def session(fabric_target: PackTarget, scenario_provider: FakeProvider) -> PackSession:
    """Empty pack session backed by the fabric-api/sodium scenario."""
    return PackSession(fabric_target, scenario_provider)
