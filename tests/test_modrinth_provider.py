"""Tests for the Modrinth provider against a mocked HTTP transport."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Any

import httpx
import pytest

from packsmith.config import ProviderConfig
from packsmith.entities import Category, DependencyKind, Environment, RemoteOrigin
from packsmith.errors import (
    MalformedRecordError,
    NotFoundError,
    RateLimitedError,
    UnreachableError,
)
from packsmith.providers import MetadataProvider, ModrinthProvider

SODIUM = {
    "id": "AANobbMI",
    "slug": "sodium",
    "project_type": "mod",
    "loaders": ["fabric", "quilt"],
    "client_side": "required",
    "server_side": "unsupported",
}
FABRIC_API = {
    "id": "P7dR8mSH",
    "slug": "fabric-api",
    "project_type": "mod",
    "loaders": ["fabric"],
    "client_side": "unknown",
    "server_side": "required",
}
INDIUM = {"id": "Orvt0mRa", "slug": "indium", "project_type": "mod", "loaders": ["fabric"]}


def _release(version_id: str, number: str, **extra: Any) -> dict[str, Any]:
    record: dict[str, Any] = {
        "id": version_id,
        "project_id": "AANobbMI",
        "version_number": number,
        "game_versions": ["1.20.1"],
        "loaders": ["fabric", "quilt"],
        "date_published": "2024-01-10T12:00:00Z",
        "dependencies": [],
        "files": [
            {
                "url": f"https://cdn.modrinth.com/data/AANobbMI/versions/{version_id}/sodium-{number}.jar",
                "filename": f"sodium-{number}.jar",
                "size": 2048,
                "primary": True,
                "hashes": {"sha1": f"sha1-{number}", "sha512": f"sha512-{number}"},
            }
        ],
    }
    record.update(extra)
    return record


# Modrinth lists releases newest first.
SODIUM_VERSIONS = [
    _release(
        "v58",
        "0.5.8",
        dependencies=[
            {"project_id": "P7dR8mSH", "dependency_type": "required"},
            {"version_id": "indium-1027", "dependency_type": "optional"},
            {"file_name": "jcpp.jar", "dependency_type": "embedded"},
        ],
    ),
    _release("v50", "0.5.0", date_published="2023-08-01T12:00:00Z"),
]

ROUTES: dict[str, Any] = {
    "/project/sodium": SODIUM,
    "/project/AANobbMI": SODIUM,
    "/project/P7dR8mSH": FABRIC_API,
    "/project/fabric-api": FABRIC_API,
    "/project/Orvt0mRa": INDIUM,
    "/project/sodium/version": SODIUM_VERSIONS,
    "/version/indium-1027": {
        "id": "indium-1027",
        "project_id": "Orvt0mRa",
        "version_number": "1.0.27",
    },
}

Handler = Callable[[httpx.Request], httpx.Response]


def _pinned_indium_routes(indium_number: str) -> dict[str, Any]:
    """Sodium with one release pinning indium by version id."""
    return {
        "/project/sodium": SODIUM,
        "/project/Orvt0mRa": INDIUM,
        "/project/sodium/version": [
            _release(
                "v58",
                "0.5.8",
                dependencies=[{"version_id": "LV", "dependency_type": "required"}],
            )
        ],
        "/version/LV": {"id": "LV", "project_id": "Orvt0mRa", "version_number": indium_number},
    }


def _route(routes: dict[str, Any]) -> Handler:
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/v2")
        if path not in routes:
            return httpx.Response(404, json={"error": "not_found"})
        return httpx.Response(200, json=routes[path])

    return handler


@pytest.fixture
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Record backoff delays instead of sleeping."""
    recorded: list[float] = []
    monkeypatch.setattr("packsmith.providers.modrinth.time.sleep", recorded.append)
    return recorded


@pytest.fixture
def make_provider(sleeps: list[float]) -> Iterator[Callable[[Handler], ModrinthProvider]]:
    """Build providers over a mock transport; clients are closed afterwards."""
    clients: list[httpx.Client] = []
    config = ProviderConfig(retry_base_delay=0.0, max_retries=3)

    def factory(handler: Handler) -> ModrinthProvider:
        client = httpx.Client(base_url=config.api_base, transport=httpx.MockTransport(handler))
        clients.append(client)
        return ModrinthProvider(config=config, client=client)

    yield factory
    for client in clients:
        client.close()


class TestFetchComponent:
    def test_project_mapping(self, make_provider: Callable[[Handler], ModrinthProvider]) -> None:
        provider = make_provider(_route(ROUTES))
        component = provider.fetch_component("sodium")

        assert component.key == "sodium"
        assert component.category == Category.MOD
        assert component.origin == RemoteOrigin(slug="sodium", project_id="AANobbMI")
        assert isinstance(provider, MetadataProvider)

    def test_datapack_project(self, make_provider: Callable[[Handler], ModrinthProvider]) -> None:
        routes = {
            "/project/terralith": {
                "id": "8oi3bsk5",
                "slug": "terralith",
                "project_type": "mod",
                "loaders": ["datapack"],
            }
        }
        provider = make_provider(_route(routes))
        assert provider.fetch_component("terralith").category == Category.DATAPACK

    def test_modpack_is_rejected(self, make_provider: Callable[[Handler], ModrinthProvider]) -> None:
        routes = {
            "/project/fabulously-optimized": {
                "id": "1KVo5zza",
                "slug": "fabulously-optimized",
                "project_type": "modpack",
            }
        }
        provider = make_provider(_route(routes))
        with pytest.raises(MalformedRecordError):
            provider.fetch_component("fabulously-optimized")

    def test_not_found_is_not_retried(
        self, make_provider: Callable[[Handler], ModrinthProvider]
    ) -> None:
        calls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.path)
            return httpx.Response(404)

        provider = make_provider(handler)
        with pytest.raises(NotFoundError) as exc_info:
            provider.fetch_component("nope")
        assert exc_info.value.key == "nope"
        assert len(calls) == 1


class TestFetchVersions:
    def test_versions_are_oldest_first(
        self, make_provider: Callable[[Handler], ModrinthProvider]
    ) -> None:
        versions = make_provider(_route(ROUTES)).fetch_versions("sodium")

        assert [v.version for v in versions] == ["0.5.0", "0.5.8"]
        assert [v.version_id for v in versions] == ["v50", "v58"]
        assert all(v.component == "sodium" for v in versions)

    def test_release_fields(self, make_provider: Callable[[Handler], ModrinthProvider]) -> None:
        newest = make_provider(_route(ROUTES)).fetch_versions("sodium")[-1]

        assert newest.loaders == frozenset({"fabric", "quilt"})
        assert newest.game_versions == frozenset({"1.20.1"})
        assert newest.published is not None
        assert newest.environment == Environment.client_only()
        assert newest.content.file_name == "sodium-0.5.8.jar"
        assert newest.content.sha512 == "sha512-0.5.8"
        assert newest.content.size == 2048

    def test_dependencies_resolve_to_slugs(
        self, make_provider: Callable[[Handler], ModrinthProvider]
    ) -> None:
        newest = make_provider(_route(ROUTES)).fetch_versions("sodium")[-1]
        edges = {(e.target, e.kind, e.constraint) for e in newest.dependencies}

        # The file-only embedded jar has no project to resolve against.
        assert edges == {
            ("fabric-api", DependencyKind.REQUIRED, "*"),
            ("indium", DependencyKind.OPTIONAL, "=1.0.27"),
        }

    def test_pin_to_free_form_version_number(
        self, make_provider: Callable[[Handler], ModrinthProvider]
    ) -> None:
        routes = _pinned_indium_routes("1.0.0 beta")
        (release,) = make_provider(_route(routes)).fetch_versions("sodium")

        (edge,) = release.dependencies
        assert (edge.target, edge.constraint) == ("indium", "=1.0.0 beta")
        assert edge.allows("1.0.0 beta")
        assert not edge.allows("1.0.0")

    def test_unparseable_pin_is_malformed(
        self, make_provider: Callable[[Handler], ModrinthProvider]
    ) -> None:
        routes = _pinned_indium_routes("1.0 || >>2")
        with pytest.raises(MalformedRecordError) as exc_info:
            make_provider(_route(routes)).fetch_versions("sodium")
        assert exc_info.value.key == "sodium"

    def test_project_lookups_are_cached(
        self, make_provider: Callable[[Handler], ModrinthProvider]
    ) -> None:
        calls: list[str] = []
        route = _route(ROUTES)

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.path)
            return route(request)

        provider = make_provider(handler)
        provider.fetch_component("sodium")
        provider.fetch_versions("sodium")
        provider.fetch_versions("sodium")

        assert calls.count("/v2/project/sodium") == 1
        assert calls.count("/v2/project/P7dR8mSH") == 1
        assert calls.count("/v2/version/indium-1027") == 1

    def test_unknown_side_defaults_to_required(
        self, make_provider: Callable[[Handler], ModrinthProvider]
    ) -> None:
        routes = {
            "/project/fabric-api": FABRIC_API,
            "/project/fabric-api/version": [
                _release("f1", "0.92.0", project_id="P7dR8mSH", files=[])
            ],
        }
        (release,) = make_provider(_route(routes)).fetch_versions("fabric-api")
        assert release.environment == Environment()
        assert release.content.url is None

    def test_schema_error(self, make_provider: Callable[[Handler], ModrinthProvider]) -> None:
        routes = {
            "/project/sodium": SODIUM,
            "/project/sodium/version": [{"id": "v1", "project_id": "AANobbMI"}],
        }
        with pytest.raises(MalformedRecordError):
            make_provider(_route(routes)).fetch_versions("sodium")

    def test_unknown_dependency_type(
        self, make_provider: Callable[[Handler], ModrinthProvider]
    ) -> None:
        routes = {
            "/project/sodium": SODIUM,
            "/project/sodium/version": [
                _release(
                    "v1",
                    "0.5.0",
                    dependencies=[{"project_id": "P7dR8mSH", "dependency_type": "suggested"}],
                )
            ],
        }
        with pytest.raises(MalformedRecordError):
            make_provider(_route(routes)).fetch_versions("sodium")


class TestTransportFailures:
    def test_rate_limit_is_retried(
        self, make_provider: Callable[[Handler], ModrinthProvider], sleeps: list[float]
    ) -> None:
        responses = [
            httpx.Response(429, headers={"Retry-After": "2"}),
            httpx.Response(200, json=SODIUM),
        ]

        provider = make_provider(lambda request: responses.pop(0))
        assert provider.fetch_component("sodium").key == "sodium"
        assert sleeps == [2.0]

    def test_rate_limit_exhausts_retries(
        self, make_provider: Callable[[Handler], ModrinthProvider], sleeps: list[float]
    ) -> None:
        calls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.path)
            return httpx.Response(429)

        with pytest.raises(RateLimitedError):
            make_provider(handler).fetch_component("sodium")
        assert len(calls) == 3
        assert len(sleeps) == 2

    def test_connection_error_is_unreachable(
        self, make_provider: Callable[[Handler], ModrinthProvider]
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(UnreachableError) as exc_info:
            make_provider(handler).fetch_component("sodium")
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    def test_server_error_is_unreachable(
        self, make_provider: Callable[[Handler], ModrinthProvider]
    ) -> None:
        with pytest.raises(UnreachableError):
            make_provider(lambda request: httpx.Response(503)).fetch_component("sodium")

    def test_undecodable_json(self, make_provider: Callable[[Handler], ModrinthProvider]) -> None:
        provider = make_provider(lambda request: httpx.Response(200, content=b"<html>"))
        with pytest.raises(MalformedRecordError):
            provider.fetch_component("sodium")
