"""Metadata provider backed by the Modrinth v2 API."""

from __future__ import annotations

import logging
import time
from datetime import datetime  # noqa: TC003
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from packsmith.config import PROVIDER_CONFIG, ProviderConfig
from packsmith.entities.components import (
    Category,
    Component,
    ComponentVersion,
    ContentRef,
    Environment,
    RemoteOrigin,
    SideRequirement,
    normalize_key,
)
from packsmith.entities.graph import DependencyEdge, DependencyKind
from packsmith.errors import (
    MalformedRecordError,
    NotFoundError,
    ProviderError,
    RateLimitedError,
    UnreachableError,
)

if TYPE_CHECKING:
    from types import TracebackType

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# API records
# ---------------------------------------------------------------------------


class _Record(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ProjectRecord(_Record):
    """Subset of ``GET /project/{id|slug}``."""

    id: str
    slug: str
    project_type: str
    loaders: list[str] = Field(default_factory=list)
    client_side: str = "required"
    server_side: str = "required"


class FileHashes(_Record):
    sha1: str | None = None
    sha512: str | None = None


class FileRecord(_Record):
    url: str
    filename: str
    size: int | None = None
    primary: bool = False
    hashes: FileHashes = Field(default_factory=FileHashes)


class DependencyRecord(_Record):
    project_id: str | None = None
    version_id: str | None = None
    file_name: str | None = None
    dependency_type: str


class VersionRecord(_Record):
    """Subset of one entry of ``GET /project/{id|slug}/version``."""

    id: str
    project_id: str
    version_number: str
    game_versions: list[str] = Field(default_factory=list)
    loaders: list[str] = Field(default_factory=list)
    date_published: datetime | None = None
    dependencies: list[DependencyRecord] = Field(default_factory=list)
    files: list[FileRecord] = Field(default_factory=list)

    def primary_file(self) -> FileRecord | None:
        for file in self.files:
            if file.primary:
                return file
        return self.files[0] if self.files else None


def _side(value: str) -> SideRequirement:
    try:
        return SideRequirement(value)
    except ValueError:
        # Modrinth reports "unknown" for projects that never set a side.
        return SideRequirement.REQUIRED


def _category(project: ProjectRecord) -> Category:
    loaders = {loader.lower() for loader in project.loaders}
    if project.project_type == "mod" and loaders and loaders <= {"datapack"}:
        return Category.DATAPACK
    try:
        return Category(project.project_type)
    except ValueError as exc:
        msg = f"Unsupported project type {project.project_type!r} for {project.slug!r}"
        raise MalformedRecordError(msg, key=project.slug) from exc


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------


class ModrinthProvider:
    """Fetches components and releases from Modrinth.

    Rate limiting and transport failures are retried with exponential
    backoff, up to ``config.max_retries`` attempts. Project lookups used to
    turn dependency project ids into slugs are cached for the lifetime of
    the provider.
    """

    def __init__(
        self,
        config: ProviderConfig | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._config = config or PROVIDER_CONFIG
        self._owns_client = client is None
        self._client = client or httpx.Client(
            base_url=self._config.api_base,
            headers={"User-Agent": self._config.user_agent},
            timeout=self._config.timeout,
        )
        self._projects: dict[str, ProjectRecord] = {}
        self._versions_by_id: dict[str, VersionRecord] = {}

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> ModrinthProvider:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    # -- MetadataProvider ----------------------------------------------------

    def fetch_component(self, key: str) -> Component:
        project = self._project(key)
        return Component(
            key=key,
            category=_category(project),
            origin=RemoteOrigin(slug=project.slug, project_id=project.id),
        )

    def fetch_versions(self, key: str) -> list[ComponentVersion]:
        """Return the releases of ``key``, oldest first.

        Modrinth lists versions newest first; the order is reversed so that
        it matches the provider contract.
        """
        project = self._project(key)
        payload = self._get_json(f"/project/{project.slug}/version", key=key)
        if not isinstance(payload, list):
            msg = f"Expected a version list for {key!r}, got {type(payload).__name__}"
            raise MalformedRecordError(msg, key=key)

        records = [self._validate(VersionRecord, item, key) for item in payload]
        environment = Environment(
            client=_side(project.client_side),
            server=_side(project.server_side),
        )
        versions = [self._to_version(key, record, environment) for record in reversed(records)]
        logger.debug("Fetched %d version(s) of %s", len(versions), key)
        return versions

    # -- conversion ----------------------------------------------------------

    def _to_version(
        self, key: str, record: VersionRecord, environment: Environment
    ) -> ComponentVersion:
        self._versions_by_id.setdefault(record.id, record)
        edges = []
        for dependency in record.dependencies:
            edge = self._to_edge(key, dependency)
            if edge is not None:
                edges.append(edge)

        file = record.primary_file()
        content = (
            ContentRef(
                url=file.url,
                file_name=file.filename,
                size=file.size,
                sha1=file.hashes.sha1,
                sha512=file.hashes.sha512,
            )
            if file is not None
            else ContentRef()
        )
        return ComponentVersion(
            component=key,
            version=record.version_number,
            version_id=record.id,
            dependencies=tuple(edges),
            loaders=frozenset(record.loaders),
            game_versions=frozenset(record.game_versions),
            published=record.date_published,
            environment=environment,
            content=content,
        )

    def _to_edge(self, key: str, dependency: DependencyRecord) -> DependencyEdge | None:
        try:
            kind = DependencyKind(dependency.dependency_type)
        except ValueError as exc:
            msg = f"Unknown dependency type {dependency.dependency_type!r} in {key!r}"
            raise MalformedRecordError(msg, key=key) from exc

        constraint = "*"
        project_id = dependency.project_id
        if dependency.version_id is not None:
            pinned = self._version_by_id(dependency.version_id, key)
            project_id = project_id or pinned.project_id
            constraint = f"={pinned.version_number}"

        if project_id is None:
            # Jars bundled by file name only; nothing to resolve against.
            logger.debug("Skipping %s dependency %s of %s", kind, dependency.file_name, key)
            return None

        target = normalize_key(self._project(project_id).slug)
        try:
            return DependencyEdge(target=target, kind=kind, constraint=constraint)
        except ValidationError as exc:
            msg = f"Invalid dependency of {key!r} on {target!r}: {exc.error_count()} error(s)"
            raise MalformedRecordError(msg, key=key) from exc

    # -- HTTP ----------------------------------------------------------------

    def _project(self, id_or_slug: str) -> ProjectRecord:
        cached = self._projects.get(id_or_slug)
        if cached is not None:
            return cached
        payload = self._get_json(f"/project/{id_or_slug}", key=id_or_slug)
        project = self._validate(ProjectRecord, payload, id_or_slug)
        self._projects[id_or_slug] = project
        self._projects[project.id] = project
        self._projects[normalize_key(project.slug)] = project
        return project

    def _version_by_id(self, version_id: str, key: str) -> VersionRecord:
        cached = self._versions_by_id.get(version_id)
        if cached is not None:
            return cached
        payload = self._get_json(f"/version/{version_id}", key=key)
        record = self._validate(VersionRecord, payload, key)
        self._versions_by_id[version_id] = record
        return record

    @staticmethod
    def _validate(model: type[_Record], payload: Any, key: str) -> Any:
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            msg = f"Malformed {model.__name__} for {key!r}: {exc.error_count()} error(s)"
            raise MalformedRecordError(msg, key=key) from exc

    def _get_json(self, path: str, *, key: str) -> Any:
        """GET ``path`` and decode JSON, retrying transient failures."""
        attempts = self._config.max_retries
        last_exc: ProviderError | None = None
        for attempt in range(attempts):
            try:
                return self._get_once(path, key)
            except (RateLimitedError, UnreachableError) as exc:
                last_exc = exc
                if attempt + 1 >= attempts:
                    break
                delay = min(
                    self._config.max_retry_delay,
                    self._config.retry_base_delay * (2**attempt),
                )
                if isinstance(exc, RateLimitedError) and exc.retry_after is not None:
                    delay = min(self._config.max_retry_delay, max(delay, exc.retry_after))
                logger.warning(
                    "Modrinth request %s attempt %d/%d failed: %s (retry in %.1fs)",
                    path,
                    attempt + 1,
                    attempts,
                    exc,
                    delay,
                )
                time.sleep(delay)

        assert last_exc is not None
        raise last_exc

    def _get_once(self, path: str, key: str) -> Any:
        try:
            response = self._client.get(path)
        except httpx.TransportError as exc:
            msg = f"Modrinth is unreachable: {exc}"
            raise UnreachableError(msg, key=key) from exc

        if response.status_code == httpx.codes.NOT_FOUND:
            msg = f"Modrinth has no record at {path}"
            raise NotFoundError(msg, key=key)
        if response.status_code == httpx.codes.TOO_MANY_REQUESTS:
            retry_after = response.headers.get("Retry-After")
            msg = "Modrinth rate limit exceeded"
            raise RateLimitedError(
                msg,
                key=key,
                retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        if response.status_code >= httpx.codes.INTERNAL_SERVER_ERROR:
            msg = f"Modrinth answered {response.status_code} for {path}"
            raise UnreachableError(msg, key=key)
        if response.is_error:
            msg = f"Modrinth rejected {path} with {response.status_code}"
            raise ProviderError(msg, key=key)

        try:
            return response.json()
        except ValueError as exc:
            msg = f"Modrinth returned undecodable JSON for {path}"
            raise MalformedRecordError(msg, key=key) from exc
