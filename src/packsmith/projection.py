"""Project an exported graph view into a Modrinth pack index.

Only the ``modrinth.index.json`` document and the list of local override
files are produced here; writing the ``.mrpack`` archive is left to the
caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any

from packsmith.entities.components import Category, LocalOrigin
from packsmith.entities.pack import Loader
from packsmith.errors import ProjectionError

if TYPE_CHECKING:
    from packsmith.entities.components import ComponentVersion, WantedComponent
    from packsmith.memory.component_graph import GraphView

logger = logging.getLogger(__name__)

INDEX_FORMAT_VERSION = 1
INDEX_GAME = "minecraft"

# Keys of the ``dependencies`` object understood by Modrinth launchers.
_LOADER_DEPENDENCY_KEYS = {
    Loader.FORGE: "forge",
    Loader.NEOFORGE: "neoforge",
    Loader.FABRIC: "fabric-loader",
    Loader.QUILT: "quilt-loader",
}


@dataclass(frozen=True)
class OverrideFile:
    """A local file to copy into the pack's ``overrides/`` directory."""

    source: str
    runtime_path: str


@dataclass(frozen=True)
class PackIndex:
    index: dict[str, Any]
    overrides: tuple[OverrideFile, ...] = ()


def runtime_path(node: WantedComponent, version: ComponentVersion) -> str:
    """Where a selected release lives inside a game instance.

    Remote resourcepacks and shaderpacks are renamed after their component
    key so that upstream file names with version numbers do not leak into
    options files.
    """
    category = node.component.category
    directory = PurePosixPath(category.runtime_directory)
    if isinstance(node.component.origin, LocalOrigin):
        return str(directory / PurePosixPath(node.component.origin.path).name)

    file_name = version.content.file_name
    if not file_name:
        msg = f"{version.label} has no file to download"
        raise ProjectionError(msg)
    if category in (Category.RESOURCEPACK, Category.SHADERPACK):
        extension = PurePosixPath(file_name).suffix.lstrip(".") or "zip"
        return str(directory / f"{node.key}.{extension}")
    return str(directory / file_name)


def build_index(view: GraphView, *, name: str, version_id: str) -> PackIndex:
    """Build the index document for ``view``.

    Raises:
        ProjectionError: If a remote release lacks download information.
    """
    nodes = {node.key: node for node in view.nodes}
    files: list[dict[str, Any]] = []
    overrides: list[OverrideFile] = []

    for version in view.assignment:
        node = nodes.get(version.component)
        if node is None:
            msg = f"{version.label} is selected but not part of the pack"
            raise ProjectionError(msg)

        path = runtime_path(node, version)
        if isinstance(node.component.origin, LocalOrigin):
            overrides.append(OverrideFile(source=node.component.origin.path, runtime_path=path))
            continue

        content = version.content
        if content.url is None:
            msg = f"{version.label} has no download URL"
            raise ProjectionError(msg)
        hashes = {
            algorithm: digest
            for algorithm, digest in (("sha1", content.sha1), ("sha512", content.sha512))
            if digest is not None
        }
        files.append(
            {
                "path": path,
                "hashes": hashes,
                "env": {
                    "client": str(version.environment.client),
                    "server": str(version.environment.server),
                },
                "downloads": [content.url],
                "fileSize": content.size or 0,
            }
        )

    return PackIndex(
        index={
            "formatVersion": INDEX_FORMAT_VERSION,
            "game": INDEX_GAME,
            "versionId": version_id,
            "name": name,
            "dependencies": _index_dependencies(view),
            "files": files,
        },
        overrides=tuple(overrides),
    )


def _index_dependencies(view: GraphView) -> dict[str, str]:
    target = view.target
    dependencies = {INDEX_GAME: target.game_version}
    loader_key = _LOADER_DEPENDENCY_KEYS.get(target.loader)
    if loader_key is not None:
        if target.loader_version:
            dependencies[loader_key] = target.loader_version
        else:
            logger.warning("No %s version set; launchers will pick one", target.loader)
    return dependencies
