"""JSON lock file holding a pack's target, nodes and selected releases."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from packsmith.config import STORE_CONFIG
from packsmith.entities.components import ComponentVersion, WantedComponent
from packsmith.entities.pack import PackTarget
from packsmith.errors import LockFileError
from packsmith.memory.component_graph import GraphSnapshot

if TYPE_CHECKING:
    from packsmith.memory.component_graph import GraphView

logger = logging.getLogger(__name__)

LOCK_FORMAT_VERSION = 1


class LockStore:
    """Reads and writes ``packsmith.lock.json``.

    Edges are written for readers of the file but ignored on load; they are
    always derived from the selected releases. The file is meant to be
    committed with the pack, so hand edits are expected and are what the
    doctor check looks for.
    """

    def __init__(self, path: Path | str) -> None:
        """Initialize the store.

        Args:
            path: The lock file, or a pack directory to hold the default one.
        """
        path = Path(path)
        if path.is_dir():
            path = path / STORE_CONFIG.lock_file_name
        self.path = path

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> GraphSnapshot:
        """Load the stored state.

        Raises:
            FileNotFoundError: If the lock file does not exist.
            LockFileError: If the file is not a valid lock file.
        """
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            msg = f"{self.path} is not valid JSON: {exc}"
            raise LockFileError(msg) from exc
        if not isinstance(data, dict):
            msg = f"{self.path} does not hold a lock object"
            raise LockFileError(msg)

        version = data.get("version", LOCK_FORMAT_VERSION)
        if version != LOCK_FORMAT_VERSION:
            msg = f"Unsupported lock format version {version!r} in {self.path}"
            raise LockFileError(msg)

        try:
            snapshot = GraphSnapshot.build(
                target=PackTarget.model_validate(data["target"]),
                nodes=[WantedComponent.model_validate(item) for item in data.get("nodes", [])],
                assignment=[
                    ComponentVersion.model_validate(item) for item in data.get("assignment", [])
                ],
            )
        except (KeyError, ValidationError) as exc:
            msg = f"Invalid lock file {self.path}: {exc}"
            raise LockFileError(msg) from exc

        logger.debug(
            "Loaded %d node(s) and %d release(s) from %s",
            len(snapshot.nodes),
            len(snapshot.assignment),
            self.path,
        )
        return snapshot

    def save(self, view: GraphView) -> None:
        """Write an exported view, keys sorted so diffs stay small."""
        payload: dict[str, Any] = {"version": LOCK_FORMAT_VERSION, **view.to_dict()}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(payload, indent=2, sort_keys=True) + "\n", encoding="utf-8")
        logger.info("Wrote %s", self.path)
