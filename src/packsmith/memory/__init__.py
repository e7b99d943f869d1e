"""Memory package."""

from packsmith.memory.component_graph import (
    ComponentGraph,
    GraphSnapshot,
    GraphView,
    ViewEdge,
    view_of,
)
from packsmith.memory.lock_store import LockStore

__all__ = [
    "ComponentGraph",
    "GraphSnapshot",
    "GraphView",
    "LockStore",
    "ViewEdge",
    "view_of",
]
