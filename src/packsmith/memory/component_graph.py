"""Component graph: wanted nodes, selected releases, and derived edges."""

from __future__ import annotations

import contextlib
import json
import logging
import threading
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

import networkx as nx

from packsmith.entities.components import WantedComponent
from packsmith.entities.graph import DependencyKind
from packsmith.errors import (
    DuplicateComponentError,
    ResolutionInProgressError,
    UnknownComponentError,
)
from packsmith.versioning import ANY_VERSION, parse_range

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping

    from packsmith.entities.components import Component, ComponentVersion, Origin
    from packsmith.entities.pack import PackTarget

logger = logging.getLogger(__name__)


def _empty() -> Mapping[str, Any]:
    return MappingProxyType({})


def _frozen(mapping: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class GraphSnapshot:
    """Immutable state of a component graph.

    Every mutation of a ``ComponentGraph`` builds a new snapshot and leaves
    the previous one untouched, so a snapshot taken before a resolution is a
    valid rollback point no matter what happens afterwards.
    """

    target: PackTarget
    nodes: Mapping[str, WantedComponent] = field(default_factory=_empty)
    assignment: Mapping[str, ComponentVersion] = field(default_factory=_empty)

    @classmethod
    def build(
        cls,
        target: PackTarget,
        nodes: Iterable[WantedComponent] = (),
        assignment: Iterable[ComponentVersion] = (),
    ) -> GraphSnapshot:
        """Construct a snapshot from plain node and release collections."""
        return cls(
            target=target,
            nodes=_frozen({node.key: node for node in nodes}),
            assignment=_frozen({version.component: version for version in assignment}),
        )

    def with_node(self, node: WantedComponent) -> GraphSnapshot:
        nodes = dict(self.nodes)
        nodes[node.key] = node
        return replace(self, nodes=_frozen(nodes))

    def without_node(self, key: str) -> GraphSnapshot:
        nodes = {k: v for k, v in self.nodes.items() if k != key}
        assignment = {k: v for k, v in self.assignment.items() if k != key}
        return replace(self, nodes=_frozen(nodes), assignment=_frozen(assignment))

    def with_assignment(
        self,
        nodes: Mapping[str, WantedComponent],
        assignment: Mapping[str, ComponentVersion],
    ) -> GraphSnapshot:
        return replace(self, nodes=_frozen(nodes), assignment=_frozen(assignment))

    def with_target(self, target: PackTarget) -> GraphSnapshot:
        return replace(self, target=target)

    def selected_version(self, key: str) -> str | None:
        version = self.assignment.get(key)
        return version.version if version is not None else None

    def edge_graph(self) -> nx.DiGraph[str]:
        """Build a directed graph of the selected releases' dependency edges.

        Nodes carry ``wanted`` and ``version`` attributes; edges carry
        ``kind`` and ``constraint``. Targets that are neither wanted nor
        selected still appear, which is how dangling edges show up.
        """
        graph: nx.DiGraph[str] = nx.DiGraph()
        for key in sorted(set(self.nodes) | set(self.assignment)):
            graph.add_node(
                key,
                wanted=key in self.nodes,
                version=self.selected_version(key),
            )
        for key in sorted(self.assignment):
            for edge in self.assignment[key].dependencies:
                if edge.target not in graph:
                    graph.add_node(edge.target, wanted=False, version=None)
                graph.add_edge(
                    key, edge.target, kind=str(edge.kind), constraint=edge.constraint
                )
        return graph


@dataclass(frozen=True)
class ViewEdge:
    """A dependency edge of a selected release, as exported."""

    source: str
    target: str
    kind: DependencyKind
    constraint: str


@dataclass(frozen=True)
class GraphView:
    """Read-only export of a committed graph for pack projection."""

    target: PackTarget
    nodes: tuple[WantedComponent, ...] = ()
    assignment: tuple[ComponentVersion, ...] = ()
    edges: tuple[ViewEdge, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.nodes and not self.assignment

    def selected(self, key: str) -> ComponentVersion | None:
        for version in self.assignment:
            if version.component == key:
                return version
        return None

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable, key-ordered representation."""
        return {
            "target": self.target.model_dump(mode="json"),
            "nodes": [node.model_dump(mode="json") for node in self.nodes],
            "assignment": [version.model_dump(mode="json") for version in self.assignment],
            "edges": [
                {
                    "source": edge.source,
                    "target": edge.target,
                    "kind": str(edge.kind),
                    "constraint": edge.constraint,
                }
                for edge in self.edges
            ],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, indent=2)


def view_of(snapshot: GraphSnapshot) -> GraphView:
    """Project a snapshot into its exported, deterministically ordered view."""
    edges = tuple(
        ViewEdge(
            source=key,
            target=edge.target,
            kind=edge.kind,
            constraint=edge.constraint,
        )
        for key in sorted(snapshot.assignment)
        for edge in snapshot.assignment[key].dependencies
    )
    return GraphView(
        target=snapshot.target,
        nodes=tuple(snapshot.nodes[key] for key in sorted(snapshot.nodes)),
        assignment=tuple(snapshot.assignment[key] for key in sorted(snapshot.assignment)),
        edges=edges,
    )


class ComponentGraph:
    """The mutable aggregate owned by one pack session.

    Holds the current ``GraphSnapshot``. Structural edits (``add_node``,
    ``remove_node``) apply immediately; new assignments only arrive through
    ``commit`` after a resolution has been validated.
    """

    def __init__(self, target: PackTarget, snapshot: GraphSnapshot | None = None) -> None:
        self._state = snapshot if snapshot is not None else GraphSnapshot(target=target)
        if self._state.target != target:
            self._state = self._state.with_target(target)
        self._lock = threading.Lock()

    @classmethod
    def from_snapshot(cls, snapshot: GraphSnapshot) -> ComponentGraph:
        return cls(snapshot.target, snapshot)

    @property
    def target(self) -> PackTarget:
        return self._state.target

    @property
    def nodes(self) -> Mapping[str, WantedComponent]:
        return self._state.nodes

    @property
    def assignment(self) -> Mapping[str, ComponentVersion]:
        return self._state.assignment

    @property
    def is_busy(self) -> bool:
        """True while a resolution holds exclusive access."""
        return self._lock.locked()

    def __contains__(self, key: str) -> bool:
        return key in self._state.nodes

    def __len__(self) -> int:
        return len(self._state.nodes)

    def add_node(
        self,
        component: Component,
        origin: Origin | None = None,
        *,
        constraint: str = ANY_VERSION,
        explicit: bool = True,
    ) -> WantedComponent:
        """Register a component as wanted.

        Re-adding a key with the same origin replaces its pin. A different
        origin, or a different category, is rejected.

        Raises:
            DuplicateComponentError: If the key exists with another origin.
            InvalidVersionRangeError: If ``constraint`` is not a valid range.
        """
        if origin is not None and origin != component.origin:
            component = component.model_copy(update={"origin": origin})

        existing = self._state.nodes.get(component.key)
        if existing is not None:
            if existing.component.origin != component.origin:
                msg = (
                    f"Component {component.key!r} is already registered from "
                    f"{existing.component.origin.kind} origin"
                )
                raise DuplicateComponentError(msg, key=component.key)
            if existing.component.category != component.category:
                msg = (
                    f"Component {component.key!r} is already registered as a "
                    f"{existing.component.category}"
                )
                raise DuplicateComponentError(msg, key=component.key)
            explicit = explicit or existing.explicit

        parse_range(constraint)
        node = WantedComponent(component=component, constraint=constraint, explicit=explicit)
        self._state = self._state.with_node(node)
        logger.debug("Added node %s (constraint=%s, explicit=%s)", node.key, constraint, explicit)
        return node

    def remove_node(self, key: str) -> None:
        """Remove a component, its selected release, and the edges it owns.

        Edges held by other selected releases towards ``key`` are kept; the
        validator reports them as dangling.

        Raises:
            UnknownComponentError: If the key is not registered.
        """
        if key not in self._state.nodes:
            msg = f"Component {key!r} is not part of the pack"
            raise UnknownComponentError(msg, key=key)
        dependents = self.dependents(key)
        self._state = self._state.without_node(key)
        if dependents:
            logger.warning(
                "Removed %s while still required by: %s", key, ", ".join(dependents)
            )
        else:
            logger.debug("Removed node %s", key)

    def dependents(self, key: str) -> list[str]:
        """Keys whose selected release holds a required edge to ``key``."""
        graph = self._state.edge_graph()
        if key not in graph:
            return []
        return sorted(
            source
            for source in graph.predecessors(key)
            if graph.edges[source, key]["kind"] == DependencyKind.REQUIRED
        )

    def edge_graph(self) -> nx.DiGraph[str]:
        return self._state.edge_graph()

    def snapshot(self) -> GraphSnapshot:
        """Return the current state. Snapshots are immutable and shareable."""
        return self._state

    def restore(self, snapshot: GraphSnapshot) -> None:
        """Roll the graph back to ``snapshot``."""
        self._state = snapshot

    def commit(self, snapshot: GraphSnapshot) -> None:
        """Replace the state with a validated resolution result."""
        self._state = snapshot
        logger.info(
            "Committed %d nodes with %d selected releases",
            len(snapshot.nodes),
            len(snapshot.assignment),
        )

    @contextlib.contextmanager
    def exclusive(self) -> Iterator[ComponentGraph]:
        """Hold the single-writer lock for one solve/commit cycle.

        Raises:
            ResolutionInProgressError: If another resolution holds the graph.
        """
        if not self._lock.acquire(blocking=False):
            msg = "A resolution is already in progress on this graph"
            raise ResolutionInProgressError(msg)
        try:
            yield self
        finally:
            self._lock.release()

    def export_view(self) -> GraphView:
        """Return a read-only view of the committed state.

        Raises:
            ResolutionInProgressError: While a resolution holds the graph.
        """
        if self.is_busy:
            msg = "The graph cannot be exported while a resolution is in progress"
            raise ResolutionInProgressError(msg)
        return view_of(self._state)
