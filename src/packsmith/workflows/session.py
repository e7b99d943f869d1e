"""Pack session: the consumer-facing resolve/check/export interface."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from packsmith.errors import (
    ResolutionInProgressError,
    UnknownComponentError,
    UnsatisfiableConstraintsError,
)
from packsmith.memory.component_graph import ComponentGraph
from packsmith.workflows.models import (
    AddComponent,
    ChangedComponent,
    RemoveComponent,
    ResolutionReport,
    UpdateAll,
)
from packsmith.workflows.solver import ConstraintSolver
from packsmith.workflows.validator import check_consistency

if TYPE_CHECKING:
    from collections.abc import Callable

    from packsmith.entities.pack import PackTarget
    from packsmith.memory.component_graph import GraphSnapshot, GraphView
    from packsmith.providers.base import MetadataProvider
    from packsmith.workflows.models import ConsistencyReport, ResolutionRequest

logger = logging.getLogger(__name__)


class PackSession:
    """Owns one component graph and runs every change through the solver.

    Each ``resolve`` holds the graph exclusively, snapshots it, solves,
    validates the proposal, and commits only a valid one. On any failure
    the snapshot is restored, so the exported view is unchanged.
    """

    def __init__(
        self,
        target: PackTarget,
        provider: MetadataProvider,
        *,
        snapshot: GraphSnapshot | None = None,
        solver: ConstraintSolver | None = None,
    ) -> None:
        self._graph = ComponentGraph(target, snapshot)
        self._provider = provider
        self._solver = solver or ConstraintSolver(provider)

    @classmethod
    def from_snapshot(cls, snapshot: GraphSnapshot, provider: MetadataProvider) -> PackSession:
        return cls(snapshot.target, provider, snapshot=snapshot)

    @property
    def graph(self) -> ComponentGraph:
        return self._graph

    @property
    def target(self) -> PackTarget:
        return self._graph.target

    def resolve(self, request: ResolutionRequest) -> ResolutionReport:
        """Apply ``request`` and return what changed.

        Unsatisfiable requests and rejected proposals come back as a failed
        report. Provider and graph-structure errors are raised after the
        graph has been restored.

        Raises:
            ResolutionInProgressError: If another resolution holds the graph.
            GraphStructureError: On a duplicate or unknown component.
            ProviderError: If metadata could not be fetched.
        """
        return self._transaction(request, lambda: self._propose(request))

    def retarget(self, target: PackTarget) -> ResolutionReport:
        """Switch the pack to a new loader or game version and re-resolve everything.

        The current assignment is discarded; every component is resolved
        again against ``target``. On failure the old target is kept.
        """
        request = UpdateAll()

        def prepare() -> GraphSnapshot:
            self._graph.restore(self._graph.snapshot().with_target(target))
            return self._solver.solve(self._graph.snapshot(), request)

        report = self._transaction(request, prepare)
        if report.ok:
            logger.info("Retargeted pack to %s %s", target.loader, target.game_version)
        return report

    def _transaction(
        self, request: ResolutionRequest, prepare: Callable[[], GraphSnapshot]
    ) -> ResolutionReport:
        with self._graph.exclusive():
            before = self._graph.snapshot()
            committed = False
            try:
                proposed = prepare()
                report = check_consistency(proposed)
                if not report.is_valid:
                    logger.warning(
                        "Rejected proposed assignment for %s: %d violation(s)",
                        type(request).__name__,
                        len(report.violations),
                    )
                    return ResolutionReport(
                        request=request, ok=False, violations=report.violations
                    )
                self._graph.commit(proposed)
                committed = True
            except UnsatisfiableConstraintsError as exc:
                logger.warning("Resolution of %s failed: %s", type(request).__name__, exc)
                return ResolutionReport(request=request, ok=False, unsatisfiable=exc)
            finally:
                if not committed:
                    self._graph.restore(before)

        return self._report(request, before, proposed)

    def remove(self, key: str) -> None:
        """Remove a component from the graph without re-resolving.

        Releases that still require ``key`` are left dangling and show up in
        ``check()`` as ``MissingRequired``.
        """
        with self._graph.exclusive():
            self._graph.remove_node(key)

    def check(self) -> ConsistencyReport:
        """Run the read-only consistency check on the committed graph.

        Raises:
            ResolutionInProgressError: While a resolution holds the graph.
        """
        if self._graph.is_busy:
            msg = "The graph cannot be checked while a resolution is in progress"
            raise ResolutionInProgressError(msg)
        return check_consistency(self._graph.snapshot())

    def export_view(self) -> GraphView:
        return self._graph.export_view()

    def _propose(self, request: ResolutionRequest) -> GraphSnapshot:
        if isinstance(request, AddComponent):
            existing = self._graph.nodes.get(request.key)
            component = (
                existing.component
                if existing is not None
                else self._provider.fetch_component(request.key)
            )
            self._graph.add_node(
                component, request.origin, constraint=request.constraint, explicit=True
            )
        elif isinstance(request, RemoveComponent):
            if request.key not in self._graph:
                msg = f"Component {request.key!r} is not part of the pack"
                raise UnknownComponentError(msg, key=request.key)
        return self._solver.solve(self._graph.snapshot(), request)

    @staticmethod
    def _report(
        request: ResolutionRequest, before: GraphSnapshot, after: GraphSnapshot
    ) -> ResolutionReport:
        changed: list[ChangedComponent] = []
        removed: list[ChangedComponent] = []
        for key in sorted(set(before.assignment) | set(after.assignment)):
            old = before.assignment.get(key)
            new = after.assignment.get(key)
            if old is not None and new is not None and old == new:
                continue
            entry = ChangedComponent(
                key=key,
                old_version=old.version if old is not None else None,
                new_version=new.version if new is not None else None,
            )
            (removed if new is None else changed).append(entry)

        return ResolutionReport(
            request=request,
            ok=True,
            assignment=tuple(after.assignment[key] for key in sorted(after.assignment)),
            changed_components=tuple(changed),
            removed_components=tuple(removed),
        )
