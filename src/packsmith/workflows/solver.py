"""Constraint solver: backtracking search for a consistent assignment.

The search walks a worklist of component keys. Each key gets a decision
frame holding its pruned, ordered candidates and the set of earlier
decisions that ruled candidates out. When a frame runs out of candidates the
search jumps back to the most recent decision in that conflict set
(conflict-directed backjumping) instead of the chronologically previous one.

Search state is immutable. Each frame keeps the state it was opened from, so
undoing a decision is just discarding frames.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from packsmith.entities.components import WantedComponent
from packsmith.entities.graph import DependencyKind
from packsmith.errors import MalformedRecordError, UnsatisfiableConstraintsError
from packsmith.workflows.models import (
    AddComponent,
    ConflictLink,
    RemoveComponent,
    UpdateAll,
)

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from packsmith.entities.components import Component, ComponentVersion
    from packsmith.memory.component_graph import GraphSnapshot
    from packsmith.providers.base import MetadataProvider
    from packsmith.workflows.models import ResolutionRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _SearchState:
    assignment: Mapping[str, ComponentVersion]
    pending: tuple[str, ...]


@dataclass
class _Decision:
    key: str
    state: _SearchState
    candidates: tuple[ComponentVersion, ...]
    considered: tuple[str, ...]
    index: int = 0
    conflicts: set[str] = field(default_factory=set)
    reasons: list[ConflictLink] = field(default_factory=list)


def order_newest_first(versions: Sequence[ComponentVersion]) -> list[ComponentVersion]:
    """Order releases newest first.

    ``versions`` is in registry order (oldest to newest). A version string
    ranks by its latest registry position; releases sharing a version string
    are ordered by most recent ``published``, then by later registry position.
    """
    rank: dict[str, int] = {}
    for position, version in enumerate(versions):
        rank[version.version] = position

    def sort_key(item: tuple[int, ComponentVersion]) -> tuple[int, float, int]:
        position, version = item
        published = version.published.timestamp() if version.published else float("-inf")
        return (rank[version.version], published, position)

    ordered = sorted(enumerate(versions), key=sort_key, reverse=True)
    return [version for _, version in ordered]


class ConstraintSolver:
    """Computes a new assignment for a graph state and a change request.

    The solver never touches a ``ComponentGraph``; it reads a snapshot and
    returns a proposed one. Provider errors propagate unchanged.
    """

    def __init__(self, provider: MetadataProvider) -> None:
        self._provider = provider

    def solve(self, snapshot: GraphSnapshot, request: ResolutionRequest) -> GraphSnapshot:
        """Return the proposed snapshot for ``request`` applied to ``snapshot``.

        For ``AddComponent`` the requested node must already be part of
        ``snapshot``; the session registers it before solving.

        Raises:
            UnsatisfiableConstraintsError: If no consistent assignment exists.
            ProviderError: If metadata could not be fetched.
        """
        search = _Search(self._provider, snapshot, request)
        return search.run()


class _Search:
    """One solver run. Fetches and compatibility filtering are memoized here."""

    def __init__(
        self,
        provider: MetadataProvider,
        snapshot: GraphSnapshot,
        request: ResolutionRequest,
    ) -> None:
        self._provider = provider
        self._snapshot = snapshot
        self._request = request
        self._banned: frozenset[str] = (
            frozenset({request.key}) if isinstance(request, RemoveComponent) else frozenset()
        )
        self._nodes = {k: v for k, v in snapshot.nodes.items() if k not in self._banned}
        self._explicit = frozenset(k for k, v in self._nodes.items() if v.explicit)
        self._components: dict[str, Component] = {}
        self._compatible: dict[str, tuple[ComponentVersion, ...]] = {}

    # -- entry point ---------------------------------------------------------

    def run(self) -> GraphSnapshot:
        state = _SearchState(assignment={}, pending=self._seed())
        stack: list[_Decision] = []
        steps = 0
        while True:
            key, state = self._next_key(state)
            if key is None:
                break
            stack.append(self._open(key, state))
            state = self._advance(stack)
            steps += 1

        logger.debug("Search finished after %d decision(s)", steps)
        return self._result(state.assignment)

    def _seed(self) -> tuple[str, ...]:
        explicit = sorted(self._explicit)
        seeds = list(explicit)
        if isinstance(self._request, AddComponent) and self._request.key not in seeds:
            seeds.append(self._request.key)
        seeds.extend(sorted(k for k in self._nodes if k not in self._explicit))
        return tuple(seeds)

    def _next_key(self, state: _SearchState) -> tuple[str | None, _SearchState]:
        pending = list(state.pending)
        while pending:
            key = pending.pop(0)
            if key in state.assignment or key in self._banned:
                continue
            # Implicit nodes are only resolved while something still requires them.
            if key not in self._explicit and not self._required_by(state.assignment, key):
                continue
            return key, _SearchState(assignment=state.assignment, pending=tuple(pending))
        return None, _SearchState(assignment=state.assignment, pending=())

    # -- decisions -----------------------------------------------------------

    def _open(self, key: str, state: _SearchState) -> _Decision:
        """Build the decision frame for ``key``: prune, order, and note why."""
        compatible = self._compatible_versions(key)
        decision = _Decision(key=key, state=state, candidates=(), considered=())

        if not compatible:
            target = self._snapshot.target
            decision.reasons.append(
                ConflictLink(
                    target=key,
                    reason=f"no release supports {target.loader} {target.game_version}",
                )
            )

        candidates = list(compatible)

        node = self._nodes.get(key)
        if node is not None and not node.version_range.is_unbounded:
            kept = [v for v in candidates if node.version_range.matches(v.version)]
            if len(kept) < len(candidates):
                decision.reasons.append(
                    ConflictLink(target=key, reason=f"pinned to {node.constraint}")
                )
            candidates = kept

        for source in sorted(state.assignment):
            selected = state.assignment[source]
            for edge in selected.dependencies:
                if edge.target != key:
                    continue
                if edge.kind.constrains_when_present:
                    kept = [v for v in candidates if edge.allows(v.version)]
                    reason = "range not satisfied"
                else:
                    kept = [v for v in candidates if not edge.allows(v.version)]
                    reason = "declared incompatible"
                if len(kept) < len(candidates):
                    decision.conflicts.add(source)
                    decision.reasons.append(
                        ConflictLink(
                            target=key,
                            reason=f"{reason}, excluded {len(candidates) - len(kept)} release(s)",
                            source=source,
                            source_version=selected.version,
                            edge=edge,
                        )
                    )
                candidates = kept

        if key not in self._explicit:
            # The key is only wanted because these decisions require it.
            decision.conflicts.update(self._required_by(state.assignment, key))

        decision.candidates = tuple(self._prefer_current(key, candidates))
        decision.considered = tuple(dict.fromkeys(v.version for v in decision.candidates))
        logger.debug(
            "Opened %s with %d of %d candidate(s)",
            key,
            len(decision.candidates),
            len(compatible),
        )
        return decision

    def _advance(self, stack: list[_Decision]) -> _SearchState:
        """Select a candidate for the top frame, backjumping on exhaustion."""
        while True:
            decision = stack[-1]
            chosen = self._next_candidate(decision)
            if chosen is not None:
                return self._assign(decision, chosen)

            culprits = decision.conflicts - {decision.key}
            stack.pop()
            while stack and stack[-1].key not in culprits:
                stack.pop()
            if not stack:
                logger.debug("No decision left to revisit for %s", decision.key)
                raise UnsatisfiableConstraintsError(
                    decision.key, decision.considered, decision.reasons
                )

            back = stack[-1]
            back.conflicts |= culprits - {back.key}
            back.reasons.extend(decision.reasons)
            logger.debug("Exhausted %s, jumping back to %s", decision.key, back.key)

    def _next_candidate(self, decision: _Decision) -> ComponentVersion | None:
        assignment = decision.state.assignment
        while decision.index < len(decision.candidates):
            candidate = decision.candidates[decision.index]
            decision.index += 1
            if self._accepts(decision, candidate, assignment):
                return candidate
        return None

    def _accepts(
        self,
        decision: _Decision,
        candidate: ComponentVersion,
        assignment: Mapping[str, ComponentVersion],
    ) -> bool:
        """Check a candidate's own edges against the assigned releases."""
        for edge in candidate.dependencies:
            if edge.target == decision.key:
                continue
            if edge.kind == DependencyKind.REQUIRED and edge.target in self._banned:
                decision.reasons.append(
                    ConflictLink(
                        target=edge.target,
                        reason="requires a component being removed",
                        source=decision.key,
                        source_version=candidate.version,
                        edge=edge,
                    )
                )
                return False

            selected = assignment.get(edge.target)
            if selected is None:
                continue
            if edge.kind.constrains_when_present:
                conflict = not edge.allows(selected.version)
                reason = "range not satisfied"
            else:
                conflict = edge.allows(selected.version)
                reason = "declared incompatible"
            if conflict:
                decision.conflicts.add(edge.target)
                decision.reasons.append(
                    ConflictLink(
                        target=edge.target,
                        reason=reason,
                        source=decision.key,
                        source_version=candidate.version,
                        edge=edge,
                        actual_version=selected.version,
                    )
                )
                return False
        return True

    def _assign(self, decision: _Decision, chosen: ComponentVersion) -> _SearchState:
        state = decision.state
        assignment = dict(state.assignment)
        assignment[decision.key] = chosen
        pending = list(state.pending)
        for edge in chosen.required_dependencies():
            if edge.target not in assignment and edge.target not in pending:
                pending.append(edge.target)
        logger.debug("Selected %s", chosen.label)
        return _SearchState(assignment=assignment, pending=tuple(pending))

    # -- candidates ----------------------------------------------------------

    def _component(self, key: str) -> Component:
        node = self._nodes.get(key)
        if node is not None:
            return node.component
        if key not in self._components:
            self._components[key] = self._provider.fetch_component(key)
        return self._components[key]

    def _compatible_versions(self, key: str) -> tuple[ComponentVersion, ...]:
        """Fetch ``key`` once and keep releases that run on the pack target."""
        if key in self._compatible:
            return self._compatible[key]

        category = self._component(key).category
        versions = self._provider.fetch_versions(key)
        for version in versions:
            if version.component != key:
                msg = f"Provider returned {version.label} when asked for {key!r}"
                raise MalformedRecordError(msg, key=key)

        target = self._snapshot.target
        compatible = tuple(
            version
            for version in order_newest_first(versions)
            if target.accepts_loaders(version.loaders)
            and target.accepts_game_versions(version.game_versions, category)
        )
        self._compatible[key] = compatible
        return compatible

    def _prefer_current(
        self, key: str, candidates: list[ComponentVersion]
    ) -> list[ComponentVersion]:
        """Move the currently selected release to the front, except on updates."""
        if isinstance(self._request, UpdateAll):
            return candidates
        current = self._snapshot.assignment.get(key)
        if current is None:
            return candidates
        for index, candidate in enumerate(candidates):
            if (candidate.version, candidate.version_id) == (current.version, current.version_id):
                return [candidate, *candidates[:index], *candidates[index + 1 :]]
        return candidates

    @staticmethod
    def _required_by(assignment: Mapping[str, ComponentVersion], key: str) -> set[str]:
        return {
            source
            for source, version in assignment.items()
            if source != key
            and any(edge.target == key for edge in version.required_dependencies())
        }

    # -- result --------------------------------------------------------------

    def _result(self, assignment: Mapping[str, ComponentVersion]) -> GraphSnapshot:
        nodes: dict[str, WantedComponent] = {}
        for key in sorted(assignment):
            node = self._nodes.get(key)
            if node is None:
                node = WantedComponent(component=self._component(key), explicit=False)
            nodes[key] = node

        dropped = sorted(set(self._nodes) - set(nodes))
        if dropped:
            logger.debug("Dropping components no longer required: %s", ", ".join(dropped))
        return self._snapshot.with_assignment(nodes, assignment)
