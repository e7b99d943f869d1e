"""Consistency check of a graph state against its pack target."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from packsmith.entities.components import Category
from packsmith.entities.graph import DependencyKind
from packsmith.workflows.models import (
    ConsistencyReport,
    GameVersionMismatch,
    IncompatiblePair,
    LoaderMismatch,
    MissingRequired,
    RangeNotSatisfied,
    UnselectedComponent,
)

if TYPE_CHECKING:
    from packsmith.entities.components import ComponentVersion
    from packsmith.memory.component_graph import GraphSnapshot
    from packsmith.workflows.models import Violation

logger = logging.getLogger(__name__)


def check_consistency(snapshot: GraphSnapshot) -> ConsistencyReport:
    """Re-check every selected release of ``snapshot``.

    Never mutates anything. Violations are ordered by component key; within a
    component the loader check comes first, then the game version, then the
    dependency edges in declaration order. Wanted components without a
    selected release are reported last.
    """
    violations: list[Violation] = []
    seen_pairs: set[tuple[str, str]] = set()

    for key in sorted(snapshot.assignment):
        version = snapshot.assignment[key]
        violations.extend(_check_compatibility(snapshot, key, version))

        for edge in version.dependencies:
            if edge.target == key:
                continue
            selected = snapshot.assignment.get(edge.target)
            if selected is None:
                if edge.kind == DependencyKind.REQUIRED:
                    violations.append(MissingRequired(source=key, edge=edge))
                continue
            if edge.kind.constrains_when_present:
                if not edge.allows(selected.version):
                    violations.append(
                        RangeNotSatisfied(source=key, edge=edge, actual_version=selected.version)
                    )
            elif edge.allows(selected.version):
                a, b = sorted((key, edge.target))
                if (a, b) not in seen_pairs:
                    seen_pairs.add((a, b))
                    violations.append(IncompatiblePair(component_a=a, component_b=b))

    violations.extend(
        UnselectedComponent(component=key)
        for key in sorted(snapshot.nodes)
        if key not in snapshot.assignment
    )

    if violations:
        logger.debug("Consistency check found %d violation(s)", len(violations))
    return ConsistencyReport(violations=tuple(violations))


def _check_compatibility(
    snapshot: GraphSnapshot, key: str, version: ComponentVersion
) -> list[Violation]:
    target = snapshot.target
    found: list[Violation] = []
    if not target.accepts_loaders(version.loaders):
        found.append(
            LoaderMismatch(
                component=key,
                required_set=version.loaders,
                actual_loader=str(target.loader),
            )
        )
    node = snapshot.nodes.get(key)
    # A release without a node can only come from a hand-edited lock file;
    # without a category it is held to the game version like a mod.
    category = node.component.category if node is not None else Category.MOD
    if not target.accepts_game_versions(version.game_versions, category):
        found.append(
            GameVersionMismatch(
                component=key,
                required_set=version.game_versions,
                actual_game_version=target.game_version,
            )
        )
    return found

