"""Workflows package."""

from packsmith.workflows.models import (
    AddComponent,
    ChangedComponent,
    ConflictLink,
    ConsistencyReport,
    GameVersionMismatch,
    IncompatiblePair,
    LoaderMismatch,
    MissingRequired,
    RangeNotSatisfied,
    RemoveComponent,
    ResolutionReport,
    ResolutionRequest,
    UnselectedComponent,
    UpdateAll,
    Violation,
)
from packsmith.workflows.session import PackSession
from packsmith.workflows.solver import ConstraintSolver, order_newest_first
from packsmith.workflows.validator import check_consistency

__all__ = [
    "AddComponent",
    "ChangedComponent",
    "ConflictLink",
    "ConsistencyReport",
    "ConstraintSolver",
    "GameVersionMismatch",
    "IncompatiblePair",
    "LoaderMismatch",
    "MissingRequired",
    "PackSession",
    "RangeNotSatisfied",
    "RemoveComponent",
    "ResolutionReport",
    "ResolutionRequest",
    "UnselectedComponent",
    "UpdateAll",
    "Violation",
    "check_consistency",
    "order_newest_first",
]
