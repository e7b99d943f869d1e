"""Request, report and violation models for pack resolution."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from packsmith.entities.components import normalize_key
from packsmith.errors import InconsistentResolutionError
from packsmith.versioning import ANY_VERSION, parse_range

if TYPE_CHECKING:
    from packsmith.entities.components import ComponentVersion, LocalOrigin, RemoteOrigin
    from packsmith.entities.graph import DependencyEdge
    from packsmith.errors import UnsatisfiableConstraintsError


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AddComponent:
    """Add (or re-pin) a component at a version constraint."""

    key: str
    constraint: str = ANY_VERSION
    origin: RemoteOrigin | LocalOrigin | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "key", normalize_key(self.key))
        parse_range(self.constraint)


@dataclass(frozen=True)
class RemoveComponent:
    """Remove a component and re-resolve the rest of the pack without it."""

    key: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "key", normalize_key(self.key))


@dataclass(frozen=True)
class UpdateAll:
    """Re-resolve every component, preferring the newest candidates."""


ResolutionRequest = AddComponent | RemoveComponent | UpdateAll


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConflictLink:
    """One constraint that ruled out candidates during the search.

    ``source`` is None when the constraint comes from the pack itself (a pin
    or the pack target) rather than from an edge of a selected release.
    """

    target: str
    reason: str
    source: str | None = None
    source_version: str | None = None
    edge: DependencyEdge | None = None
    actual_version: str | None = None

    def describe(self) -> str:
        if self.source is None:
            origin = "pack"
        else:
            origin = f"{self.source}@{self.source_version}"
        constraint = f" {self.edge.kind} {self.edge.constraint}" if self.edge else ""
        actual = f" (selected: {self.actual_version})" if self.actual_version else ""
        return f"{origin} ->{constraint} {self.target}{actual}: {self.reason}"


@dataclass(frozen=True)
class MissingRequired:
    """A selected release requires a component that is not selected."""

    source: str
    edge: DependencyEdge

    @property
    def component(self) -> str:
        return self.source

    def describe(self) -> str:
        return f"{self.source} requires {self.edge.target} {self.edge.constraint}, which is missing"


@dataclass(frozen=True)
class RangeNotSatisfied:
    """A selected target lies outside the range of an edge pointing at it."""

    source: str
    edge: DependencyEdge
    actual_version: str

    @property
    def component(self) -> str:
        return self.source

    def describe(self) -> str:
        return (
            f"{self.source} needs {self.edge.target} {self.edge.constraint}, "
            f"but {self.actual_version} is selected"
        )


@dataclass(frozen=True)
class IncompatiblePair:
    """Two selected components declared incompatible. Keys are sorted."""

    component_a: str
    component_b: str

    @property
    def component(self) -> str:
        return self.component_a

    def describe(self) -> str:
        return f"{self.component_a} is incompatible with {self.component_b}"


@dataclass(frozen=True)
class LoaderMismatch:
    """A selected release does not support the pack's loader."""

    component: str
    required_set: frozenset[str]
    actual_loader: str

    def describe(self) -> str:
        loaders = ", ".join(sorted(self.required_set)) or "none"
        return f"{self.component} supports [{loaders}], pack loader is {self.actual_loader}"


@dataclass(frozen=True)
class GameVersionMismatch:
    """A selected release does not list the pack's game version."""

    component: str
    required_set: frozenset[str]
    actual_game_version: str

    def describe(self) -> str:
        versions = ", ".join(sorted(self.required_set)) or "none"
        return (
            f"{self.component} supports game versions [{versions}], "
            f"pack targets {self.actual_game_version}"
        )


@dataclass(frozen=True)
class UnselectedComponent:
    """A wanted component has no selected release."""

    component: str

    def describe(self) -> str:
        return f"{self.component} is wanted but no release is selected"


Violation = (
    MissingRequired
    | RangeNotSatisfied
    | IncompatiblePair
    | LoaderMismatch
    | GameVersionMismatch
    | UnselectedComponent
)


@dataclass(frozen=True)
class ConsistencyReport:
    """Outcome of a consistency check. Valid when there are no violations."""

    violations: tuple[Violation, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.violations

    def __bool__(self) -> bool:
        return self.is_valid

    def of_type(self, kind: type) -> list[Violation]:
        return [v for v in self.violations if isinstance(v, kind)]


# ---------------------------------------------------------------------------
# Resolution reports
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChangedComponent:
    """A component whose selected release changed.

    ``old_version`` is None for newly selected components and
    ``new_version`` is None for dropped ones.
    """

    key: str
    old_version: str | None
    new_version: str | None


@dataclass(frozen=True)
class ResolutionReport:
    """Result of ``PackSession.resolve``.

    On success ``assignment`` holds the committed releases. On failure the
    graph is unchanged and either ``unsatisfiable`` or ``violations`` explains
    why.
    """

    request: ResolutionRequest
    ok: bool
    assignment: tuple[ComponentVersion, ...] = ()
    changed_components: tuple[ChangedComponent, ...] = ()
    removed_components: tuple[ChangedComponent, ...] = ()
    violations: tuple[Violation, ...] = ()
    unsatisfiable: UnsatisfiableConstraintsError | None = field(default=None, compare=False)

    @property
    def unsatisfiable_chain(self) -> tuple[ConflictLink, ...]:
        return self.unsatisfiable.chain if self.unsatisfiable is not None else ()

    def raise_for_status(self) -> ResolutionReport:
        """Raise the failure as an exception; return self on success."""
        if self.unsatisfiable is not None:
            raise self.unsatisfiable
        if self.violations:
            raise InconsistentResolutionError(self.violations)
        return self
