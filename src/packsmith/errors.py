"""Exception hierarchy for pack resolution."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Sequence

    from packsmith.workflows.models import ConflictLink, Violation


class PacksmithError(Exception):
    """Base exception for packsmith."""

    def to_json_error(self) -> dict[str, Any]:
        """Return a JSON-serializable error payload."""
        return {"message": str(self), "code": self.__class__.__name__}


# ---------------------------------------------------------------------------
# Graph structure
# ---------------------------------------------------------------------------


class GraphStructureError(PacksmithError):
    """Invalid structural change requested on a component graph."""

    def __init__(self, message: str, *, key: str) -> None:
        super().__init__(message)
        self.key = key


class DuplicateComponentError(GraphStructureError):
    """A component key is already registered with a different origin."""


class UnknownComponentError(GraphStructureError, KeyError):
    """A component key is not registered in the graph."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return str(self.args[0]) if self.args else ""


class ResolutionInProgressError(PacksmithError, RuntimeError):
    """The graph is held exclusively by an in-flight resolution."""


# ---------------------------------------------------------------------------
# Metadata providers
# ---------------------------------------------------------------------------


class ProviderError(PacksmithError):
    """A metadata provider failed to deliver a record."""

    def __init__(self, message: str, *, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key


class NotFoundError(ProviderError):
    """The registry has no component with this key."""


class RateLimitedError(ProviderError):
    """The registry refused the request because of rate limiting."""

    def __init__(
        self, message: str, *, key: str | None = None, retry_after: float | None = None
    ) -> None:
        super().__init__(message, key=key)
        self.retry_after = retry_after


class UnreachableError(ProviderError):
    """The registry could not be reached."""


class MalformedRecordError(ProviderError):
    """The registry answered with a record that could not be decoded."""


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


class UnsatisfiableConstraintsError(PacksmithError):
    """No assignment satisfies the constraints of the requested change.

    Attributes:
        component: Key of the component whose candidates ran out last.
        exhausted: Version strings that were tried for that component.
        chain: Conflicting edges collected while backtracking, oldest first.
    """

    def __init__(
        self,
        component: str,
        exhausted: Sequence[str],
        chain: Sequence[ConflictLink],
    ) -> None:
        self.component = component
        self.exhausted = tuple(exhausted)
        self.chain = tuple(chain)
        tried = ", ".join(self.exhausted) or "none"
        lines = [f"No version of {component!r} satisfies the pack (tried: {tried})"]
        lines.extend(f"  - {link.describe()}" for link in self.chain)
        super().__init__("\n".join(lines))

    def to_json_error(self) -> dict[str, Any]:
        payload = super().to_json_error()
        payload["component"] = self.component
        payload["exhausted"] = list(self.exhausted)
        payload["chain"] = [link.describe() for link in self.chain]
        return payload


class InconsistentResolutionError(PacksmithError):
    """The validator rejected an assignment proposed by the solver."""

    def __init__(self, violations: Sequence[Violation]) -> None:
        self.violations = tuple(violations)
        details = "; ".join(v.describe() for v in self.violations)
        super().__init__(f"Proposed assignment is inconsistent: {details}")


class InvalidVersionRangeError(PacksmithError, ValueError):
    """A version constraint string could not be parsed."""


class LockFileError(PacksmithError):
    """A lock file could not be read back into a graph state."""


class ProjectionError(PacksmithError):
    """An exported view cannot be turned into a pack index."""
