"""Domain models for dependency edges between components."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, field_validator

from packsmith.versioning import ANY_VERSION, VersionRange, parse_range


class DependencyKind(StrEnum):
    """Relationship a release declares towards another component."""

    REQUIRED = "required"
    OPTIONAL = "optional"
    INCOMPATIBLE = "incompatible"
    EMBEDDED = "embedded"

    @property
    def constrains_when_present(self) -> bool:
        """Kinds whose range must hold whenever the target is selected."""
        return self in (
            DependencyKind.REQUIRED,
            DependencyKind.OPTIONAL,
            DependencyKind.EMBEDDED,
        )


class DependencyEdge(BaseModel):
    """A constraint from one release to a target component."""

    model_config = ConfigDict(frozen=True)

    target: str
    kind: DependencyKind = DependencyKind.REQUIRED
    constraint: str = ANY_VERSION

    @field_validator("target", mode="before")
    @classmethod
    def _normalize_target(cls, v: str) -> str:
        from packsmith.entities.components import normalize_key

        return normalize_key(v)

    @field_validator("constraint", mode="before")
    @classmethod
    def _validate_constraint(cls, v: str | None) -> str:
        # Parsing raises InvalidVersionRangeError (a ValueError) on bad input.
        return parse_range(v).raw

    @property
    def version_range(self) -> VersionRange:
        return parse_range(self.constraint)

    def allows(self, version: str) -> bool:
        """Return True when ``version`` lies inside this edge's range."""
        return self.version_range.matches(version)

    def describe(self) -> str:
        return f"{self.kind} {self.target} {self.constraint}"
