"""Entity models for the packsmith domain layer."""

from packsmith.entities.components import (
    Category,
    Component,
    ComponentVersion,
    ContentRef,
    Environment,
    LocalOrigin,
    Origin,
    RemoteOrigin,
    SideRequirement,
    WantedComponent,
    normalize_key,
)
from packsmith.entities.graph import DependencyEdge, DependencyKind
from packsmith.entities.pack import Loader, PackTarget, default_foreign_loaders

__all__ = [
    "Category",
    "Component",
    "ComponentVersion",
    "ContentRef",
    "DependencyEdge",
    "DependencyKind",
    "Environment",
    "Loader",
    "LocalOrigin",
    "Origin",
    "PackTarget",
    "RemoteOrigin",
    "SideRequirement",
    "WantedComponent",
    "default_foreign_loaders",
    "normalize_key",
]
