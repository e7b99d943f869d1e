"""Metadata provider protocol consumed by the constraint solver."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from packsmith.entities.components import Component, ComponentVersion


@runtime_checkable
class MetadataProvider(Protocol):
    """Source of component records and their releases.

    Implementations raise ``ProviderError`` subclasses on failure and never
    return an empty result in place of an error.
    """

    def fetch_component(self, key: str) -> Component:
        """Return the component record (category and origin) for ``key``."""
        ...

    def fetch_versions(self, key: str) -> Sequence[ComponentVersion]:
        """Return every release of ``key``, ordered oldest to newest."""
        ...
