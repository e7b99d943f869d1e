"""Provider that asks several providers in turn."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from packsmith.errors import NotFoundError

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from typing import TypeVar

    from packsmith.entities.components import Component, ComponentVersion
    from packsmith.providers.base import MetadataProvider

    T = TypeVar("T")

logger = logging.getLogger(__name__)


class ChainedProvider:
    """Query providers in order, falling through only on ``NotFoundError``.

    Any other provider error is raised immediately; an unreachable registry
    must not make a local declaration with the same key win silently.
    """

    def __init__(self, providers: Sequence[MetadataProvider]) -> None:
        if not providers:
            msg = "ChainedProvider needs at least one provider"
            raise ValueError(msg)
        self._providers = tuple(providers)

    def fetch_component(self, key: str) -> Component:
        return self._first(key, lambda provider: provider.fetch_component(key))

    def fetch_versions(self, key: str) -> Sequence[ComponentVersion]:
        return self._first(key, lambda provider: provider.fetch_versions(key))

    def _first(self, key: str, call: Callable[[MetadataProvider], T]) -> T:
        last_exc: NotFoundError | None = None
        for provider in self._providers:
            try:
                return call(provider)
            except NotFoundError as exc:
                logger.debug("%s has no %s, trying next", type(provider).__name__, key)
                last_exc = exc
        msg = f"No provider knows component {key!r}"
        raise NotFoundError(msg, key=key) from last_exc
