"""Metadata providers: sources of component records and releases."""

from packsmith.providers.base import MetadataProvider
from packsmith.providers.chained import ChainedProvider
from packsmith.providers.local import ComponentDeclaration, LocalProvider
from packsmith.providers.modrinth import ModrinthProvider

__all__ = [
    "ChainedProvider",
    "ComponentDeclaration",
    "LocalProvider",
    "MetadataProvider",
    "ModrinthProvider",
]
