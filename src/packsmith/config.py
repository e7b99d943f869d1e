"""Provider, storage and logging configuration."""

from __future__ import annotations

import logging
import sys

from pydantic import BaseModel, Field

from packsmith import __version__

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class ProviderConfig(BaseModel):
    """Configuration for the Modrinth metadata provider."""

    api_base: str = Field(default="https://api.modrinth.com/v2")
    user_agent: str = Field(
        default=f"packsmith/{__version__} (dependency resolver)",
        description="Modrinth asks clients to identify themselves",
    )
    timeout: float = Field(default=30.0, description="Per-request timeout in seconds")

    # Retry settings for rate limiting and transport failures
    max_retries: int = Field(default=3, ge=1)
    retry_base_delay: float = Field(default=0.5, ge=0.0)
    max_retry_delay: float = Field(default=30.0, ge=0.0)


class StoreConfig(BaseModel):
    """File names used by the lock store and the local provider."""

    lock_file_name: str = Field(default="packsmith.lock.json")
    declaration_glob: str = Field(default="*.pack.yml")


# Default configuration
PROVIDER_CONFIG = ProviderConfig()
STORE_CONFIG = StoreConfig()


def configure_logging(level: int = logging.INFO) -> None:
    """Send log records to stderr. Called by entry points, never by the library."""
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stderr)],
    )
