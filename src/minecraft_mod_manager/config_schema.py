"""Settings file schema for minecraft_mod_manager.

Defines Pydantic models for the YAML settings file with dedicated
sections for the remote catalogs and logging, plus an adapter that turns
the validated sections into the ``Config`` dataclass.

Usage:
    from minecraft_mod_manager.config_schema import build_settings, to_config

    raw = load_hierarchical_config()
    settings = build_settings(raw)
    config = to_config(settings, cli_overrides={"debug": True})
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from minecraft_mod_manager.core.http import (
    DEFAULT_DOWNLOAD_TIMEOUT,
    DEFAULT_METADATA_TIMEOUT,
)

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class PlatformsConfig(BaseModel):
    """Remote catalog settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    modrinth_api_key: str | None = Field(
        default=None, description="Modrinth token"
    )
    curseforge_api_key: str | None = Field(
        default=None, description="CurseForge API key"
    )
    modrinth_api_url: str | None = Field(
        default=None, description="Modrinth API base URL"
    )
    curseforge_api_url: str | None = Field(
        default=None, description="CurseForge API base URL"
    )
    debug: bool = Field(default=False, description="Enable debug mode")
    max_parallel_requests: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Maximum concurrent catalog requests (1-100)",
    )
    requests_per_second: float | None = Field(
        default=None,
        gt=0,
        description="Request rate limit, unlimited when null",
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retries for 5xx responses (0-10)",
    )
    retry_interval: float = Field(
        default=1.0, ge=0, description="Seconds between retries"
    )
    metadata_timeout: float = Field(
        default=DEFAULT_METADATA_TIMEOUT,
        gt=0,
        description="Timeout for catalog API calls in seconds",
    )
    download_timeout: float = Field(
        default=DEFAULT_DOWNLOAD_TIMEOUT,
        gt=0,
        description="Timeout for mod downloads in seconds",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------


class Settings(BaseModel):
    """Top-level settings file model.

    Every section has sensible defaults, so ``Settings()`` (zero-config)
    is always valid.
    """

    platforms: PlatformsConfig = Field(default_factory=PlatformsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_settings(raw_data: dict) -> Settings:
    """Construct ``Settings`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully; anything absent gets defaults.

    Raises:
        pydantic.ValidationError: A section has invalid values.
    """
    if not raw_data:
        return Settings()

    return Settings(**raw_data)


# ---------------------------------------------------------------------------
# Adapter: Settings -> Config dataclass
# ---------------------------------------------------------------------------


def to_config(
    settings: Settings,
    cli_overrides: dict | None = None,
) -> Config:
    """Convert ``Settings`` into the ``Config`` dataclass, honouring
    environment variables and CLI overrides on top.

    CLI overrides dict keys: modrinth_api_key, curseforge_api_key, debug.
    """
    # Import here to avoid circular imports
    from .config import load_config

    overrides = cli_overrides or {}
    return load_config(
        modrinth_api_key=overrides.get("modrinth_api_key"),
        curseforge_api_key=overrides.get("curseforge_api_key"),
        debug=overrides.get("debug", False),
        yaml_fallbacks=settings.platforms.model_dump(),
    )
