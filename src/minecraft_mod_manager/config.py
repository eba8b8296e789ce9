"""Tool settings for the mod manager.

Reads catalog credentials and network tuning from CLI args, environment
variables, .env files, and YAML settings file fallbacks.  The mods
manifest itself (``modlist.json``) is handled by ``manifest``.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML settings > Built-in defaults

Environment variables:
    MODRINTH_API_KEY: Modrinth token (optional)
    CURSEFORGE_API_KEY: CurseForge API key (optional, most CurseForge calls need it)
    MODRINTH_API_URL: Modrinth API base URL (optional)
    CURSEFORGE_API_URL: CurseForge API base URL (optional)
    MMM_MAX_PARALLEL_REQUESTS: Max concurrent catalog requests (optional, default: 5)
    MMM_REQUESTS_PER_SECOND: Request rate limit (optional, default: unlimited)
    MMM_MAX_RETRIES: Retries on 5xx responses (optional, default: 3)
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

from minecraft_mod_manager.core.http import (
    DEFAULT_DOWNLOAD_TIMEOUT,
    DEFAULT_METADATA_TIMEOUT,
)

logger = logging.getLogger(__name__)


@dataclass
class Config:
    modrinth_api_key: str | None = None
    curseforge_api_key: str | None = None
    modrinth_api_url: str | None = None
    curseforge_api_url: str | None = None
    debug: bool = False
    max_parallel_requests: int = 5
    requests_per_second: float | None = None
    max_retries: int = 3
    retry_interval: float = 1.0
    metadata_timeout: float = DEFAULT_METADATA_TIMEOUT
    download_timeout: float = DEFAULT_DOWNLOAD_TIMEOUT


def _validate_url(name: str, value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if not value.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid {name} '{value}': must start with http:// or https://"
        )
    if not urlparse(value).hostname:
        raise ValueError(
            f"Invalid {name} '{value}': URL must include a hostname"
        )
    return value.removesuffix("/")


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If a URL or numeric setting is out of range.
    """
    config.modrinth_api_url = _validate_url(
        "Modrinth API URL", config.modrinth_api_url
    )
    config.curseforge_api_url = _validate_url(
        "CurseForge API URL", config.curseforge_api_url
    )

    if not (1 <= config.max_parallel_requests <= 100):
        raise ValueError(
            f"Invalid max_parallel_requests '{config.max_parallel_requests}': "
            "must be a number between 1 and 100"
        )
    if config.requests_per_second is not None and config.requests_per_second <= 0:
        raise ValueError(
            f"Invalid requests_per_second '{config.requests_per_second}': "
            "must be greater than 0"
        )
    if not (0 <= config.max_retries <= 10):
        raise ValueError(
            f"Invalid max_retries '{config.max_retries}': "
            "must be a number between 0 and 10"
        )
    if config.retry_interval < 0:
        raise ValueError(
            f"Invalid retry_interval '{config.retry_interval}': "
            "must not be negative"
        )
    for name in ("metadata_timeout", "download_timeout"):
        if getattr(config, name) <= 0:
            raise ValueError(
                f"Invalid {name} '{getattr(config, name)}': "
                "must be greater than 0"
            )

    if not config.curseforge_api_key:
        logger.debug(
            "No CurseForge API key configured; CurseForge requests may be "
            "rejected. Set CURSEFORGE_API_KEY."
        )


def get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _int_env(key: str, low: int, high: int) -> int | None:
    raw = os.getenv(key)
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        ) from None
    if not (low <= value <= high):
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        )
    return value


def _positive_float_env(key: str) -> float | None:
    raw = os.getenv(key)
    if raw is None:
        return None
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number greater than 0"
        ) from None
    if value <= 0:
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number greater than 0"
        )
    return value


def load_config(
    modrinth_api_key: str | None = None,
    curseforge_api_key: str | None = None,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        modrinth_api_key: Override Modrinth token.
        curseforge_api_key: Override CurseForge API key.
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Dict of values from the YAML settings
            ``platforms`` section.  Used as fallback when CLI arg and env
            var are both unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If a setting from any source is invalid.
    """
    fb = yaml_fallbacks or {}

    # --- String fields: CLI > env > YAML > None ---

    final_modrinth_key = (
        modrinth_api_key
        or os.getenv("MODRINTH_API_KEY")
        or fb.get("modrinth_api_key")
    )
    final_curseforge_key = (
        curseforge_api_key
        or os.getenv("CURSEFORGE_API_KEY")
        or fb.get("curseforge_api_key")
    )
    final_modrinth_url = os.getenv("MODRINTH_API_URL") or fb.get(
        "modrinth_api_url"
    )
    final_curseforge_url = os.getenv("CURSEFORGE_API_URL") or fb.get(
        "curseforge_api_url"
    )

    # --- Boolean fields: CLI > env > YAML > default ---

    if debug:
        final_debug = True
    else:
        env_debug = get_bool_env("MMM_DEBUG")
        if env_debug is not None:
            final_debug = env_debug
        else:
            final_debug = bool(fb.get("debug", False))

    # --- Numeric fields: env > YAML > default ---

    final_max_parallel = _int_env("MMM_MAX_PARALLEL_REQUESTS", 1, 100)
    if final_max_parallel is None:
        final_max_parallel = int(fb.get("max_parallel_requests", 5))

    final_max_retries = _int_env("MMM_MAX_RETRIES", 0, 10)
    if final_max_retries is None:
        final_max_retries = int(fb.get("max_retries", 3))

    final_rps = _positive_float_env("MMM_REQUESTS_PER_SECOND")
    if final_rps is None and fb.get("requests_per_second") is not None:
        final_rps = float(fb["requests_per_second"])

    config = Config(
        modrinth_api_key=(final_modrinth_key or "").strip() or None,
        curseforge_api_key=(final_curseforge_key or "").strip() or None,
        modrinth_api_url=final_modrinth_url,
        curseforge_api_url=final_curseforge_url,
        debug=final_debug,
        max_parallel_requests=final_max_parallel,
        requests_per_second=final_rps,
        max_retries=final_max_retries,
        retry_interval=float(fb.get("retry_interval", 1.0)),
        metadata_timeout=float(
            fb.get("metadata_timeout", DEFAULT_METADATA_TIMEOUT)
        ),
        download_timeout=float(
            fb.get("download_timeout", DEFAULT_DOWNLOAD_TIMEOUT)
        ),
    )

    validate_config(config)

    return config
