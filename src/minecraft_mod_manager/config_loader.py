"""
Settings file discovery and loading for minecraft_mod_manager.

Settings files hold tool settings (API keys, rate limits, logging), never
the mods manifest.  Files are found by convention, merged with "project
wins" semantics, and ``${VAR}`` references are expanded from the
environment.

Usage:
    from minecraft_mod_manager.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

SETTINGS_ENV_VAR = "MMM_SETTINGS"

# ---------------------------------------------------------------------------
# 1. Env var interpolation
# ---------------------------------------------------------------------------

# Matches ${VAR} and ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` patterns with env values.

    * ``${VAR}`` is replaced with ``os.environ.get(VAR, "")``.
    * ``${VAR:-default}`` uses *default* when VAR is unset or empty.
    * Literal ``${`` with no closing ``}`` is left untouched.
    """

    def _replace(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        return match.group(2) or ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _interpolate_recursive(obj: Any) -> Any:
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _interpolate_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_recursive(item) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# 2. Convention-based file discovery
# ---------------------------------------------------------------------------


def discover_config_files() -> list[Path]:
    """Return existing settings file paths in precedence order (highest first).

    Search order:
        1. ``MMM_SETTINGS`` env var (explicit single path)
        2. ``.mmm/settings.yml`` in CWD (project-level)
        3. ``~/.config/mmm/settings.yml`` (XDG global)

    Only paths that exist on disk are returned.
    """
    candidates: list[Path] = []

    env_path = os.environ.get(SETTINGS_ENV_VAR)
    if env_path:
        explicit = Path(env_path).expanduser().resolve()
        if not explicit.exists():
            logger.warning(
                "%s points to a missing file: %s", SETTINGS_ENV_VAR, explicit
            )
        candidates.append(explicit)

    candidates.append(Path.cwd() / ".mmm" / "settings.yml")
    candidates.append(Path.home() / ".config" / "mmm" / "settings.yml")

    return [p for p in candidates if p.exists()]


# ---------------------------------------------------------------------------
# 3. Hierarchical merge
# ---------------------------------------------------------------------------


def load_yaml_file(path: Path) -> Any:
    with open(path, "r", encoding="utf-8") as fh:
        return yaml.safe_load(fh)


def load_hierarchical_config() -> dict[str, Any]:
    """Load and merge all discovered settings files.

    Merge strategy ("project wins"):
        Files are loaded from lowest precedence to highest.  Each file's
        top-level keys **replace** (not deep-merge) those from earlier files.

    After merging, env var interpolation is applied to all string values.

    Returns an empty dict when no settings files exist (zero-config).
    """
    paths = discover_config_files()

    if not paths:
        logger.debug("No settings files found, using defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading settings: %s", path)
        try:
            data = load_yaml_file(path)
        except (OSError, yaml.YAMLError):
            logger.exception("Failed to load settings file %s", path)
            raise

        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Settings file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_recursive(merged)
