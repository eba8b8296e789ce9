"""Manifest and lock file persistence.

The manifest (``modlist.json``) declares which mods are wanted; the lock
file beside it (``modlist-lock.json``) records what was installed.  Both
are plain JSON documents validated with pydantic on read and written
through ``write_file_atomic`` so readers never see partial data.

``Metadata`` derives every path from the manifest location:

* ``dir`` -- directory containing the manifest.
* ``lock_path`` -- ``<manifest basename without extension>-lock.json``.
* ``mods_folder_path(config)`` -- the mods folder, joined with ``dir``
  unless it is absolute or rooted.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from minecraft_mod_manager.errors import (
    ConfigFileInvalidError,
    ConfigFileNotFoundError,
    LockFileInvalidError,
)
from minecraft_mod_manager.file_handler import write_file_atomic
from minecraft_mod_manager.models import (
    LockEntry,
    Loader,
    ModsConfig,
    ReleaseType,
    dump_json_model,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "modlist.json"
DEFAULT_MODS_FOLDER = "mods"

_LOCK_ADAPTER = TypeAdapter(list[LockEntry])


@dataclass(frozen=True)
class Metadata:
    """Paths derived from the manifest location."""

    config_path: Path

    @property
    def dir(self) -> Path:
        return Path(self.config_path).parent

    @property
    def lock_path(self) -> Path:
        return self.dir / f"{Path(self.config_path).stem}-lock.json"

    def mods_folder_path(self, config: ModsConfig) -> Path:
        folder = config.mods_folder
        if os.path.isabs(folder) or folder.startswith(("/", "\\")):
            return Path(folder)
        return self.dir / folder


def _to_json_bytes(payload: object) -> bytes:
    return (json.dumps(payload, indent=2) + "\n").encode("utf-8")


# ---------------------------------------------------------------------------
# Manifest
# ---------------------------------------------------------------------------


def read_config(meta: Metadata) -> ModsConfig:
    """Read and validate the manifest.

    Raises:
        ConfigFileNotFoundError: If the manifest does not exist.
        ConfigFileInvalidError: If it cannot be read or decoded, or
            fails validation.
    """
    path = Path(meta.config_path)
    if not path.is_file():
        raise ConfigFileNotFoundError(str(path))

    try:
        with open(path, encoding="utf-8") as fh:
            raw = fh.read()
        return ModsConfig.model_validate(json.loads(raw))
    except (
        OSError, UnicodeDecodeError, json.JSONDecodeError, ValidationError
    ) as exc:
        raise ConfigFileInvalidError(str(path), str(exc)) from exc


def write_config(meta: Metadata, config: ModsConfig) -> None:
    """Persist the manifest atomically."""
    write_file_atomic(
        Path(meta.config_path), _to_json_bytes(dump_json_model(config))
    )
    logger.debug("Wrote manifest %s", meta.config_path)


def init_config(meta: Metadata, game_version: str) -> ModsConfig:
    """Write a default manifest for *game_version* and return it."""
    config = ModsConfig(
        loader=Loader.FABRIC,
        game_version=game_version,
        default_allowed_release_types=[
            ReleaseType.RELEASE,
            ReleaseType.BETA,
        ],
        mods_folder=DEFAULT_MODS_FOLDER,
        mods=[],
    )
    write_config(meta, config)
    return config


# ---------------------------------------------------------------------------
# Lock file
# ---------------------------------------------------------------------------


def peek_lock(meta: Metadata) -> list[LockEntry]:
    """Return the lock entries without creating a missing lock file."""
    if not meta.lock_path.exists():
        return []
    return read_lock(meta)


def ensure_lock(meta: Metadata) -> list[LockEntry]:
    """Return the lock entries, creating an empty lock file if absent."""
    if not meta.lock_path.exists():
        write_lock(meta, [])
        return []
    return read_lock(meta)


def read_lock(meta: Metadata) -> list[LockEntry]:
    """Read and validate the lock file.

    Raises:
        LockFileInvalidError: If it cannot be read or decoded, or fails
            validation.
    """
    path = meta.lock_path
    try:
        with open(path, encoding="utf-8") as fh:
            raw = fh.read()
        return _LOCK_ADAPTER.validate_python(json.loads(raw))
    except (
        OSError, UnicodeDecodeError, json.JSONDecodeError, ValidationError
    ) as exc:
        raise LockFileInvalidError(str(path), str(exc)) from exc


def write_lock(meta: Metadata, lock: list[LockEntry]) -> None:
    """Persist the lock entries atomically."""
    payload = [dump_json_model(entry) for entry in lock]
    write_file_atomic(meta.lock_path, _to_json_bytes(payload))
    logger.debug("Wrote lock file %s (%d entries)", meta.lock_path, len(lock))
