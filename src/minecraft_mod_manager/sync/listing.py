"""Declared mods and whether their locked files are present."""

from __future__ import annotations

import logging
from pathlib import Path

from minecraft_mod_manager.errors import InvalidFileNameError
from minecraft_mod_manager.manifest import Metadata, peek_lock, read_config
from minecraft_mod_manager.models import find_lock_index
from minecraft_mod_manager.sync.models import ListedMod
from minecraft_mod_manager.validators import normalize_file_name

logger = logging.getLogger(__name__)


def list_mods(config_path: Path) -> list[ListedMod]:
    """Every declared mod, sorted by display name, case-insensitively.

    A mod counts as installed when it has a lock entry and the locked
    file exists in the mods folder.  Nothing is written; a missing lock
    file means nothing is installed.

    Raises:
        ConfigFileNotFoundError: No manifest.
        ConfigFileInvalidError: Unreadable manifest.
        LockFileInvalidError: Unreadable lock file.
    """
    meta = Metadata(Path(config_path))
    cfg = read_config(meta)
    lock = peek_lock(meta)
    mods_root = meta.mods_folder_path(cfg)

    listed = []
    for mod in cfg.mods:
        installed = False
        file_name = None
        lock_index = find_lock_index(lock, mod.type, mod.id)
        if lock_index >= 0:
            try:
                file_name = normalize_file_name(lock[lock_index].file_name)
            except InvalidFileNameError as exc:
                logger.error("%s: %s", mod.name or mod.id, exc)
            else:
                installed = (mods_root / file_name).is_file()
        listed.append(
            ListedMod(
                name=mod.name or mod.id,
                platform=mod.type,
                project_id=mod.id,
                installed=installed,
                file_name=file_name if installed else None,
                pinned_version=mod.pinned_version,
            )
        )
    return sorted(listed, key=lambda item: item.name.lower())
