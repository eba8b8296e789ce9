"""
Input validation functions for mod file names.

Catalogs report the file name a mod should be saved under.  Those names
are joined to the mods folder, so they are validated before any download
to ensure they cannot name a path outside of it.
"""

import re

from minecraft_mod_manager.errors import InvalidFileNameError

MOD_FILE_EXTENSION = ".jar"

_DRIVE_LETTER = re.compile(r"^[A-Za-z]:")


def normalize_file_name(value: str) -> str:
    """
    Validate and normalise a mod file name.

    Args:
        value: File name as reported by a catalog or stored in the lock.

    Returns:
        The file name with surrounding whitespace removed.

    Raises:
        InvalidFileNameError: With reason ``empty``, ``unc_path``,
            ``drive_letter``, ``path_separator`` or ``extension``.

    Validation rules:
        - Cannot be empty or whitespace-only
        - Cannot be a UNC path (``\\\\server`` or ``//server``)
        - Cannot start with a drive letter (``C:``)
        - Cannot contain ``/`` or ``\\``
        - Must end in ``.jar`` (case-insensitive)
    """
    name = value.strip()
    if not name:
        raise InvalidFileNameError(value, "empty")
    if name.startswith("\\\\") or name.startswith("//"):
        raise InvalidFileNameError(name, "unc_path")
    if _DRIVE_LETTER.match(name):
        raise InvalidFileNameError(name, "drive_letter")
    if "/" in name or "\\" in name:
        raise InvalidFileNameError(name, "path_separator")
    if not name.lower().endswith(MOD_FILE_EXTENSION):
        raise InvalidFileNameError(name, "extension")
    return name


def is_mod_file_name(value: str) -> bool:
    """Return ``True`` if *value* looks like a mod binary (``*.jar``)."""
    return value.lower().endswith(MOD_FILE_EXTENSION)
