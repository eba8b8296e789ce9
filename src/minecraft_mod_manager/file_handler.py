"""File handler module: atomic writes, containment checks, hashing.

Provides the filesystem primitives the reconcilers build on:

* ``write_file_atomic`` -- replace a file's contents so readers see either
  the old or the new bytes, never a truncated file.
* ``resolve_writable_path`` -- resolve a destination inside a root
  directory, rejecting symlinks that point outside of it.
* ``replace_with_backup`` -- move a verified temp file over an existing
  destination, restoring the original if the final rename fails.
* ``sha1_for_file`` / ``read_text_with_encoding`` -- content helpers.
"""

from __future__ import annotations

import hashlib
import logging
import os
import tempfile
from pathlib import Path

from charset_normalizer import from_bytes

from minecraft_mod_manager.errors import (
    OutsideRootError,
    SiblingPathExhaustedError,
    raise_with_rollback,
)

logger = logging.getLogger(__name__)

MAX_SIBLING_ATTEMPTS = 100
SIBLING_MARKER = ".mmm"
_CHUNK_SIZE = 64 * 1024

# Platforms whose os module cannot inspect links get pass-through paths.
SYMLINKS_SUPPORTED = hasattr(os, "readlink") and hasattr(os, "lstat")


# =============================================================================
# Sibling paths
# =============================================================================


def next_sibling_path(target: Path, suffix: str) -> Path:
    """Return the first unused ``<target>.mmm<suffix>[.N]`` path.

    Raises:
        SiblingPathExhaustedError: If all candidates are taken.
    """
    base = f"{target}{SIBLING_MARKER}{suffix}"
    candidate = base
    for attempt in range(MAX_SIBLING_ATTEMPTS):
        if not os.path.lexists(candidate):
            return Path(candidate)
        candidate = f"{base}.{attempt + 1}"
    raise SiblingPathExhaustedError(str(target), suffix)


def remove_if_exists(path: Path) -> None:
    """Delete *path*, ignoring a file that is already gone."""
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


def _try_remove(path: Path, kind: str) -> list[BaseException]:
    """Remove *path* and return any failure instead of raising it."""
    try:
        remove_if_exists(path)
    except OSError as exc:
        return [OSError(f"failed to remove {kind} {path}: {exc}")]
    return []


def create_temp_sibling(destination: Path) -> Path:
    """Create an empty, uniquely named temp file beside *destination*."""
    fd, temp_path = tempfile.mkstemp(
        dir=str(destination.parent),
        prefix=f"{destination.name}{SIBLING_MARKER}.",
        suffix=".tmp",
    )
    os.close(fd)
    return Path(temp_path)


# =============================================================================
# Atomic File Writer
# =============================================================================


def write_file_atomic(target: Path, data: bytes) -> None:
    """Replace *target* with *data* atomically.

    The payload is written and flushed to a sibling temp file first.  A
    missing target is created by renaming the temp file into place.  An
    existing target is first overwritten by a direct rename; where the
    filesystem refuses that, the target is moved to a backup sibling, the
    temp file renamed into place and the backup deleted.

    On failure the temp file is removed and, if the target had already been
    moved aside, the backup is restored.  Rollback failures are reported
    together with the original error via ``AtomicWriteError``.

    Args:
        target: File to replace.
        data: New file contents.

    Raises:
        SiblingPathExhaustedError: No free temp or backup name.
        OSError: The write or rename failed (rollback succeeded).
        AtomicWriteError: The write failed and so did the rollback.
    """
    target = Path(target)
    temp_path = next_sibling_path(target, ".tmp")
    backup_path = next_sibling_path(target, ".bak")

    try:
        with open(temp_path, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
    except OSError as exc:
        raise_with_rollback(exc, _try_remove(temp_path, "temp file"))

    if not os.path.lexists(target):
        try:
            os.rename(temp_path, target)
        except OSError as exc:
            raise_with_rollback(exc, _try_remove(temp_path, "temp file"))
        return

    _replace_existing_file(temp_path, target, backup_path)


def _replace_existing_file(
    temp_path: Path, target: Path, backup_path: Path
) -> None:
    # os.rename overwrites on POSIX and refuses on Windows.
    try:
        os.rename(temp_path, target)
        return
    except OSError:
        logger.debug(
            "Direct overwrite of %s refused, swapping via backup", target
        )

    try:
        os.rename(target, backup_path)
    except OSError as exc:
        raise_with_rollback(exc, _try_remove(temp_path, "temp file"))

    try:
        os.rename(temp_path, target)
    except OSError as exc:
        rollback_errors = _try_remove(temp_path, "temp file")
        try:
            os.rename(backup_path, target)
        except OSError as restore_exc:
            rollback_errors.append(
                OSError(
                    f"failed to restore backup {backup_path}: {restore_exc}"
                )
            )
        raise_with_rollback(exc, rollback_errors)

    for err in _try_remove(backup_path, "backup file"):
        logger.warning("%s", err)


# =============================================================================
# Backup swap for downloaded files
# =============================================================================


def replace_with_backup(source: Path, destination: Path) -> None:
    """Move *source* over *destination*, keeping a backup until it lands.

    If *destination* does not exist *source* is simply renamed.  Otherwise
    the destination is renamed to a backup sibling first; if moving
    *source* into place then fails the backup is restored.  Failing to
    delete the backup afterwards is only logged at debug level.
    """
    if not os.path.lexists(destination):
        os.rename(source, destination)
        return

    backup_path = next_sibling_path(destination, ".bak")
    os.rename(destination, backup_path)

    try:
        os.rename(source, destination)
    except OSError as exc:
        rollback_errors: list[BaseException] = []
        try:
            os.rename(backup_path, destination)
        except OSError as restore_exc:
            rollback_errors.append(
                OSError(
                    f"failed to restore backup {backup_path}: {restore_exc}"
                )
            )
        raise_with_rollback(exc, rollback_errors)

    try:
        remove_if_exists(backup_path)
    except OSError as exc:
        logger.debug(
            "Could not remove backup %s: %s", backup_path, exc
        )


# =============================================================================
# Writable Path Resolver
# =============================================================================


def path_within_root(root: Path, candidate: Path) -> bool:
    """Return ``True`` if *candidate* is *root* or lies beneath it."""
    try:
        rel = os.path.relpath(candidate, root)
    except ValueError:
        # Different drives on Windows.
        return False
    if rel == ".":
        return True
    if rel == os.pardir or rel.startswith(os.pardir + os.sep):
        return False
    return not os.path.isabs(rel)


def resolve_writable_path(root: Path, destination: Path) -> Path:
    """Resolve *destination* to a physical path guaranteed inside *root*.

    * *root* is resolved through symlinks.
    * If *destination* is itself a symlink, its link target is followed
      (relative targets are taken relative to the link's directory) and
      the target's directory is resolved.
    * Otherwise the *parent directory* of *destination* is resolved and
      the file name re-joined.

    Args:
        root: Directory writes must stay inside (must exist).
        destination: Candidate path to write.

    Returns:
        The resolved physical path.  Without symlink support *destination*
        is returned unchanged.

    Raises:
        OutsideRootError: The resolved path escapes *root*.
        OSError: A directory on the way could not be resolved.
    """
    destination = Path(destination)
    if not SYMLINKS_SUPPORTED:
        return destination

    resolved_root = Path(root).resolve(strict=True)

    if destination.is_symlink():
        target = Path(os.readlink(destination))
        if not target.is_absolute():
            target = destination.parent / target
        resolved_dir = target.parent.resolve(strict=True)
        resolved = resolved_dir / target.name
    else:
        resolved_dir = destination.parent.resolve(strict=True)
        resolved = resolved_dir / destination.name

    if not path_within_root(resolved_root, resolved):
        raise OutsideRootError(
            path=str(destination),
            resolved_path=str(resolved),
            root=str(resolved_root),
        )
    return resolved


# =============================================================================
# Content helpers
# =============================================================================


def sha1_for_file(path: Path) -> str:
    """Return the lowercase hex SHA-1 digest of a file's bytes."""
    hasher = hashlib.sha1()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK_SIZE), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def hashes_equal(left: str, right: str) -> bool:
    """Case-insensitive hex digest comparison ignoring surrounding space."""
    return left.strip().lower() == right.strip().lower()


def read_text_with_encoding(path: Path) -> tuple[str, str]:
    """Read a text file with automatic encoding detection.

    Defaults to UTF-8 for empty files or when detection fails.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    raw = path.read_bytes()
    if not raw:
        return ("", "utf-8")

    result = from_bytes(raw).best()
    if result is None:
        return (raw.decode("utf-8", errors="replace"), "utf-8")

    encoding = result.encoding
    if encoding == "ascii":
        encoding = "utf-8"
    return (str(result), encoding)
