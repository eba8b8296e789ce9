"""Download-verify-swap for mod binaries.

A mod file is never written in place.  It is downloaded into a unique
temp sibling (``<name>.mmm.<random>.tmp``), hashed, and only moved over
the destination when the SHA-1 matches what the catalog or lock file
promised.  The move keeps a backup of the previous file until the new one
is in place (see ``file_handler.replace_with_backup``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from minecraft_mod_manager.core.async_utils import CancelToken
from minecraft_mod_manager.errors import (
    HashMismatchError,
    MissingHashError,
    raise_with_rollback,
)
from minecraft_mod_manager.file_handler import (
    create_temp_sibling,
    hashes_equal,
    remove_if_exists,
    replace_with_backup,
    resolve_writable_path,
    sha1_for_file,
)
from minecraft_mod_manager.models import LockEntry
from minecraft_mod_manager.sync.models import EnsureReason
from minecraft_mod_manager.validators import normalize_file_name

logger = logging.getLogger(__name__)

Downloader = Callable[[str, Path, CancelToken], None]


@dataclass(frozen=True)
class EnsureResult:
    downloaded: bool
    reason: EnsureReason
    path: Path


class ModInstaller:
    """Install mod files into one mods folder.

    Args:
        mods_root: The mods folder; created on first use.
        downloader: ``download(url, destination, cancel)`` collaborator.
    """

    def __init__(self, mods_root: Path, downloader: Downloader) -> None:
        self.mods_root = Path(mods_root)
        self.downloader = downloader

    def resolve(self, file_name: str) -> Path:
        """Resolve a validated file name to a writable path in the folder.

        Raises:
            OutsideRootError: The destination escapes the mods folder.
        """
        self.mods_root.mkdir(parents=True, exist_ok=True)
        return resolve_writable_path(
            self.mods_root, self.mods_root / file_name
        )

    def ensure_locked_file(
        self, entry: LockEntry, cancel: CancelToken
    ) -> EnsureResult:
        """Make sure the file recorded in *entry* is present and intact.

        The file is downloaded when it is missing or its SHA-1 differs from
        the lock entry.

        Raises:
            InvalidFileNameError: The locked file name is unsafe.
            MissingHashError: The lock entry has no hash.
            HashMismatchError: The download did not match the lock hash.
            OutsideRootError: The destination escapes the mods folder.
        """
        file_name = normalize_file_name(entry.file_name)
        expected = entry.hash.strip()
        if not expected:
            raise MissingHashError(file_name)

        destination = self.resolve(file_name)
        if not destination.exists():
            self._download_and_verify(
                entry.download_url, destination, expected, file_name, cancel
            )
            return EnsureResult(True, EnsureReason.MISSING, destination)

        if not hashes_equal(expected, sha1_for_file(destination)):
            self._download_and_verify(
                entry.download_url, destination, expected, file_name, cancel
            )
            return EnsureResult(True, EnsureReason.HASH_MISMATCH, destination)

        return EnsureResult(False, EnsureReason.ALREADY_PRESENT, destination)

    def download_and_verify(
        self,
        url: str,
        destination: Path,
        expected_hash: str,
        cancel: CancelToken,
    ) -> None:
        """Download *url* over *destination* if its SHA-1 matches.

        Raises:
            MissingHashError: *expected_hash* is blank.
            HashMismatchError: The downloaded bytes hash differently.
        """
        if not expected_hash.strip():
            raise MissingHashError(destination.name)
        self._download_and_verify(
            url, destination, expected_hash, destination.name, cancel
        )

    def _download_and_verify(
        self,
        url: str,
        destination: Path,
        expected_hash: str,
        display_name: str,
        cancel: CancelToken,
    ) -> None:
        temp_path = create_temp_sibling(destination)
        try:
            self.downloader(url, temp_path, cancel)
            actual = sha1_for_file(temp_path)
            if not hashes_equal(expected_hash, actual):
                raise HashMismatchError(
                    display_name, expected_hash.strip(), actual
                )
            replace_with_backup(temp_path, destination)
        except Exception as exc:
            rollback_errors: list[BaseException] = []
            try:
                remove_if_exists(temp_path)
            except OSError as remove_exc:
                rollback_errors.append(
                    OSError(
                        f"failed to remove temp file {temp_path}: "
                        f"{remove_exc}"
                    )
                )
            raise_with_rollback(exc, rollback_errors)
        logger.debug("Installed %s", destination)

