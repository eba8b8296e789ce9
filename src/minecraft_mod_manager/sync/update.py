"""Update reconciler.

Moves every non-pinned mod to the newest compatible release:

1. Run the install reconciler.  Unmanaged files in the mods folder, or
   mods that failed to install, stop the update.
2. **Check** (concurrent) -- one task per mod fetches the catalog's
   current file and decides whether it is an update: the release date
   must be strictly newer than the locked one and the hash must differ.
   Pinned mods are skipped without a network call.
3. **Apply** (sequential, manifest order) -- each update is downloaded
   beside its destination, verified, swapped in, and the lock file is
   persisted immediately so a later failure cannot lose it.
4. **Persist** -- lock and manifest are written atomically.

A failed update leaves the installed file and its lock entry untouched.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from minecraft_mod_manager.core.async_utils import (
    CancelToken,
    fan_out,
    init_semaphore,
    run_sync,
)
from minecraft_mod_manager.errors import (
    LockedFileMissingError,
    MissingHashError,
    MissingLockEntryError,
    UnmanagedFilesError,
    raise_with_rollback,
)
from minecraft_mod_manager.file_handler import (
    hashes_equal,
    remove_if_exists,
)
from minecraft_mod_manager.manifest import (
    read_config,
    read_lock,
    write_config,
    write_lock,
)
from minecraft_mod_manager.models import (
    LockEntry,
    ModEntry,
    ModsConfig,
    RemoteMod,
    find_lock_index,
)
from minecraft_mod_manager.platforms.fingerprint import file_fingerprint
from minecraft_mod_manager.platforms.versions import parse_release_date
from minecraft_mod_manager.sync.install import (
    PER_MOD_ERRORS,
    InstallReconciler,
    fetch_options,
    mod_failure,
)
from minecraft_mod_manager.sync.installer import Downloader, ModInstaller
from minecraft_mod_manager.sync.models import (
    ModChange,
    ModFailure,
    RunOutcome,
    UpdateResult,
)
from minecraft_mod_manager.validators import normalize_file_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpdatePlan:
    """What the check phase decided for one mod.

    ``remote`` is set only when the mod needs to be replaced.
    """

    lock_index: int
    new_name: str
    remote: RemoteMod | None = None
    old_file_name: str = ""


class UpdateReconciler:
    """Update every non-pinned mod to its newest compatible release.

    Args:
        config_path: Path to the manifest (``modlist.json``).
        catalog: Remote catalog collaborator.
        downloader: ``download(url, destination, cancel)`` collaborator.
        fingerprint: CurseForge fingerprint function for local files.
        max_parallel: Concurrent catalog requests.
        cancel: Shared cancellation token.
    """

    def __init__(
        self,
        config_path: Path,
        catalog,
        downloader: Downloader,
        fingerprint: Callable[[Path], int] = file_fingerprint,
        max_parallel: int = 5,
        cancel: CancelToken | None = None,
    ) -> None:
        self.cancel = cancel or CancelToken()
        self.catalog = catalog
        self.downloader = downloader
        self.max_parallel = max_parallel
        self.installer = InstallReconciler(
            config_path,
            catalog,
            downloader,
            fingerprint=fingerprint,
            max_parallel=max_parallel,
            cancel=self.cancel,
        )
        self.meta = self.installer.meta

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def run(self) -> UpdateResult:
        return asyncio.run(self.run_async())

    async def run_async(self) -> UpdateResult:
        """Execute one update run.

        Raises:
            UnmanagedFilesError: The install step found unmanaged files.
            UnresolvedFilesError: The install preflight stopped the run.
        """
        install_result = await self.installer.run_async()
        if install_result.unmanaged_found:
            logger.error(
                "Unmanaged files in the mods folder; add or remove them "
                "before updating"
            )
            raise UnmanagedFilesError(
                [f.file_name for f in install_result.unmanaged_files]
            )
        if install_result.failures:
            logger.error("Install reported failures; not checking updates")
            return UpdateResult(
                outcome=RunOutcome.PARTIAL_FAILURE,
                failed_count=install_result.failed_count,
                failures=install_result.failures,
                install=install_result,
            )

        init_semaphore(self.max_parallel)
        cfg = read_config(self.meta)
        lock = read_lock(self.meta)
        mods_root = self.meta.mods_folder_path(cfg)
        installer = ModInstaller(mods_root, self.downloader)

        def check(mod: ModEntry) -> UpdatePlan:
            return self.check_mod(cfg, lock, mod, mods_root)

        slots = await fan_out(cfg.mods, check)

        updated: list[ModChange] = []
        failures: list[ModFailure] = []
        for index, (mod, slot) in enumerate(zip(cfg.mods, slots)):
            self.cancel.raise_if_cancelled()
            if not slot.ok:
                if not isinstance(slot.error, PER_MOD_ERRORS):
                    raise slot.error
                logger.error("%s: %s", mod.name or mod.id, slot.error)
                failures.append(mod_failure(mod, slot.error))
                continue

            plan = slot.value
            if plan.new_name.strip():
                cfg.mods[index].name = plan.new_name
            if plan.remote is None:
                continue

            logger.info("%s has an update, downloading", mod.name)
            try:
                await run_sync(self._download_and_swap, installer, plan)
            except PER_MOD_ERRORS as exc:
                logger.error("%s: %s", mod.name or mod.id, exc)
                failures.append(mod_failure(mod, exc))
                continue

            remote = plan.remote
            lock[plan.lock_index] = LockEntry(
                type=mod.type,
                id=mod.id,
                name=remote.name,
                file_name=remote.file_name,
                released_on=remote.release_date,
                hash=remote.hash,
                download_url=remote.download_url,
            )
            # Lock is persisted after every swap.
            write_lock(self.meta, lock)
            updated.append(
                ModChange(
                    platform=mod.type,
                    project_id=mod.id,
                    name=remote.name,
                    file_name=remote.file_name,
                    previous_file_name=(
                        plan.old_file_name
                        if plan.old_file_name != remote.file_name
                        else None
                    ),
                    reason="update",
                )
            )

        if not updated and not failures:
            logger.info("No updates available")

        write_lock(self.meta, lock)
        write_config(self.meta, cfg)

        if failures:
            outcome = RunOutcome.PARTIAL_FAILURE
        elif updated:
            outcome = RunOutcome.SUCCESS
        else:
            outcome = RunOutcome.NOTHING_TO_DO
        return UpdateResult(
            outcome=outcome,
            updated_count=len(updated),
            failed_count=len(failures),
            updated=updated,
            failures=failures,
            install=install_result,
        )

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def check_mod(
        self,
        cfg: ModsConfig,
        lock: list[LockEntry],
        mod: ModEntry,
        mods_root: Path,
    ) -> UpdatePlan:
        """Decide whether *mod* needs updating.  Never writes anything.

        Raises:
            MissingLockEntryError: The mod was never installed.
            LockedFileMissingError: The locked file is gone from disk.
            InvalidFileNameError: A remote or locked file name is unsafe.
            InvalidTimestampError: A release date cannot be parsed.
            MissingHashError: A hash needed for the update is blank.
            ExpectedRemoteError: The catalog has no usable file.
        """
        lock_index = find_lock_index(lock, mod.type, mod.id)
        if lock_index < 0:
            raise MissingLockEntryError(mod.name or mod.id, mod.id)
        installed = lock[lock_index]

        if mod.is_pinned:
            return UpdatePlan(lock_index=lock_index, new_name=installed.name)

        logger.debug("Checking %s on %s", mod.name, mod.type.value)
        remote = self.catalog.fetch_mod(
            mod.type, mod.id, fetch_options(cfg, mod, None), self.cancel
        )
        remote_file_name = normalize_file_name(remote.file_name)
        installed_file_name = normalize_file_name(installed.file_name)

        old_path = mods_root / installed_file_name
        if not os.path.lexists(old_path):
            raise LockedFileMissingError(mod.name or mod.id, str(old_path))

        installed_date = parse_release_date(installed.released_on)
        remote_date = parse_release_date(remote.release_date)
        if remote_date <= installed_date:
            return UpdatePlan(lock_index=lock_index, new_name=remote.name)

        if not installed.hash.strip():
            raise MissingHashError(installed_file_name)
        if not remote.hash.strip():
            raise MissingHashError(remote_file_name)
        if hashes_equal(remote.hash, installed.hash):
            return UpdatePlan(lock_index=lock_index, new_name=remote.name)

        return UpdatePlan(
            lock_index=lock_index,
            new_name=remote.name,
            remote=remote.model_copy(update={"file_name": remote_file_name}),
            old_file_name=installed_file_name,
        )

    def _download_and_swap(
        self, installer: ModInstaller, plan: UpdatePlan
    ) -> None:
        remote = plan.remote
        destination = installer.resolve(remote.file_name)
        installer.download_and_verify(
            remote.download_url, destination, remote.hash, self.cancel
        )
        if plan.old_file_name == remote.file_name:
            return

        old_path = installer.mods_root / plan.old_file_name
        try:
            os.remove(old_path)
        except OSError as exc:
            # Keep exactly one file for the mod: drop the new one.
            rollback_errors: list[BaseException] = []
            try:
                remove_if_exists(destination)
            except OSError as remove_exc:
                rollback_errors.append(
                    OSError(
                        f"failed to remove new file {destination}: "
                        f"{remove_exc}"
                    )
                )
            raise_with_rollback(exc, rollback_errors)
        logger.debug("Removed superseded %s", old_path)
