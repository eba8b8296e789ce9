"""Install reconciler.

Brings the mods folder in line with the manifest and lock file:

1. **Preflight** -- list ``*.jar`` files not excluded by ``.mmmignore``,
   drop the ones a lock entry names, and identify the rest against the
   catalogs.  A file that belongs to a declared mod without a lock entry,
   or whose hash disagrees with its lock entry, stops the run before
   anything is written.
2. **Fetch** -- every declared mod without a lock entry is resolved
   against its catalog concurrently.  Tasks only fill their own slot.
3. **Ensure** -- mods are processed one at a time in manifest order:
   locked files are re-downloaded when missing or corrupt, fetched mods
   are downloaded, verified and appended to the lock.
4. **Persist** -- lock and manifest are written atomically.

Expected remote errors and integrity errors are per-mod failures; any
other error aborts the run.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Callable

from minecraft_mod_manager.core.async_utils import (
    CancelToken,
    TaskResult,
    fan_out,
    init_semaphore,
    run_sync,
)
from minecraft_mod_manager.errors import (
    ExpectedRemoteError,
    IntegrityError,
    MissingHashError,
    UnresolvedFilesError,
)
from minecraft_mod_manager.file_handler import hashes_equal
from minecraft_mod_manager.ignore import is_ignored, list_patterns
from minecraft_mod_manager.manifest import (
    Metadata,
    ensure_lock,
    peek_lock,
    read_config,
    write_config,
    write_lock,
)
from minecraft_mod_manager.models import (
    FetchOptions,
    LockEntry,
    ModEntry,
    ModsConfig,
    RemoteMod,
    find_lock_index,
)
from minecraft_mod_manager.platforms.fingerprint import file_fingerprint
from minecraft_mod_manager.sync.identity import IdentityMatcher
from minecraft_mod_manager.sync.installer import Downloader, ModInstaller
from minecraft_mod_manager.sync.models import (
    EnsureReason,
    FindingKind,
    InstallResult,
    ModChange,
    ModFailure,
    RunOutcome,
    ScanFinding,
    ScannedFile,
)
from minecraft_mod_manager.validators import (
    is_mod_file_name,
    normalize_file_name,
)

logger = logging.getLogger(__name__)

# Failures that are recorded per mod instead of aborting the run.
PER_MOD_ERRORS = (ExpectedRemoteError, IntegrityError)


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def fetch_options(
    cfg: ModsConfig, mod: ModEntry, fixed_version: str | None
) -> FetchOptions:
    return FetchOptions(
        allowed_release_types=cfg.effective_release_types(mod),
        game_version=cfg.game_version,
        loader=cfg.loader,
        allow_fallback=bool(mod.allow_version_fallback),
        fixed_version=fixed_version,
    )


def mod_failure(mod: ModEntry, exc: Exception) -> ModFailure:
    return ModFailure(
        platform=mod.type,
        project_id=mod.id,
        name=mod.name or mod.id,
        error=str(exc),
        error_type=type(exc).__name__,
    )


def list_mod_files(meta: Metadata, cfg: ModsConfig) -> list[Path]:
    """Candidate mod files in the mods folder, minus ignored ones.

    A mods folder that does not exist yet has no files.
    """
    folder = meta.mods_folder_path(cfg)
    if not folder.is_dir():
        return []

    candidates = sorted(
        folder / entry.name
        for entry in os.scandir(folder)
        if not entry.is_dir() and is_mod_file_name(entry.name)
    )
    patterns = list_patterns(meta.dir)
    return [
        path
        for path in candidates
        if not is_ignored(meta.dir, path, patterns)
    ]


def is_managed(path: Path, lock: list[LockEntry]) -> bool:
    return any(entry.file_name == path.name for entry in lock)


def classify_scan(
    scanned: list[ScannedFile], cfg: ModsConfig, lock: list[LockEntry]
) -> list[ScanFinding]:
    """Decide what each identified, non-managed file means.

    Files no catalog recognised are left alone and not reported.
    """
    findings = []
    for item in scanned:
        if not item.hits:
            continue

        kind = finding_kind(configured_mod(cfg, item), lock, item.sha1)
        if kind is None:
            continue
        file_name = Path(item.path).name
        name = item.hits[0].name
        findings.append(
            ScanFinding(file_name=file_name, name=name, kind=kind)
        )
    return findings


def finding_kind(
    mod: ModEntry | None, lock: list[LockEntry], sha1: str
) -> FindingKind | None:
    """How an identified file relates to the manifest and lock.

    ``None`` means the mod's lock entry already vouches for the content.
    """
    if mod is None:
        return FindingKind.UNMANAGED
    lock_index = find_lock_index(lock, mod.type, mod.id)
    if lock_index < 0:
        return FindingKind.LOCK_MISSING
    if not hashes_equal(lock[lock_index].hash, sha1):
        return FindingKind.HASH_MISMATCH
    return None


def configured_mod(cfg: ModsConfig, item: ScannedFile) -> ModEntry | None:
    """The declared mod any of *item*'s hits belongs to, if one does."""
    for hit in item.hits:
        for mod in cfg.mods:
            if mod.type == hit.platform and mod.id == hit.project_id:
                return mod
    return None


# ---------------------------------------------------------------------------
# Reconciler
# ---------------------------------------------------------------------------


class InstallReconciler:
    """Install every declared mod and record it in the lock file.

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
        self.meta = Metadata(Path(config_path))
        self.catalog = catalog
        self.downloader = downloader
        self.matcher = IdentityMatcher(catalog, fingerprint)
        self.max_parallel = max_parallel
        self.cancel = cancel or CancelToken()

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def run(self) -> InstallResult:
        return asyncio.run(self.run_async())

    async def run_async(self) -> InstallResult:
        """Execute one install run.

        Raises:
            ConfigFileNotFoundError: No manifest.
            ConfigFileInvalidError: Unreadable manifest.
            UnresolvedFilesError: Preflight found ambiguous local files.
        """
        init_semaphore(self.max_parallel)
        cfg = read_config(self.meta)

        # Nothing is written until the preflight has passed.
        findings = await self.preflight(cfg, peek_lock(self.meta))
        unmanaged = [f for f in findings if not f.blocking]
        unresolved = [f for f in findings if f.blocking]
        if unresolved:
            logger.error(
                "Some files in the mods folder cannot be reconciled; "
                "resolve them and run install again"
            )
            raise UnresolvedFilesError([f.file_name for f in unresolved])

        lock = ensure_lock(self.meta)

        mods_root = self.meta.mods_folder_path(cfg)
        mods_root.mkdir(parents=True, exist_ok=True)
        installer = ModInstaller(mods_root, self.downloader)

        fetched = await self._fetch_unlocked(cfg, lock)

        downloaded: list[ModChange] = []
        failures: list[ModFailure] = []
        for index, mod in enumerate(cfg.mods):
            self.cancel.raise_if_cancelled()
            logger.debug(
                "Checking %s (%s) on %s",
                mod.name or mod.id,
                mod.pinned_version or "latest",
                mod.type.value,
            )
            lock_index = find_lock_index(lock, mod.type, mod.id)
            try:
                if lock_index >= 0:
                    change = await self._ensure_locked(
                        mod, lock[lock_index], installer
                    )
                else:
                    change = await self._install_fetched(
                        cfg, lock, index, mod, installer, fetched[index]
                    )
            except PER_MOD_ERRORS as exc:
                logger.error("%s: %s", mod.name or mod.id, exc)
                failures.append(mod_failure(mod, exc))
                continue
            if change is not None:
                downloaded.append(change)

        write_lock(self.meta, lock)
        write_config(self.meta, cfg)

        if failures:
            outcome = RunOutcome.PARTIAL_FAILURE
        elif downloaded:
            outcome = RunOutcome.SUCCESS
        else:
            outcome = RunOutcome.NOTHING_TO_DO
        if not failures:
            logger.info("All mods are installed")

        return InstallResult(
            outcome=outcome,
            installed_count=len(cfg.mods),
            downloaded=downloaded,
            failures=failures,
            unmanaged_files=unmanaged,
        )

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def preflight(
        self, cfg: ModsConfig, lock: list[LockEntry]
    ) -> list[ScanFinding]:
        """Identify and classify local files no lock entry names."""
        files = [
            path
            for path in list_mod_files(self.meta, cfg)
            if not is_managed(path, lock)
        ]
        if not files:
            return []

        logger.debug("Identifying %d unmanaged files", len(files))
        scanned = await self.matcher.scan(files, self.cancel)
        findings = classify_scan(scanned, cfg, lock)
        for finding in findings:
            if finding.kind == FindingKind.UNMANAGED:
                logger.info(
                    "Found unmanaged mod %s (%s)",
                    finding.name,
                    finding.file_name,
                )
            elif finding.kind == FindingKind.LOCK_MISSING:
                logger.error(
                    "%s (%s) is declared but has no lock entry",
                    finding.name,
                    finding.file_name,
                )
            else:
                logger.error(
                    "%s (%s) does not match the locked hash",
                    finding.name,
                    finding.file_name,
                )
        return findings

    async def _fetch_unlocked(
        self, cfg: ModsConfig, lock: list[LockEntry]
    ) -> dict[int, TaskResult[RemoteMod]]:
        pending = [
            (index, mod)
            for index, mod in enumerate(cfg.mods)
            if find_lock_index(lock, mod.type, mod.id) < 0
        ]
        if not pending:
            return {}

        def fetch(item: tuple[int, ModEntry]) -> RemoteMod:
            _index, mod = item
            return self.catalog.fetch_mod(
                mod.type,
                mod.id,
                fetch_options(cfg, mod, mod.pinned_version),
                self.cancel,
            )

        results = await fan_out(pending, fetch)
        return {
            index: result
            for (index, _mod), result in zip(pending, results)
        }

    async def _ensure_locked(
        self, mod: ModEntry, entry: LockEntry, installer: ModInstaller
    ) -> ModChange | None:
        """Repair one locked file; returns the change made, if any."""
        result = await run_sync(
            installer.ensure_locked_file, entry, self.cancel
        )
        if not result.downloaded:
            return None
        if result.reason == EnsureReason.MISSING:
            logger.info("Downloaded missing %s", mod.name or mod.id)
        else:
            logger.info(
                "Re-downloaded %s, local file did not match the lock",
                mod.name or mod.id,
            )
        return ModChange(
            platform=mod.type,
            project_id=mod.id,
            name=entry.name,
            file_name=result.path.name,
            reason=result.reason.value,
        )

    async def _install_fetched(
        self,
        cfg: ModsConfig,
        lock: list[LockEntry],
        index: int,
        mod: ModEntry,
        installer: ModInstaller,
        fetched: TaskResult[RemoteMod],
    ) -> ModChange:
        """Download a freshly resolved mod and append its lock entry."""
        if not fetched.ok:
            raise fetched.error

        remote = fetched.value
        file_name = normalize_file_name(remote.file_name)
        if not remote.hash.strip():
            raise MissingHashError(file_name)

        logger.info("Downloading %s from %s", remote.name, mod.type.value)
        destination = await run_sync(installer.resolve, file_name)
        await run_sync(
            installer.download_and_verify,
            remote.download_url,
            destination,
            remote.hash,
            self.cancel,
        )

        cfg.mods[index].name = remote.name
        lock.append(
            LockEntry(
                type=mod.type,
                id=mod.id,
                name=remote.name,
                file_name=file_name,
                released_on=remote.release_date,
                hash=remote.hash,
                download_url=remote.download_url,
            )
        )
        return ModChange(
            platform=mod.type,
            project_id=mod.id,
            name=remote.name,
            file_name=file_name,
            reason=EnsureReason.MISSING.value,
        )
