"""Scan reconciler.

Identifies jars in the mods folder that no lock entry names and,
with ``add``, records them in the manifest and lock:

1. List non-ignored mod files and drop the ones the lock names.
2. Identify the rest through both catalogs.  A file recognised on
   several catalogs is attributed to the declared mod it belongs to,
   otherwise to the preferred catalog.
3. With ``add``, undeclared matches become manifest entries and every
   match without a lock entry gets one.  Catalog details for the lock
   are fetched concurrently; entries are appended in report order.

Files that disagree with their existing lock entry are reported but
never recorded; ``install`` refuses to run until they are resolved.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable

from minecraft_mod_manager.core.async_utils import (
    CancelToken,
    fan_out,
    init_semaphore,
)
from minecraft_mod_manager.manifest import (
    Metadata,
    peek_lock,
    read_config,
    write_config,
    write_lock,
)
from minecraft_mod_manager.models import (
    LockEntry,
    ModEntry,
    ModsConfig,
    Platform,
    RemoteMod,
)
from minecraft_mod_manager.platforms.fingerprint import file_fingerprint
from minecraft_mod_manager.sync.identity import IdentityMatcher
from minecraft_mod_manager.sync.install import (
    PER_MOD_ERRORS,
    configured_mod,
    finding_kind,
    is_managed,
    list_mod_files,
)
from minecraft_mod_manager.sync.models import (
    FindingKind,
    IdentityHit,
    ModChange,
    ModFailure,
    RunOutcome,
    ScanMatch,
    ScannedFile,
    ScanResult,
)

logger = logging.getLogger(__name__)

ADDED_REASON = "added"


def pick_hit(
    item: ScannedFile, cfg: ModsConfig, prefer: Platform
) -> IdentityHit | None:
    """Choose the project a scanned file is attributed to."""
    if not item.hits:
        return None
    mod = configured_mod(cfg, item)
    if mod is not None:
        for hit in item.hits:
            if hit.platform == mod.type and hit.project_id == mod.id:
                return hit
    for hit in item.hits:
        if hit.platform == prefer:
            return hit
    return item.hits[0]


class ScanReconciler:
    """Identify unmanaged mod files and optionally start managing them.

    Args:
        config_path: Path to the manifest (``modlist.json``).
        catalog: Remote catalog collaborator.
        fingerprint: CurseForge fingerprint function for local files.
        prefer: Catalog to attribute files to when both recognise them.
        add: Record identified files in the manifest and lock.
        max_parallel: Concurrent catalog requests.
        cancel: Shared cancellation token.
    """

    def __init__(
        self,
        config_path: Path,
        catalog,
        fingerprint: Callable[[Path], int] = file_fingerprint,
        prefer: Platform = Platform.MODRINTH,
        add: bool = False,
        max_parallel: int = 5,
        cancel: CancelToken | None = None,
    ) -> None:
        self.meta = Metadata(Path(config_path))
        self.catalog = catalog
        self.matcher = IdentityMatcher(catalog, fingerprint)
        self.prefer = prefer
        self.add = add
        self.max_parallel = max_parallel
        self.cancel = cancel or CancelToken()

    def run(self) -> ScanResult:
        return asyncio.run(self.run_async())

    async def run_async(self) -> ScanResult:
        """Execute one scan.

        Raises:
            ConfigFileNotFoundError: No manifest.
            ConfigFileInvalidError: Unreadable manifest.
            LockFileInvalidError: Unreadable lock file.
        """
        init_semaphore(self.max_parallel)
        cfg = read_config(self.meta)
        lock = peek_lock(self.meta)

        files = [
            path
            for path in list_mod_files(self.meta, cfg)
            if not is_managed(path, lock)
        ]
        if not files:
            logger.info("Every mod file is managed")
            return ScanResult(outcome=RunOutcome.NOTHING_TO_DO)

        logger.debug("Identifying %d unmanaged files", len(files))
        scanned = await self.matcher.scan(files, self.cancel)

        identified: list[tuple[ScanMatch, ScannedFile]] = []
        unknown: list[str] = []
        for item in scanned:
            file_name = Path(item.path).name
            hit = pick_hit(item, cfg, self.prefer)
            if hit is None:
                unknown.append(file_name)
                continue
            kind = finding_kind(configured_mod(cfg, item), lock, item.sha1)
            if kind is None:
                continue
            match = ScanMatch(
                file_name=file_name,
                platform=hit.platform,
                project_id=hit.project_id,
                name=hit.name,
                kind=kind,
            )
            identified.append((match, item))

        identified.sort(
            key=lambda pair: (
                pair[0].platform != self.prefer,
                pair[0].name,
                pair[0].file_name,
            )
        )
        matches = [match for match, _item in identified]
        for match in matches:
            logger.info(
                "Recognised %s as %s (%s:%s)",
                match.file_name,
                match.name,
                match.platform.value,
                match.project_id,
            )
        for file_name in unknown:
            logger.info("Could not identify %s", file_name)

        added: list[ModChange] = []
        failures: list[ModFailure] = []
        if self.add:
            added, failures = await self._record(cfg, lock, identified)

        if failures:
            outcome = RunOutcome.PARTIAL_FAILURE
        elif matches or unknown:
            outcome = RunOutcome.SUCCESS
        else:
            outcome = RunOutcome.NOTHING_TO_DO
        return ScanResult(
            outcome=outcome,
            matches=matches,
            unknown_files=sorted(unknown),
            added=added,
            failures=failures,
        )

    async def _record(
        self,
        cfg: ModsConfig,
        lock: list[LockEntry],
        identified: list[tuple[ScanMatch, ScannedFile]],
    ) -> tuple[list[ModChange], list[ModFailure]]:
        """Add identified files to the manifest and lock."""
        pending: list[tuple[ScanMatch, ScannedFile]] = []
        seen: set[tuple[Platform, str]] = set()
        for match, item in identified:
            key = (match.platform, match.project_id)
            if match.kind == FindingKind.HASH_MISMATCH:
                logger.warning(
                    "Not recording %s: it does not match the locked file "
                    "of %s",
                    match.file_name,
                    match.name,
                )
                continue
            if key in seen:
                logger.warning(
                    "Not recording %s: another file was already recorded "
                    "for %s",
                    match.file_name,
                    match.name,
                )
                continue
            seen.add(key)
            pending.append((match, item))
        if not pending:
            return [], []

        def locate(pair: tuple[ScanMatch, ScannedFile]) -> RemoteMod:
            match, item = pair
            return self.catalog.locate_file(
                match.platform,
                match.project_id,
                item.sha1,
                item.fingerprint,
                self.cancel,
            )

        slots = await fan_out(pending, locate)

        added: list[ModChange] = []
        failures: list[ModFailure] = []
        for (match, item), slot in zip(pending, slots):
            self.cancel.raise_if_cancelled()
            if not slot.ok:
                if not isinstance(slot.error, PER_MOD_ERRORS):
                    raise slot.error
                logger.error("%s: %s", match.name, slot.error)
                failures.append(
                    ModFailure(
                        platform=match.platform,
                        project_id=match.project_id,
                        name=match.name,
                        error=str(slot.error),
                        error_type=type(slot.error).__name__,
                    )
                )
                continue

            remote = slot.value
            name = remote.name or match.name
            self._declare(cfg, match, name)
            lock.append(
                LockEntry(
                    type=match.platform,
                    id=match.project_id,
                    name=name,
                    file_name=match.file_name,
                    released_on=remote.release_date,
                    hash=item.sha1,
                    download_url=remote.download_url,
                )
            )
            added.append(
                ModChange(
                    platform=match.platform,
                    project_id=match.project_id,
                    name=name,
                    file_name=match.file_name,
                    reason=ADDED_REASON,
                )
            )
            logger.info("Recorded %s (%s)", name, match.file_name)

        if added:
            write_lock(self.meta, lock)
            write_config(self.meta, cfg)
        return added, failures

    @staticmethod
    def _declare(cfg: ModsConfig, match: ScanMatch, name: str) -> None:
        for mod in cfg.mods:
            if mod.key() == (match.platform, match.project_id):
                mod.name = name
                return
        cfg.mods.append(
            ModEntry(type=match.platform, id=match.project_id, name=name)
        )
