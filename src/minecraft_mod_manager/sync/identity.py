"""Content identity matcher.

Identifies local mod files that no lock entry accounts for by asking
both catalogs what they are:

1. Each file gets a SHA-1 content hash and a CurseForge fingerprint.
2. All distinct fingerprints go to CurseForge in one batch call.
3. Every file's SHA-1 is looked up on Modrinth; "version not found" is
   simply no hit.
4. Each distinct matched project has its display name fetched once.

Hits per file are ordered Modrinth first, then by project id, so the
"first hit" used for reporting is stable between runs.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

from minecraft_mod_manager.core.async_utils import (
    CancelToken,
    gather_limited,
    run_sync_limited,
)
from minecraft_mod_manager.errors import VersionNotFoundError
from minecraft_mod_manager.file_handler import sha1_for_file
from minecraft_mod_manager.models import Platform
from minecraft_mod_manager.platforms.fingerprint import file_fingerprint
from minecraft_mod_manager.sync.models import IdentityHit, ScannedFile

logger = logging.getLogger(__name__)


def sort_hits(hits: list[IdentityHit]) -> list[IdentityHit]:
    """Order hits Modrinth first, then by project id."""
    return sorted(
        hits,
        key=lambda hit: (hit.platform != Platform.MODRINTH, hit.project_id),
    )


def unique_fingerprints(values: list[int]) -> list[int]:
    """Distinct fingerprints in ascending order."""
    return sorted(set(values))


class IdentityMatcher:
    """Identify local files against the remote catalogs.

    Args:
        catalog: Catalog collaborator (``match_fingerprints``,
            ``project_for_hash``, ``project_name``).
        fingerprint: Function computing a file's CurseForge fingerprint.
    """

    def __init__(
        self,
        catalog,
        fingerprint: Callable[[Path], int] = file_fingerprint,
    ) -> None:
        self.catalog = catalog
        self.fingerprint = fingerprint

    async def scan(
        self, files: list[Path], cancel: CancelToken
    ) -> list[ScannedFile]:
        """Hash, fingerprint and identify every file in *files*.

        Returns:
            One ``ScannedFile`` per input path, in input order.
        """
        if not files:
            return []

        digests = await gather_limited(
            [self._digest(path) for path in files]
        )
        fingerprints = [fingerprint for _sha1, fingerprint in digests]

        curseforge_ids = await self._match_fingerprints(
            fingerprints, cancel
        )
        modrinth_ids = await gather_limited(
            [self._project_for_hash(sha1, cancel) for sha1, _fp in digests]
        )

        projects: set[tuple[Platform, str]] = set()
        projects.update(
            (Platform.CURSEFORGE, project_id)
            for project_id in curseforge_ids.values()
        )
        projects.update(
            (Platform.MODRINTH, project_id)
            for project_id in modrinth_ids
            if project_id is not None
        )
        names = await self._project_names(sorted(projects), cancel)

        results = []
        for path, (sha1, fingerprint), modrinth_id in zip(
            files, digests, modrinth_ids
        ):
            hits = []
            cf_id = curseforge_ids.get(fingerprint)
            if cf_id is not None:
                hits.append(
                    IdentityHit(
                        platform=Platform.CURSEFORGE,
                        project_id=cf_id,
                        name=names[(Platform.CURSEFORGE, cf_id)],
                    )
                )
            if modrinth_id is not None:
                hits.append(
                    IdentityHit(
                        platform=Platform.MODRINTH,
                        project_id=modrinth_id,
                        name=names[(Platform.MODRINTH, modrinth_id)],
                    )
                )
            results.append(
                ScannedFile(
                    path=str(path),
                    sha1=sha1,
                    fingerprint=fingerprint,
                    hits=sort_hits(hits),
                )
            )
        return results

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _digest(self, path: Path) -> tuple[str, int]:
        sha1 = await run_sync_limited(sha1_for_file, path)
        fingerprint = await run_sync_limited(self.fingerprint, path)
        return sha1, fingerprint

    async def _match_fingerprints(
        self, fingerprints: list[int], cancel: CancelToken
    ) -> dict[int, str]:
        """Map fingerprint to CurseForge project id for exact matches."""
        unique = unique_fingerprints(fingerprints)
        if not unique:
            return {}
        matches = await run_sync_limited(
            self.catalog.match_fingerprints, unique, cancel
        )
        logger.debug(
            "CurseForge matched %d of %d fingerprints",
            len(matches),
            len(unique),
        )
        return {match.fingerprint: match.project_id for match in matches}

    async def _project_for_hash(
        self, sha1: str, cancel: CancelToken
    ) -> str | None:
        try:
            return await run_sync_limited(
                self.catalog.project_for_hash, sha1, cancel
            )
        except VersionNotFoundError:
            return None

    async def _project_names(
        self,
        projects: list[tuple[Platform, str]],
        cancel: CancelToken,
    ) -> dict[tuple[Platform, str], str]:
        names = await gather_limited(
            [
                run_sync_limited(
                    self.catalog.project_name, platform, project_id, cancel
                )
                for platform, project_id in projects
            ]
        )
        return dict(zip(projects, names))
