"""Remote mod catalogs.

``Catalog`` is the single collaborator the reconcilers talk to.  It
bundles the Modrinth and CurseForge clients behind five capabilities:

- ``fetch_mod`` -- newest compatible file for a project.
- ``match_fingerprints`` -- CurseForge exact fingerprint matches.
- ``project_for_hash`` -- Modrinth project owning a SHA-1.
- ``locate_file`` -- catalog details of an identified local file.
- ``project_name`` -- display name of a project.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from minecraft_mod_manager.core.async_utils import CancelToken
from minecraft_mod_manager.core.http import (
    RateLimitedSession,
    RateLimiter,
    RetryPolicy,
)
from minecraft_mod_manager.errors import (
    ModNotFoundError,
    NoCompatibleFileError,
    ProjectNotFoundError,
    UnknownPlatformError,
    VersionNotFoundError,
)
from minecraft_mod_manager.models import FetchOptions, Platform, RemoteMod
from minecraft_mod_manager.platforms.curseforge import (
    CurseForgeClient,
    fetch_curseforge,
)
from minecraft_mod_manager.platforms.fingerprint import file_fingerprint
from minecraft_mod_manager.platforms.modrinth import (
    ModrinthClient,
    fetch_modrinth,
)
from minecraft_mod_manager.platforms.versions import format_release_date

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FingerprintMatch:
    """A CurseForge file whose fingerprint matched a local file."""

    project_id: str
    fingerprint: int


class Catalog:
    """Both catalog clients behind the interface the reconcilers use."""

    def __init__(
        self, modrinth: ModrinthClient, curseforge: CurseForgeClient
    ) -> None:
        self.modrinth = modrinth
        self.curseforge = curseforge

    def fetch_mod(
        self,
        platform: Platform,
        project_id: str,
        options: FetchOptions,
        cancel: CancelToken,
    ) -> RemoteMod:
        """Resolve the file to install for a project.

        Raises:
            ModNotFoundError: The project does not exist.
            NoCompatibleFileError: No file fits the options.
            UnknownPlatformError: *platform* is not a known catalog.
        """
        logger.debug(
            "Fetching %s:%s (loader=%s, game_version=%s, fixed=%s)",
            platform.value,
            project_id,
            options.loader.value,
            options.game_version,
            options.fixed_version,
        )
        try:
            if platform == Platform.MODRINTH:
                return fetch_modrinth(
                    self.modrinth, project_id, options, cancel
                )
            if platform == Platform.CURSEFORGE:
                return fetch_curseforge(
                    self.curseforge, project_id, options, cancel
                )
        except ProjectNotFoundError as exc:
            raise ModNotFoundError(platform.value, project_id) from exc
        raise UnknownPlatformError(str(platform))

    def match_fingerprints(
        self, fingerprints: list[int], cancel: CancelToken
    ) -> list[FingerprintMatch]:
        files = self.curseforge.match_fingerprints(fingerprints, cancel)
        return [
            FingerprintMatch(
                project_id=str(file["modId"]),
                fingerprint=int(file["fingerprint"]),
            )
            for file in files
            if file.get("modId") is not None and file.get("fingerprint")
        ]

    def project_for_hash(self, sha1: str, cancel: CancelToken) -> str:
        """Return the Modrinth project id owning a file hash.

        Raises:
            VersionNotFoundError: No Modrinth file has this hash.
        """
        return str(self.modrinth.version_for_hash(sha1, cancel)["project_id"])

    def locate_file(
        self,
        platform: Platform,
        project_id: str,
        sha1: str,
        fingerprint: int,
        cancel: CancelToken,
    ) -> RemoteMod:
        """Describe the catalog file a local file was identified as.

        Used when recording an identified file in the lock, so the hash
        is the local one and the name is the project's display name.

        Raises:
            NoCompatibleFileError: The catalog no longer reports the file
                or it has no download URL.
            UnknownPlatformError: *platform* is not a known catalog.
        """
        if platform == Platform.MODRINTH:
            try:
                version = self.modrinth.version_for_hash(sha1, cancel)
            except VersionNotFoundError as exc:
                raise NoCompatibleFileError(
                    platform.value, project_id
                ) from exc
            file = _file_with_hash(version.get("files") or [], sha1)
            if file is None or not file.get("url"):
                raise NoCompatibleFileError(platform.value, project_id)
            return RemoteMod(
                name=self.modrinth.project_title(project_id, cancel),
                file_name=file.get("filename", ""),
                hash=sha1,
                download_url=file["url"],
                release_date=format_release_date(
                    version.get("date_published", "")
                ),
            )

        if platform == Platform.CURSEFORGE:
            files = self.curseforge.match_fingerprints([fingerprint], cancel)
            for file in files:
                if str(file.get("modId")) != project_id:
                    continue
                if not file.get("downloadUrl"):
                    break
                return RemoteMod(
                    name=self.curseforge.project_name(project_id, cancel),
                    file_name=file.get("fileName", ""),
                    hash=sha1,
                    download_url=file["downloadUrl"],
                    release_date=format_release_date(file.get("fileDate", "")),
                )
            raise NoCompatibleFileError(platform.value, project_id)

        raise UnknownPlatformError(str(platform))

    def project_name(
        self, platform: Platform, project_id: str, cancel: CancelToken
    ) -> str:
        if platform == Platform.MODRINTH:
            return self.modrinth.project_title(project_id, cancel)
        if platform == Platform.CURSEFORGE:
            return self.curseforge.project_name(project_id, cancel)
        raise UnknownPlatformError(str(platform))


def _file_with_hash(files: list[dict], sha1: str) -> dict | None:
    """The file carrying *sha1*, else the primary file, else the first."""
    for file in files:
        file_sha1 = (file.get("hashes") or {}).get("sha1") or ""
        if file_sha1.lower() == sha1.lower():
            return file
    for file in files:
        if file.get("primary"):
            return file
    return files[0] if files else None


def build_session(
    requests_per_second: float | None = None,
    max_retries: int = 3,
    retry_interval: float = 1.0,
    metadata_timeout: float = 15.0,
    download_timeout: float = 300.0,
) -> RateLimitedSession:
    """Create the one session every catalog and download call shares."""
    return RateLimitedSession(
        limiter=RateLimiter(requests_per_second),
        retry=RetryPolicy(max_retries=max_retries, interval=retry_interval),
        metadata_timeout=metadata_timeout,
        download_timeout=download_timeout,
    )


def build_catalog(
    http: RateLimitedSession,
    modrinth_api_key: str | None = None,
    curseforge_api_key: str | None = None,
    modrinth_api_url: str | None = None,
    curseforge_api_url: str | None = None,
) -> Catalog:
    return Catalog(
        modrinth=ModrinthClient(
            http, api_key=modrinth_api_key, url=modrinth_api_url
        ),
        curseforge=CurseForgeClient(
            http, api_key=curseforge_api_key, url=curseforge_api_url
        ),
    )


__all__ = [
    "Catalog",
    "CurseForgeClient",
    "FingerprintMatch",
    "ModrinthClient",
    "build_catalog",
    "build_session",
    "file_fingerprint",
]
