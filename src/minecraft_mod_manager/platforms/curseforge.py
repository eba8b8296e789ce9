"""CurseForge catalog client and file selection."""

from __future__ import annotations

import logging
import os

import requests

from minecraft_mod_manager.core.async_utils import CancelToken
from minecraft_mod_manager.core.http import RateLimitedSession
from minecraft_mod_manager.errors import (
    FingerprintApiError,
    NoCompatibleFileError,
    ProjectApiError,
    ProjectNotFoundError,
    UnsupportedLoaderError,
)
from minecraft_mod_manager.models import (
    FetchOptions,
    Loader,
    Platform,
    ReleaseType,
    RemoteMod,
)
from minecraft_mod_manager.platforms.versions import (
    format_release_date,
    next_version_down,
    parse_release_date,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.curseforge.com/v1"
MINECRAFT_GAME_ID = 432

HASH_ALGO_SHA1 = 1
STATUS_APPROVED = 4
STATUS_RELEASED = 10

LOADER_TYPES = {
    Loader.FORGE: 1,
    Loader.CAULDRON: 2,
    Loader.LITELOADER: 3,
    Loader.FABRIC: 4,
    Loader.QUILT: 5,
    Loader.NEOFORGE: 6,
}

RELEASE_TYPES = {
    1: ReleaseType.RELEASE,
    2: ReleaseType.BETA,
    3: ReleaseType.ALPHA,
}


def base_url() -> str:
    return os.environ.get("CURSEFORGE_API_URL", DEFAULT_BASE_URL).rstrip("/")


def loader_type(loader: Loader) -> int:
    """Map a loader to CurseForge's ``modLoaderType`` id."""
    try:
        return LOADER_TYPES[loader]
    except KeyError:
        raise UnsupportedLoaderError(
            Platform.CURSEFORGE.value, loader.value
        ) from None


class CurseForgeClient:
    """Thin wrapper over the CurseForge v1 REST API.

    Args:
        http: Shared rate-limited session.
        api_key: Value for the ``x-api-key`` header.
        url: API root; defaults to ``CURSEFORGE_API_URL`` or the public API.
    """

    def __init__(
        self,
        http: RateLimitedSession,
        api_key: str | None = None,
        url: str | None = None,
    ) -> None:
        self.http = http
        self.api_key = api_key
        self.url = (url or base_url()).rstrip("/")

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers

    def _get_project_data(
        self, url: str, project_id: str, cancel: CancelToken, **kwargs
    ) -> object:
        try:
            response = self.http.get(
                url, cancel, headers=self._headers(), **kwargs
            )
        except requests.RequestException as exc:
            raise ProjectApiError(
                Platform.CURSEFORGE.value, project_id, str(exc)
            ) from exc
        if response.status_code == 404:
            raise ProjectNotFoundError(
                Platform.CURSEFORGE.value, project_id
            )
        if response.status_code != 200:
            raise ProjectApiError(
                Platform.CURSEFORGE.value,
                project_id,
                f"unexpected status code: {response.status_code}",
            )
        return response.json().get("data")

    def get_project(self, project_id: str, cancel: CancelToken) -> dict:
        return self._get_project_data(
            f"{self.url}/mods/{project_id}", project_id, cancel
        )

    def project_name(self, project_id: str, cancel: CancelToken) -> str:
        return self.get_project(project_id, cancel).get("name", "")

    def get_files(
        self,
        project_id: str,
        game_version: str,
        mod_loader_type: int,
        cancel: CancelToken,
    ) -> list[dict]:
        data = self._get_project_data(
            f"{self.url}/mods/{project_id}/files",
            project_id,
            cancel,
            params={
                "gameVersion": game_version,
                "modLoaderType": mod_loader_type,
            },
        )
        return list(data or [])

    def match_fingerprints(
        self, fingerprints: list[int], cancel: CancelToken
    ) -> list[dict]:
        """Return the exactly matching files for *fingerprints*.

        Each returned file dict carries ``fingerprint`` (falling back to
        ``fileFingerprint``) and ``modId``.

        Raises:
            FingerprintApiError: On transport, status or decode failures.
        """
        url = f"{self.url}/fingerprints/{MINECRAFT_GAME_ID}"
        try:
            response = self.http.post(
                url,
                cancel,
                json={"fingerprints": fingerprints},
                headers=self._headers(),
            )
        except requests.RequestException as exc:
            raise FingerprintApiError(fingerprints, str(exc)) from exc
        if response.status_code != 200:
            raise FingerprintApiError(
                fingerprints,
                f"unexpected status code: {response.status_code}",
            )
        try:
            data = response.json()["data"]
        except (ValueError, KeyError, TypeError) as exc:
            raise FingerprintApiError(fingerprints, str(exc)) from exc

        matches = []
        for item in data.get("exactMatches") or []:
            file = dict(item.get("file") or {})
            if not file.get("fingerprint") and file.get("fileFingerprint"):
                file["fingerprint"] = file["fileFingerprint"]
            if not file.get("modId"):
                file["modId"] = item.get("id")
            matches.append(file)
        return matches


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------


def _has_game_version(file: dict, version: str) -> bool:
    for entry in file.get("sortableGameVersions") or []:
        if str(entry.get("gameVersionName", "")).lower() == version.lower():
            return True
    return False


def filter_files(
    files: list[dict], options: FetchOptions, target_version: str
) -> list[dict]:
    """Keep the files that satisfy *options* for *target_version*."""
    allowed = set(options.allowed_release_types)
    filtered = []
    for file in files:
        if options.fixed_version and (
            str(file.get("fileName", "")).lower()
            != options.fixed_version.lower()
        ):
            continue
        if not _has_game_version(file, target_version):
            continue
        release_type = RELEASE_TYPES.get(file.get("releaseType"))
        if release_type is None or release_type not in allowed:
            continue
        if file.get("fileStatus") not in (STATUS_APPROVED, STATUS_RELEASED):
            continue
        if not file.get("isAvailable"):
            continue
        filtered.append(file)
    return filtered


def sha1_from_hashes(hashes: list[dict]) -> str | None:
    for entry in hashes or []:
        if entry.get("algo") == HASH_ALGO_SHA1:
            return entry.get("value") or None
    return None


def fetch_curseforge(
    client: CurseForgeClient,
    project_id: str,
    options: FetchOptions,
    cancel: CancelToken,
) -> RemoteMod:
    """Pick the newest CurseForge file for a project.

    Raises:
        ProjectNotFoundError: Unknown project.
        UnsupportedLoaderError: Loader has no CurseForge equivalent.
        NoCompatibleFileError: Nothing matches, even after fallback.
    """
    project = client.get_project(project_id, cancel)
    mod_loader = loader_type(options.loader)
    current_version = options.game_version

    while True:
        files = client.get_files(
            project_id, current_version, mod_loader, cancel
        )
        candidates = filter_files(files, options, current_version)
        if candidates:
            break

        next_version, can_go_down = next_version_down(current_version)
        if not (options.allow_fallback and can_go_down):
            raise NoCompatibleFileError(
                Platform.CURSEFORGE.value, project_id
            )
        logger.debug(
            "No CurseForge file for %s on %s, trying %s",
            project_id,
            current_version,
            next_version,
        )
        current_version = next_version

    selected = max(
        candidates, key=lambda file: parse_release_date(file["fileDate"])
    )
    if not selected.get("downloadUrl"):
        raise NoCompatibleFileError(Platform.CURSEFORGE.value, project_id)
    sha1 = sha1_from_hashes(selected.get("hashes"))
    if sha1 is None:
        raise NoCompatibleFileError(Platform.CURSEFORGE.value, project_id)

    return RemoteMod(
        name=project.get("name", ""),
        file_name=selected.get("fileName", ""),
        hash=sha1,
        download_url=selected["downloadUrl"],
        release_date=format_release_date(selected["fileDate"]),
    )
