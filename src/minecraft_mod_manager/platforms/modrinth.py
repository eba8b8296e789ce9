"""Modrinth catalog client and mod selection."""

from __future__ import annotations

import json
import logging
import os
from typing import Any

import requests

from minecraft_mod_manager.core.async_utils import CancelToken
from minecraft_mod_manager.core.http import RateLimitedSession
from minecraft_mod_manager.errors import (
    NoCompatibleFileError,
    ProjectApiError,
    ProjectNotFoundError,
    VersionApiError,
    VersionNotFoundError,
)
from minecraft_mod_manager.models import FetchOptions, Platform, RemoteMod
from minecraft_mod_manager.platforms.versions import (
    format_release_date,
    next_version_down,
    parse_release_date,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.modrinth.com/v2"


def base_url() -> str:
    return os.environ.get("MODRINTH_API_URL", DEFAULT_BASE_URL).rstrip("/")


class ModrinthClient:
    """Thin wrapper over the Modrinth v2 REST API.

    Args:
        http: Shared rate-limited session.
        api_key: Optional personal access token.
        url: API root; defaults to ``MODRINTH_API_URL`` or the public API.
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
            headers["Authorization"] = self.api_key
        return headers

    def get_project(self, project_id: str, cancel: CancelToken) -> dict:
        url = f"{self.url}/project/{project_id}"
        try:
            response = self.http.get(url, cancel, headers=self._headers())
        except requests.RequestException as exc:
            raise ProjectApiError(
                Platform.MODRINTH.value, project_id, str(exc)
            ) from exc
        if response.status_code == 404:
            raise ProjectNotFoundError(Platform.MODRINTH.value, project_id)
        if response.status_code != 200:
            raise ProjectApiError(
                Platform.MODRINTH.value,
                project_id,
                f"unexpected status code: {response.status_code}",
            )
        return response.json()

    def project_title(self, project_id: str, cancel: CancelToken) -> str:
        return self.get_project(project_id, cancel).get("title", "")

    def get_versions(
        self,
        project_id: str,
        loaders: list[str],
        game_versions: list[str],
        cancel: CancelToken,
    ) -> list[dict]:
        url = f"{self.url}/project/{project_id}/version"
        params = {
            "loaders": json.dumps(loaders),
            "game_versions": json.dumps(game_versions),
        }
        try:
            response = self.http.get(
                url, cancel, params=params, headers=self._headers()
            )
        except requests.RequestException as exc:
            raise ProjectApiError(
                Platform.MODRINTH.value, project_id, str(exc)
            ) from exc
        if response.status_code == 404:
            raise ProjectNotFoundError(Platform.MODRINTH.value, project_id)
        if response.status_code != 200:
            raise ProjectApiError(
                Platform.MODRINTH.value,
                project_id,
                f"unexpected status code: {response.status_code}",
            )
        return response.json()

    def version_for_hash(
        self, sha1: str, cancel: CancelToken, algorithm: str = "sha1"
    ) -> dict:
        """Look up the version containing a file with the given hash.

        Raises:
            VersionNotFoundError: No version has a file with this hash.
            VersionApiError: Any other failure.
        """
        url = f"{self.url}/version_file/{sha1}"
        try:
            response = self.http.get(
                url,
                cancel,
                params={"algorithm": algorithm},
                headers=self._headers(),
            )
        except requests.RequestException as exc:
            raise VersionApiError(sha1, str(exc)) from exc
        if response.status_code == 404:
            raise VersionNotFoundError(sha1, algorithm)
        if response.status_code != 200:
            raise VersionApiError(
                sha1, f"unexpected status code: {response.status_code}"
            )
        return response.json()


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------


def filter_versions(
    versions: list[dict], options: FetchOptions, target_version: str
) -> list[dict]:
    """Keep the versions that satisfy *options* for *target_version*."""
    if options.fixed_version:
        return [
            version
            for version in versions
            if version.get("version_number") == options.fixed_version
        ]

    allowed = {release.value for release in options.allowed_release_types}
    return [
        version
        for version in versions
        if version.get("version_type") in allowed
        and target_version in (version.get("game_versions") or [])
    ]


def _first_file(version: dict) -> dict[str, Any] | None:
    files = version.get("files") or []
    if not files:
        return None
    return files[0]


def fetch_modrinth(
    client: ModrinthClient,
    project_id: str,
    options: FetchOptions,
    cancel: CancelToken,
) -> RemoteMod:
    """Pick the newest Modrinth file for a project.

    Raises:
        ProjectNotFoundError: Unknown project.
        NoCompatibleFileError: Nothing matches, even after fallback.
    """
    project = client.get_project(project_id, cancel)
    current_version = options.game_version

    while True:
        versions = client.get_versions(
            project_id,
            [options.loader.value],
            [current_version],
            cancel,
        )
        candidates = filter_versions(versions, options, current_version)
        if candidates:
            break

        next_version, can_go_down = next_version_down(current_version)
        if not (options.allow_fallback and can_go_down):
            raise NoCompatibleFileError(Platform.MODRINTH.value, project_id)
        logger.debug(
            "No Modrinth file for %s on %s, trying %s",
            project_id,
            current_version,
            next_version,
        )
        current_version = next_version

    selected = max(
        candidates,
        key=lambda version: parse_release_date(version["date_published"]),
    )
    file = _first_file(selected)
    if (
        file is None
        or not (file.get("hashes") or {}).get("sha1")
        or not file.get("url")
    ):
        raise NoCompatibleFileError(Platform.MODRINTH.value, project_id)

    return RemoteMod(
        name=project.get("title", ""),
        file_name=file.get("filename", ""),
        hash=file["hashes"]["sha1"],
        download_url=file["url"],
        release_date=format_release_date(selected["date_published"]),
    )
