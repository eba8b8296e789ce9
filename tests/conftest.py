"""Shared pytest fixtures for minecraft-mod-manager tests.

Reconciler tests run against real temp directories with an in-memory
catalog and downloader, so no test touches the network.
"""

import hashlib
import json
import threading
from pathlib import Path

import pytest

import minecraft_mod_manager.core.async_utils as async_utils
from minecraft_mod_manager.errors import (
    DownloadError,
    ModNotFoundError,
    NoCompatibleFileError,
    VersionNotFoundError,
)
from minecraft_mod_manager.models import Platform, RemoteMod
from minecraft_mod_manager.platforms import FingerprintMatch


def sha1(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()


def make_remote(
    name: str,
    file_name: str,
    content: bytes,
    release_date: str = "2024-01-01T00:00:00Z",
    url: str | None = None,
) -> RemoteMod:
    """A catalog answer whose hash matches *content*."""
    return RemoteMod(
        name=name,
        file_name=file_name,
        hash=sha1(content),
        download_url=url or f"https://cdn.example.com/{file_name}",
        release_date=release_date,
    )


class FakeCatalog:
    """In-memory catalog recording every call.

    Attributes:
        remote: ``(platform, id)`` -> ``RemoteMod`` or an exception to raise.
        fingerprints: CurseForge fingerprint -> project id.
        hashes: SHA-1 -> Modrinth project id.
        names: ``(platform, id)`` -> display name.
        files: ``(platform, id, sha1)`` -> ``RemoteMod`` describing an
            identified local file, or an exception to raise.
    """

    def __init__(self):
        self.remote = {}
        self.fingerprints = {}
        self.hashes = {}
        self.names = {}
        self.files = {}
        self.fetch_calls = []
        self.locate_calls = []
        self.fingerprint_calls = []
        self.hash_calls = []
        self.name_calls = []
        self._lock = threading.Lock()

    def fetch_mod(self, platform, project_id, options, cancel):
        with self._lock:
            self.fetch_calls.append((platform, project_id, options))
        value = self.remote.get((platform, project_id))
        if value is None:
            raise ModNotFoundError(platform.value, project_id)
        if isinstance(value, Exception):
            raise value
        return value

    def match_fingerprints(self, fingerprints, cancel):
        with self._lock:
            self.fingerprint_calls.append(list(fingerprints))
        return [
            FingerprintMatch(project_id=self.fingerprints[fp], fingerprint=fp)
            for fp in fingerprints
            if fp in self.fingerprints
        ]

    def project_for_hash(self, sha1_value, cancel):
        with self._lock:
            self.hash_calls.append(sha1_value)
        if sha1_value not in self.hashes:
            raise VersionNotFoundError(sha1_value)
        return self.hashes[sha1_value]

    def locate_file(self, platform, project_id, sha1_value, fingerprint, cancel):
        with self._lock:
            self.locate_calls.append((platform, project_id, sha1_value))
        value = self.files.get((platform, project_id, sha1_value))
        if value is None:
            raise NoCompatibleFileError(platform.value, project_id)
        if isinstance(value, Exception):
            raise value
        return value

    def project_name(self, platform, project_id, cancel):
        with self._lock:
            self.name_calls.append((platform, project_id))
        return self.names.get((platform, project_id), project_id)


class FakeDownloader:
    """Writes the bytes registered for a URL; unknown URLs fail."""

    def __init__(self, files=None):
        self.files = dict(files or {})
        self.calls = []

    def add(self, remote: RemoteMod, content: bytes) -> None:
        self.files[remote.download_url] = content

    def __call__(self, url, destination, cancel):
        self.calls.append((url, Path(destination)))
        if url not in self.files:
            raise DownloadError(url, "request failed with status 404")
        Path(destination).write_bytes(self.files[url])


def write_modlist(
    directory: Path,
    mods: list[dict],
    name: str = "modlist.json",
    **overrides,
) -> Path:
    """Write a manifest into *directory* and return its path."""
    payload = {
        "loader": "fabric",
        "gameVersion": "1.20.1",
        "defaultAllowedReleaseTypes": ["release", "beta"],
        "modsFolder": "mods",
        "mods": mods,
    }
    payload.update(overrides)
    path = directory / name
    path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    return path


def write_lockfile(directory: Path, entries: list[dict]) -> Path:
    path = directory / "modlist-lock.json"
    path.write_text(json.dumps(entries, indent=2) + "\n", encoding="utf-8")
    return path


def lock_entry(
    project_id: str,
    file_name: str,
    content: bytes,
    platform: Platform = Platform.MODRINTH,
    released_on: str = "2024-01-01T00:00:00Z",
    name: str = "Example",
) -> dict:
    return {
        "type": platform.value,
        "id": project_id,
        "name": name,
        "fileName": file_name,
        "releasedOn": released_on,
        "hash": sha1(content),
        "downloadUrl": f"https://cdn.example.com/{file_name}",
    }


def sibling_leftovers(directory: Path) -> list[str]:
    """Temp or backup files the atomic helpers should have removed."""
    return sorted(p.name for p in directory.iterdir() if ".mmm." in p.name)


@pytest.fixture(autouse=True)
def reset_semaphore():
    """Each test starts without a semaphore bound to an old event loop."""
    original = async_utils._semaphore
    async_utils._semaphore = None
    yield
    async_utils._semaphore = original


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """Keep developer credentials and settings out of the tests."""
    for var in (
        "MODRINTH_API_KEY",
        "CURSEFORGE_API_KEY",
        "MODRINTH_API_URL",
        "CURSEFORGE_API_URL",
        "MMM_MAX_PARALLEL_REQUESTS",
        "MMM_REQUESTS_PER_SECOND",
        "MMM_MAX_RETRIES",
        "MMM_DEBUG",
        "MMM_SETTINGS",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def downloader():
    return FakeDownloader()


@pytest.fixture
def workspace(tmp_path):
    """A directory holding the manifest and its ``mods`` folder."""
    (tmp_path / "mods").mkdir()
    return tmp_path
