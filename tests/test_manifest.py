"""Tests for manifest and lock file persistence."""

import json

import pytest

from conftest import lock_entry, sibling_leftovers, write_lockfile, write_modlist
from minecraft_mod_manager.errors import (
    ConfigFileInvalidError,
    ConfigFileNotFoundError,
    LockFileInvalidError,
)
from minecraft_mod_manager.manifest import (
    Metadata,
    ensure_lock,
    init_config,
    peek_lock,
    read_config,
    read_lock,
    write_config,
    write_lock,
)
from minecraft_mod_manager.models import (
    LockEntry,
    Loader,
    ModEntry,
    ModsConfig,
    Platform,
    ReleaseType,
    find_lock_index,
)


class TestMetadata:
    def test_paths(self, tmp_path):
        meta = Metadata(tmp_path / "server.json")
        assert meta.dir == tmp_path
        assert meta.lock_path == tmp_path / "server-lock.json"

    def test_relative_mods_folder(self, tmp_path):
        meta = Metadata(tmp_path / "modlist.json")
        cfg = init_config(meta, "1.20.1")
        assert meta.mods_folder_path(cfg) == tmp_path / "mods"

    def test_absolute_mods_folder(self, tmp_path):
        meta = Metadata(tmp_path / "modlist.json")
        target = tmp_path / "elsewhere"
        cfg = ModsConfig(
            loader=Loader.FABRIC,
            game_version="1.20.1",
            default_allowed_release_types=[ReleaseType.RELEASE],
            mods_folder=str(target),
        )
        assert meta.mods_folder_path(cfg) == target


class TestConfig:
    def test_missing_config(self, tmp_path):
        with pytest.raises(ConfigFileNotFoundError):
            read_config(Metadata(tmp_path / "modlist.json"))

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "modlist.json"
        path.write_text("{not json")
        with pytest.raises(ConfigFileInvalidError):
            read_config(Metadata(path))

    def test_invalid_utf8(self, tmp_path):
        path = tmp_path / "modlist.json"
        path.write_bytes(b"\xff\xfe\x00not utf-8")
        with pytest.raises(ConfigFileInvalidError):
            read_config(Metadata(path))

    def test_invalid_loader(self, tmp_path):
        path = write_modlist(tmp_path, [], loader="unknown")
        with pytest.raises(ConfigFileInvalidError):
            read_config(Metadata(path))

    def test_duplicate_mods_rejected(self, tmp_path):
        mod = {"type": "modrinth", "id": "AANobbMI"}
        path = write_modlist(tmp_path, [mod, dict(mod)])
        with pytest.raises(ConfigFileInvalidError, match="duplicate"):
            read_config(Metadata(path))

    def test_round_trip(self, tmp_path):
        meta = Metadata(tmp_path / "modlist.json")
        cfg = ModsConfig(
            loader=Loader.QUILT,
            game_version="1.20.4",
            default_allowed_release_types=[ReleaseType.RELEASE],
            mods_folder="mods",
            mods=[
                ModEntry(type=Platform.MODRINTH, id="AANobbMI", name="Sodium"),
                ModEntry(
                    type=Platform.CURSEFORGE,
                    id="238222",
                    name="JEI",
                    allowed_release_types=[ReleaseType.ALPHA],
                    allow_version_fallback=True,
                    version="jei-1.20.1.jar",
                ),
            ],
        )
        write_config(meta, cfg)
        assert read_config(meta) == cfg

    def test_round_trip_empty_mods(self, tmp_path):
        meta = Metadata(tmp_path / "modlist.json")
        cfg = init_config(meta, "1.19.2")
        assert read_config(meta) == cfg
        assert cfg.mods == []

    def test_written_format(self, tmp_path):
        meta = Metadata(tmp_path / "modlist.json")
        init_config(meta, "1.20.1")
        raw = (tmp_path / "modlist.json").read_text()
        assert raw.endswith("}\n")
        data = json.loads(raw)
        assert data == {
            "loader": "fabric",
            "gameVersion": "1.20.1",
            "defaultAllowedReleaseTypes": ["release", "beta"],
            "modsFolder": "mods",
            "mods": [],
        }
        assert '\n  "loader"' in raw

    def test_unset_optionals_omitted(self, tmp_path):
        path = write_modlist(tmp_path, [{"type": "modrinth", "id": "abc"}])
        meta = Metadata(path)
        write_config(meta, read_config(meta))
        data = json.loads(path.read_text())
        assert data["mods"] == [{"type": "modrinth", "id": "abc", "name": ""}]


class TestLock:
    def test_ensure_creates_empty(self, tmp_path):
        meta = Metadata(tmp_path / "modlist.json")
        assert ensure_lock(meta) == []
        assert json.loads(meta.lock_path.read_text()) == []

    def test_peek_does_not_create(self, tmp_path):
        meta = Metadata(tmp_path / "modlist.json")
        assert peek_lock(meta) == []
        assert not meta.lock_path.exists()

    def test_round_trip(self, tmp_path):
        meta = Metadata(tmp_path / "modlist.json")
        entries = [
            LockEntry.model_validate(lock_entry("abc", "a.jar", b"a")),
            LockEntry.model_validate(
                lock_entry("123", "b.jar", b"b", platform=Platform.CURSEFORGE)
            ),
        ]
        write_lock(meta, entries)
        assert read_lock(meta) == entries
        assert sibling_leftovers(tmp_path) == []

    def test_round_trip_empty(self, tmp_path):
        meta = Metadata(tmp_path / "modlist.json")
        write_lock(meta, [])
        assert read_lock(meta) == []

    def test_on_disk_field_names(self, tmp_path):
        write_lockfile(tmp_path, [lock_entry("abc", "a.jar", b"a")])
        meta = Metadata(tmp_path / "modlist.json")
        entry = read_lock(meta)[0]
        assert entry.file_name == "a.jar"
        assert entry.released_on == "2024-01-01T00:00:00Z"

    def test_invalid_lock(self, tmp_path):
        (tmp_path / "modlist-lock.json").write_text('{"not": "a list"}')
        with pytest.raises(LockFileInvalidError):
            read_lock(Metadata(tmp_path / "modlist.json"))

    def test_invalid_utf8_lock(self, tmp_path):
        (tmp_path / "modlist-lock.json").write_bytes(b"[\xff\xfe]")
        with pytest.raises(LockFileInvalidError):
            read_lock(Metadata(tmp_path / "modlist.json"))

    def test_lock_path_is_directory(self, tmp_path):
        (tmp_path / "modlist-lock.json").mkdir()
        with pytest.raises(LockFileInvalidError):
            read_lock(Metadata(tmp_path / "modlist.json"))


def test_find_lock_index_matches_platform_and_id():
    lock = [
        LockEntry.model_validate(lock_entry("abc", "a.jar", b"a")),
        LockEntry.model_validate(
            lock_entry("abc", "b.jar", b"b", platform=Platform.CURSEFORGE)
        ),
    ]
    assert find_lock_index(lock, Platform.CURSEFORGE, "abc") == 1
    assert find_lock_index(lock, Platform.MODRINTH, "abc") == 0
    assert find_lock_index(lock, Platform.MODRINTH, "xyz") == -1
