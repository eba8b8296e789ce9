"""Tests for file_handler: atomic writes, backup swaps, path containment."""

import os
from unittest.mock import patch

import pytest

from conftest import sibling_leftovers, sha1
from minecraft_mod_manager import file_handler
from minecraft_mod_manager.errors import (
    AtomicWriteError,
    ExpectedRemoteError,
    HashMismatchError,
    IntegrityAtomicWriteError,
    IntegrityError,
    ModNotFoundError,
    OutsideRootError,
    RemoteAtomicWriteError,
    SiblingPathExhaustedError,
    raise_with_rollback,
)
from minecraft_mod_manager.file_handler import (
    MAX_SIBLING_ATTEMPTS,
    SYMLINKS_SUPPORTED,
    create_temp_sibling,
    hashes_equal,
    next_sibling_path,
    path_within_root,
    read_text_with_encoding,
    replace_with_backup,
    resolve_writable_path,
    sha1_for_file,
    write_file_atomic,
)

needs_symlinks = pytest.mark.skipif(
    not SYMLINKS_SUPPORTED, reason="platform has no symlink support"
)

# =============================================================================
# next_sibling_path / create_temp_sibling
# =============================================================================


class TestSiblingPaths:
    def test_first_candidate(self, tmp_path):
        target = tmp_path / "modlist.json"
        assert next_sibling_path(target, ".tmp") == tmp_path / "modlist.json.mmm.tmp"

    def test_skips_taken_names(self, tmp_path):
        target = tmp_path / "modlist.json"
        (tmp_path / "modlist.json.mmm.bak").write_text("x")
        (tmp_path / "modlist.json.mmm.bak.1").write_text("x")
        assert (
            next_sibling_path(target, ".bak")
            == tmp_path / "modlist.json.mmm.bak.2"
        )

    def test_exhausted(self, tmp_path):
        target = tmp_path / "modlist.json"
        (tmp_path / "modlist.json.mmm.tmp").write_text("x")
        for n in range(1, MAX_SIBLING_ATTEMPTS):
            (tmp_path / f"modlist.json.mmm.tmp.{n}").write_text("x")
        with pytest.raises(SiblingPathExhaustedError):
            next_sibling_path(target, ".tmp")

    def test_temp_sibling_is_unique_and_beside_destination(self, tmp_path):
        destination = tmp_path / "x.jar"
        first = create_temp_sibling(destination)
        second = create_temp_sibling(destination)
        assert first != second
        assert first.parent == tmp_path
        assert first.name.startswith("x.jar.mmm.")
        assert first.name.endswith(".tmp")


# =============================================================================
# write_file_atomic
# =============================================================================


class TestWriteFileAtomic:
    def test_creates_missing_target(self, tmp_path):
        target = tmp_path / "modlist.json"
        write_file_atomic(target, b"{}\n")
        assert target.read_bytes() == b"{}\n"
        assert sibling_leftovers(tmp_path) == []

    def test_replaces_existing_target(self, tmp_path):
        target = tmp_path / "modlist.json"
        target.write_bytes(b"old")
        write_file_atomic(target, b"new")
        assert target.read_bytes() == b"new"
        assert sibling_leftovers(tmp_path) == []

    def test_repeated_writes_leave_no_siblings(self, tmp_path):
        target = tmp_path / "lock.json"
        for n in range(5):
            write_file_atomic(target, f"{n}".encode())
        assert target.read_bytes() == b"4"
        assert sibling_leftovers(tmp_path) == []

    def test_backup_swap_when_direct_rename_refused(self, tmp_path):
        """Where overwriting rename is refused the backup path is used."""
        target = tmp_path / "modlist.json"
        target.write_bytes(b"old")
        real_rename = os.rename
        refused = []

        def fake_rename(src, dst):
            if str(dst) == str(target) and os.path.exists(dst) and not refused:
                refused.append(src)
                raise PermissionError("target exists")
            return real_rename(src, dst)

        with patch.object(file_handler.os, "rename", side_effect=fake_rename):
            write_file_atomic(target, b"new")

        assert refused
        assert target.read_bytes() == b"new"
        assert sibling_leftovers(tmp_path) == []

    def test_failed_swap_restores_original(self, tmp_path):
        target = tmp_path / "modlist.json"
        target.write_bytes(b"old")
        real_rename = os.rename

        def fake_rename(src, dst):
            if str(dst) == str(target) and ".mmm.tmp" in str(src):
                raise PermissionError("refused")
            return real_rename(src, dst)

        with patch.object(file_handler.os, "rename", side_effect=fake_rename):
            with pytest.raises(PermissionError):
                write_file_atomic(target, b"new")

        assert target.read_bytes() == b"old"
        assert sibling_leftovers(tmp_path) == []

    def test_rollback_failure_is_reported(self, tmp_path):
        target = tmp_path / "modlist.json"
        target.write_bytes(b"old")
        real_rename = os.rename

        def fake_rename(src, dst):
            if ".mmm.tmp" in str(src):
                raise PermissionError("refused")
            if ".mmm.bak" in str(src):
                raise OSError("restore refused")
            return real_rename(src, dst)

        with patch.object(file_handler.os, "rename", side_effect=fake_rename):
            with pytest.raises(AtomicWriteError) as excinfo:
                write_file_atomic(target, b"new")

        assert isinstance(excinfo.value.original, PermissionError)
        assert len(excinfo.value.rollback_errors) == 1
        assert "restore" in str(excinfo.value.rollback_errors[0])

    def test_write_failure_removes_temp(self, tmp_path):
        target = tmp_path / "modlist.json"
        target.write_bytes(b"old")

        with patch.object(
            file_handler.os, "fsync", side_effect=OSError("disk full")
        ):
            with pytest.raises(OSError, match="disk full"):
                write_file_atomic(target, b"new")

        assert target.read_bytes() == b"old"
        assert sibling_leftovers(tmp_path) == []


# =============================================================================
# replace_with_backup
# =============================================================================


class TestReplaceWithBackup:
    def test_moves_into_missing_destination(self, tmp_path):
        source = tmp_path / "x.jar.mmm.1.tmp"
        source.write_bytes(b"v1")
        destination = tmp_path / "x.jar"
        replace_with_backup(source, destination)
        assert destination.read_bytes() == b"v1"
        assert not source.exists()

    def test_replaces_existing_and_drops_backup(self, tmp_path):
        source = tmp_path / "x.jar.mmm.1.tmp"
        source.write_bytes(b"v2")
        destination = tmp_path / "x.jar"
        destination.write_bytes(b"v1")
        replace_with_backup(source, destination)
        assert destination.read_bytes() == b"v2"
        assert sibling_leftovers(tmp_path) == []

    def test_restores_destination_when_move_fails(self, tmp_path):
        source = tmp_path / "x.jar.mmm.1.tmp"
        source.write_bytes(b"v2")
        destination = tmp_path / "x.jar"
        destination.write_bytes(b"v1")
        real_rename = os.rename

        def fake_rename(src, dst):
            if str(src) == str(source):
                raise PermissionError("locked")
            return real_rename(src, dst)

        with patch.object(file_handler.os, "rename", side_effect=fake_rename):
            with pytest.raises(PermissionError):
                replace_with_backup(source, destination)

        assert destination.read_bytes() == b"v1"
        assert not (tmp_path / "x.jar.mmm.bak").exists()

    def test_backup_removal_failure_is_not_an_error(self, tmp_path, caplog):
        source = tmp_path / "x.jar.mmm.1.tmp"
        source.write_bytes(b"v2")
        destination = tmp_path / "x.jar"
        destination.write_bytes(b"v1")

        with patch.object(
            file_handler, "remove_if_exists", side_effect=OSError("busy")
        ):
            with caplog.at_level("DEBUG", logger="minecraft_mod_manager"):
                replace_with_backup(source, destination)

        assert destination.read_bytes() == b"v2"
        assert "Could not remove backup" in caplog.text


# =============================================================================
# resolve_writable_path
# =============================================================================


class TestResolveWritablePath:
    def test_plain_file_inside_root(self, tmp_path):
        root = tmp_path / "mods"
        root.mkdir()
        resolved = resolve_writable_path(root, root / "x.jar")
        assert resolved == root.resolve() / "x.jar"

    def test_missing_file_is_allowed(self, tmp_path):
        root = tmp_path / "mods"
        root.mkdir()
        resolved = resolve_writable_path(root, root / "new.jar")
        assert resolved.name == "new.jar"

    @needs_symlinks
    def test_file_symlink_outside_root_rejected(self, tmp_path):
        root = tmp_path / "mods"
        root.mkdir()
        outside = tmp_path / "elsewhere"
        outside.mkdir()
        (root / "x.jar").symlink_to(outside / "x.jar")

        with pytest.raises(OutsideRootError) as excinfo:
            resolve_writable_path(root, root / "x.jar")
        assert excinfo.value.root == str(root.resolve())

    @needs_symlinks
    def test_ancestor_symlink_outside_root_rejected(self, tmp_path):
        root = tmp_path / "mods"
        root.mkdir()
        outside = tmp_path / "elsewhere"
        outside.mkdir()
        (root / "sub").symlink_to(outside, target_is_directory=True)

        with pytest.raises(OutsideRootError):
            resolve_writable_path(root, root / "sub" / "x.jar")

    @needs_symlinks
    def test_relative_symlink_inside_root_allowed(self, tmp_path):
        root = tmp_path / "mods"
        (root / "real").mkdir(parents=True)
        (root / "x.jar").symlink_to("real/x.jar")

        resolved = resolve_writable_path(root, root / "x.jar")
        assert resolved == root.resolve() / "real" / "x.jar"

    @needs_symlinks
    def test_symlinked_root_is_resolved(self, tmp_path):
        real_root = tmp_path / "real-mods"
        real_root.mkdir()
        root = tmp_path / "mods"
        root.symlink_to(real_root, target_is_directory=True)

        resolved = resolve_writable_path(root, root / "x.jar")
        assert resolved == real_root.resolve() / "x.jar"

    def test_path_within_root(self, tmp_path):
        assert path_within_root(tmp_path, tmp_path)
        assert path_within_root(tmp_path, tmp_path / "a" / "b")
        assert not path_within_root(tmp_path / "a", tmp_path / "b")
        assert not path_within_root(tmp_path / "a", tmp_path / "a-b")


# =============================================================================
# Content helpers
# =============================================================================


class TestContentHelpers:
    def test_sha1_for_file(self, tmp_path):
        f = tmp_path / "x.jar"
        f.write_bytes(b"hello")
        assert sha1_for_file(f) == sha1(b"hello")

    def test_hashes_equal_ignores_case_and_space(self):
        assert hashes_equal("ABCDEF", " abcdef\n")
        assert not hashes_equal("abc", "abd")

    def test_read_text_empty_file(self, tmp_path):
        f = tmp_path / ".mmmignore"
        f.write_bytes(b"")
        assert read_text_with_encoding(f) == ("", "utf-8")

    def test_read_text_utf8(self, tmp_path):
        f = tmp_path / ".mmmignore"
        f.write_text("mods/*.jar\n", encoding="utf-8")
        content, encoding = read_text_with_encoding(f)
        assert content == "mods/*.jar\n"
        assert encoding == "utf-8"


# =============================================================================
# raise_with_rollback
# =============================================================================


class TestRaiseWithRollback:
    def test_no_rollback_errors_reraises_original(self):
        original = HashMismatchError("sodium.jar", "aa", "bb")
        with pytest.raises(HashMismatchError) as excinfo:
            raise_with_rollback(original, [])
        assert excinfo.value is original

    @pytest.mark.parametrize(
        "original, wrapper, category",
        [
            (
                HashMismatchError("sodium.jar", "aa", "bb"),
                IntegrityAtomicWriteError,
                IntegrityError,
            ),
            (
                ModNotFoundError("modrinth", "AANobbMI"),
                RemoteAtomicWriteError,
                ExpectedRemoteError,
            ),
        ],
    )
    def test_wrapper_keeps_category(self, original, wrapper, category):
        with pytest.raises(wrapper) as excinfo:
            raise_with_rollback(original, [OSError("cleanup refused")])

        assert isinstance(excinfo.value, category)
        assert isinstance(excinfo.value, AtomicWriteError)
        assert excinfo.value.original is original
        assert excinfo.value.__cause__ is original
        assert "cleanup refused" in str(excinfo.value)

    def test_other_errors_get_plain_wrapper(self):
        with pytest.raises(AtomicWriteError) as excinfo:
            raise_with_rollback(
                PermissionError("refused"), [OSError("restore refused")]
            )

        assert not isinstance(excinfo.value, (IntegrityError, ExpectedRemoteError))
