"""
Tests for File Operations
=========================

Tests for todoforge/file_ops.py
"""

import os
from datetime import datetime, timezone
from pathlib import Path

import pytest

from todoforge.errors import FileSystemError
from todoforge.file_ops import FileOps, backup_timestamp, checksum, is_backup_file


FIXED_NOW = datetime(2024, 1, 2, 3, 4, 5, 6000, tzinfo=timezone.utc)


class TestBackupNames:
    """Tests for backup naming."""

    def test_timestamp_is_filename_safe(self):
        assert backup_timestamp(FIXED_NOW) == "2024-01-02T03-04-05-006Z"

    def test_is_backup_file(self):
        assert is_backup_file(Path("a.ts.backup-2024-01-02T03-04-05-006Z"))
        assert not is_backup_file(Path("a.ts"))


class TestReadText:
    """Tests for FileOps.read_text() and read_file_context()"""

    def test_preserves_line_endings(self, tmp_path):
        path = tmp_path / "a.ts"
        path.write_bytes(b"a\r\nb\r\n")
        assert FileOps.read_text(str(path)) == "a\r\nb\r\n"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileSystemError) as exc_info:
            FileOps.read_text(str(tmp_path / "missing.ts"))
        assert exc_info.value.path == str(tmp_path / "missing.ts")

    def test_context_is_clamped(self, tmp_path):
        path = tmp_path / "a.ts"
        path.write_text("\n".join(f"line {i}" for i in range(1, 6)), encoding="utf-8")

        context = FileOps.read_file_context(str(path), 2, context_lines=2)
        assert [c.number for c in context] == [1, 2, 3, 4]
        assert [c.is_target for c in context] == [False, True, False, False]
        assert context[1].text == "line 2"


class TestBackups:
    """Tests for FileOps.create_backup(), restore_backup() and list_backups()"""

    def test_create_backup(self, tmp_path):
        path = tmp_path / "a.ts"
        path.write_text("original", encoding="utf-8")

        backup = FileOps.create_backup(str(path), now=FIXED_NOW)
        assert Path(backup).name == "a.ts.backup-2024-01-02T03-04-05-006Z"
        assert Path(backup).read_text(encoding="utf-8") == "original"

    def test_backup_names_do_not_collide(self, tmp_path):
        path = tmp_path / "a.ts"
        path.write_text("original", encoding="utf-8")

        first = FileOps.create_backup(str(path), now=FIXED_NOW)
        second = FileOps.create_backup(str(path), now=FIXED_NOW)
        assert first != second
        assert second.endswith("-1")

    def test_backup_of_missing_file(self, tmp_path):
        with pytest.raises(FileSystemError):
            FileOps.create_backup(str(tmp_path / "missing.ts"))

    def test_restore(self, tmp_path):
        path = tmp_path / "a.ts"
        path.write_text("original", encoding="utf-8")
        backup = FileOps.create_backup(str(path))
        path.write_text("changed", encoding="utf-8")

        FileOps.restore_backup(str(path), backup)
        assert path.read_text(encoding="utf-8") == "original"

    def test_restore_from_missing_backup(self, tmp_path):
        path = tmp_path / "a.ts"
        path.write_text("x", encoding="utf-8")
        with pytest.raises(FileSystemError):
            FileOps.restore_backup(str(path), str(tmp_path / "nope"))

    def test_list_backups_newest_first(self, tmp_path):
        path = tmp_path / "a.ts"
        path.write_text("x", encoding="utf-8")
        older = FileOps.create_backup(str(path), now=FIXED_NOW)
        newer = FileOps.create_backup(str(path), now=datetime(2024, 2, 1, tzinfo=timezone.utc))
        os.utime(older, (1000, 1000))
        os.utime(newer, (2000, 2000))

        assert [b for b, _ in FileOps.list_backups(str(path))] == [newer, older]


class TestWriteFile:
    """Tests for FileOps.write_file()"""

    def test_write_with_backup(self, tmp_path):
        path = tmp_path / "a.ts"
        path.write_text("before", encoding="utf-8")

        result = FileOps.write_file(str(path), "after")
        assert path.read_text(encoding="utf-8") == "after"
        assert result.checksum == checksum(b"after")
        assert Path(result.backup_path).read_text(encoding="utf-8") == "before"
        assert FileOps.file_checksum(str(path)) == result.checksum

    def test_write_without_backup(self, tmp_path):
        path = tmp_path / "a.ts"
        path.write_text("before", encoding="utf-8")

        result = FileOps.write_file(str(path), "after", create_backup=False)
        assert result.backup_path is None
        assert FileOps.list_backups(str(path)) == []

    def test_new_file_has_no_backup(self, tmp_path):
        path = tmp_path / "nested" / "new.ts"

        result = FileOps.write_file(str(path), "fresh")
        assert result.backup_path is None
        assert path.read_text(encoding="utf-8") == "fresh"

    def test_no_temp_files_left(self, tmp_path):
        path = tmp_path / "a.ts"
        FileOps.write_file(str(path), "content", create_backup=False)
        assert sorted(p.name for p in tmp_path.iterdir()) == ["a.ts"]
