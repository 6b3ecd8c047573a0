"""
File Operations
===============

Reading and writing workspace files for the session loop.

Writes can be preceded by a backup copy placed next to the original as
``<path>.backup-<ISO timestamp>`` (with ``:`` and ``.`` in the timestamp
replaced by ``-``). Backups are the only rollback mechanism, so restoring
one is synchronous and raises if it fails.
"""

import hashlib
import os
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

from todoforge.errors import FileSystemError

BACKUP_MARKER = ".backup-"


@dataclass(frozen=True)
class ContextLine:
    number: int
    text: str
    is_target: bool = False


@dataclass(frozen=True)
class WriteResult:
    path: str
    backup_path: Optional[str]
    checksum: str


def checksum(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def backup_timestamp(now: Optional[datetime] = None) -> str:
    """Millisecond ISO-8601 UTC timestamp made safe for file names."""
    now = now or datetime.now(timezone.utc)
    stamp = now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
    return stamp.replace(":", "-").replace(".", "-")


def is_backup_file(path: Path) -> bool:
    return BACKUP_MARKER in path.name


class FileOps:
    """File reads, backup-on-write and restore."""

    @staticmethod
    def read_text(path: str) -> str:
        try:
            with open(path, "r", encoding="utf-8", newline="") as f:
                return f.read()
        except FileNotFoundError as e:
            raise FileSystemError(f"No such file: {path}", path=path) from e
        except PermissionError as e:
            raise FileSystemError(f"Permission denied reading {path}", path=path) from e
        except (OSError, UnicodeDecodeError) as e:
            raise FileSystemError(f"Cannot read {path}: {e}", path=path) from e

    @staticmethod
    def file_checksum(path: str) -> str:
        try:
            return checksum(Path(path).read_bytes())
        except OSError as e:
            raise FileSystemError(f"Cannot read {path}: {e}", path=path) from e

    @staticmethod
    def read_file_context(path: str, line: int, context_lines: int = 10) -> List[ContextLine]:
        """
        Lines around ``line`` (1-based), clamped to the file.

        Args:
            path: File to read
            line: Target line number
            context_lines: Lines to include on each side

        Returns:
            ContextLine entries in file order; the target line is flagged
        """
        lines = FileOps.read_text(path).splitlines()
        start = max(1, line - context_lines)
        end = min(len(lines), line + context_lines)
        return [
            ContextLine(number, lines[number - 1], number == line)
            for number in range(start, end + 1)
        ]

    @staticmethod
    def create_backup(path: str, now: Optional[datetime] = None) -> str:
        """Copy ``path`` to a timestamped sibling and return the copy's path."""
        source = Path(path)
        if not source.exists():
            raise FileSystemError(f"No such file: {path}", path=path)
        backup = source.with_name(f"{source.name}{BACKUP_MARKER}{backup_timestamp(now)}")
        counter = 1
        while backup.exists():
            backup = source.with_name(f"{source.name}{BACKUP_MARKER}{backup_timestamp(now)}-{counter}")
            counter += 1
        try:
            shutil.copy2(source, backup)
        except PermissionError as e:
            raise FileSystemError(f"Permission denied creating backup {backup}", path=path) from e
        except OSError as e:
            raise FileSystemError(f"Cannot create backup of {path}: {e}", path=path) from e
        return str(backup)

    @staticmethod
    def write_file(path: str, content: str, create_backup: bool = True) -> WriteResult:
        """
        Write ``content`` to ``path``, backing up the existing file first.

        The write goes through a temporary file and an atomic rename.
        """
        target = Path(path)
        backup_path = FileOps.create_backup(path) if create_backup and target.exists() else None
        data = content.encode("utf-8")
        tmp = target.with_name(f".{target.name}.tmp-{os.getpid()}")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(data)
            if target.exists():
                shutil.copymode(target, tmp)
            os.replace(tmp, target)
        except PermissionError as e:
            tmp.unlink(missing_ok=True)
            raise FileSystemError(f"Permission denied writing {path}", path=path) from e
        except OSError as e:
            tmp.unlink(missing_ok=True)
            raise FileSystemError(f"Cannot write {path}: {e}", path=path) from e
        return WriteResult(path=str(target), backup_path=backup_path, checksum=checksum(data))

    @staticmethod
    def restore_backup(path: str, backup_path: str) -> None:
        """Put the backup's bytes back at ``path``."""
        try:
            shutil.copy2(backup_path, path)
        except OSError as e:
            raise FileSystemError(f"Cannot restore {path} from {backup_path}: {e}", path=path) from e

    @staticmethod
    def list_backups(path: str) -> List[Tuple[str, float]]:
        """Backups of ``path`` as (backup path, mtime), newest first."""
        target = Path(path)
        found = [
            (str(candidate), candidate.stat().st_mtime)
            for candidate in target.parent.glob(f"{target.name}{BACKUP_MARKER}*")
        ]
        return sorted(found, key=lambda item: item[1], reverse=True)
