"""
TODO Scanner
============

Walks a workspace and extracts TODO / FIXME / HACK / NOTE comments.

Build output, dependencies, VCS metadata and TodoForge's own state are never
scanned. Files are visited in sorted path order and TODOs within a file in
line order, so two scans of an unchanged tree yield the same list.
"""

import hashlib
import logging
import os
import re
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence

from todoforge.config import DEFAULT_FILE_PATTERNS
from todoforge.file_ops import is_backup_file
from todoforge.models import TodoItem, TodoType

logger = logging.getLogger(__name__)

EXCLUDED_DIRS = frozenset({
    "node_modules",
    "dist",
    "build",
    "out",
    "coverage",
    "vendor",
    ".git",
    ".hg",
    ".svn",
    ".todoforge",
    ".next",
    ".venv",
    "venv",
    "__pycache__",
})

TODO_PATTERN = re.compile(
    r"(?://|#|/\*|\*|<!--)\s*(TODO|FIXME|HACK|NOTE)\b:?\s*(.+?)\s*(?:\*/|-->)?\s*$",
    re.IGNORECASE,
)

CONTEXT_LINES = 3
MAX_FILE_BYTES = 2 * 1024 * 1024

_EASY = re.compile(r"add\s+comment|fix\s+formatting", re.IGNORECASE)
_MODERATE = re.compile(r"update\s+(?:the\s+)?doc|rename", re.IGNORECASE)
_HARD = re.compile(r"\b(?:implement|refactor|optimi[sz]e)", re.IGNORECASE)


def estimate_todo_confidence(content: str) -> float:
    """Heuristic pre-score of how mechanical a TODO sounds."""
    score = 0.5
    if _EASY.search(content):
        score += 0.3
    elif _MODERATE.search(content):
        score += 0.2
    if len(content) > 100:
        score -= 0.1
    if _HARD.search(content):
        score -= 0.2
    return round(min(1.0, max(0.0, score)), 2)


def _normalize_extensions(patterns: Optional[Iterable[str]]) -> Sequence[str]:
    extensions = []
    for pattern in patterns or DEFAULT_FILE_PATTERNS:
        ext = pattern.strip().lstrip("*")
        if not ext:
            continue
        extensions.append(ext.lower() if ext.startswith(".") else f".{ext.lower()}")
    return tuple(extensions)


def iter_source_files(workspace: Path, file_patterns: Optional[Iterable[str]] = None) -> Iterator[Path]:
    """Files under ``workspace`` with a matching extension, sorted, excluded dirs pruned."""
    extensions = _normalize_extensions(file_patterns)
    for root, dirs, files in os.walk(workspace):
        dirs[:] = sorted(d for d in dirs if d not in EXCLUDED_DIRS)
        for name in sorted(files):
            path = Path(root) / name
            if is_backup_file(path):
                continue
            if path.suffix.lower() in extensions:
                yield path


def _todo_id(relative: str, line: int, content: str) -> str:
    digest = hashlib.sha1(f"{relative}:{line}:{content}".encode("utf-8")).hexdigest()[:10]
    return f"todo-{digest}"


def scan_text(path: str, text: str, relative: Optional[str] = None) -> List[TodoItem]:
    """TODO items found in one file's text."""
    lines = text.splitlines()
    todos: List[TodoItem] = []
    for index, line in enumerate(lines):
        match = TODO_PATTERN.search(line)
        if match is None:
            continue
        content = match.group(2).strip()
        if not content:
            continue
        number = index + 1
        todos.append(TodoItem(
            id=_todo_id(relative or path, number, content),
            file_path=path,
            line=number,
            column=match.start() + 1,
            content=content,
            type=TodoType(match.group(1).upper()),
            confidence=estimate_todo_confidence(content),
            context_before=tuple(lines[max(0, index - CONTEXT_LINES):index]),
            context_after=tuple(lines[index + 1:index + 1 + CONTEXT_LINES]),
        ))
    return todos


class TodoScanner:
    """Finds TODO comments in a workspace."""

    def __init__(self, file_patterns: Optional[Iterable[str]] = None):
        self.file_patterns = list(file_patterns) if file_patterns else list(DEFAULT_FILE_PATTERNS)

    def list_todos(self, workspace_path: str, file_patterns: Optional[Iterable[str]] = None) -> List[TodoItem]:
        """
        All TODO items under ``workspace_path`` in discovery order.

        Unreadable and oversized files are skipped with a log message.
        """
        workspace = Path(workspace_path)
        todos: List[TodoItem] = []
        for path in iter_source_files(workspace, file_patterns or self.file_patterns):
            try:
                if path.stat().st_size > MAX_FILE_BYTES:
                    logger.debug("Skipping large file %s", path)
                    continue
                text = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.debug("Skipping unreadable file %s: %s", path, e)
                continue
            todos.extend(scan_text(str(path), text, str(path.relative_to(workspace))))
        return todos

    @staticmethod
    def locate(todo: TodoItem, text: str) -> Optional[TodoItem]:
        """
        The same TODO in the current text of its file.

        Returns the item unchanged if it is still on its line, moved to the
        nearest line holding identical TODO text otherwise, or None if the
        TODO no longer exists.
        """
        current = [item for item in scan_text(todo.file_path, text) if item.key == todo.key]
        if not current:
            return None
        if any(item.line == todo.line for item in current):
            return todo
        nearest = min(current, key=lambda item: abs(item.line - todo.line))
        return todo.moved_to(nearest.line)
