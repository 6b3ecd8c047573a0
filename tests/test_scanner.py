"""
Tests for the TODO Scanner
==========================

Tests for todoforge/scanner.py
"""

import pytest

from todoforge.models import TodoType
from todoforge.scanner import TodoScanner, estimate_todo_confidence, scan_text


SOURCE = """import { x } from './x';

export function setup() {
  // TODO: add comment about initialization
  return x;
}
/* FIXME fix formatting */
# hack: not a real tag here
"""


class TestScanText:
    """Tests for scan_text()"""

    def test_finds_tags(self):
        todos = scan_text("/w/a.ts", SOURCE)

        assert [(t.line, t.type, t.content) for t in todos] == [
            (4, TodoType.TODO, "add comment about initialization"),
            (7, TodoType.FIXME, "fix formatting"),
            (8, TodoType.HACK, "not a real tag here"),
        ]

    def test_column_and_context(self):
        todo = scan_text("/w/a.ts", SOURCE)[0]

        assert todo.column == 3
        assert todo.context_before == ("import { x } from './x';", "", "export function setup() {")
        assert todo.context_after[0] == "  return x;"

    def test_ids_are_stable(self):
        first = scan_text("/w/a.ts", SOURCE, "a.ts")
        second = scan_text("/w/a.ts", SOURCE, "a.ts")
        assert [t.id for t in first] == [t.id for t in second]

    def test_empty_tag_ignored(self):
        assert scan_text("/w/a.ts", "// TODO:\n") == []

    def test_html_comment(self):
        todos = scan_text("/w/README.md", "<!-- NOTE: update documentation -->\n")
        assert todos[0].content == "update documentation"
        assert todos[0].type == TodoType.NOTE


class TestConfidenceEstimate:
    """Tests for estimate_todo_confidence()"""

    @pytest.mark.parametrize("content,expected", [
        ("add comment about initialization", 0.8),
        ("rename foo to bar", 0.7),
        ("implement the parser", 0.3),
        ("something", 0.5),
        ("x" * 120, 0.4),
    ])
    def test_estimates(self, content, expected):
        assert estimate_todo_confidence(content) == expected


class TestTodoScanner:
    """Tests for TodoScanner.list_todos() and locate()"""

    def test_walks_workspace_in_order(self, tmp_path):
        (tmp_path / "src").mkdir()
        (tmp_path / "src" / "b.ts").write_text("// TODO: second\n", encoding="utf-8")
        (tmp_path / "src" / "a.ts").write_text("// TODO: first\n", encoding="utf-8")
        (tmp_path / "notes.txt").write_text("# TODO: not scanned\n", encoding="utf-8")

        todos = TodoScanner().list_todos(str(tmp_path))
        assert [t.content for t in todos] == ["first", "second"]
        assert todos[0].file_path == str(tmp_path / "src" / "a.ts")

    def test_excluded_dirs_and_backups(self, tmp_path):
        (tmp_path / "node_modules").mkdir()
        (tmp_path / "node_modules" / "dep.js").write_text("// TODO: vendored\n", encoding="utf-8")
        (tmp_path / ".todoforge").mkdir()
        (tmp_path / ".todoforge" / "x.js").write_text("// TODO: state\n", encoding="utf-8")
        (tmp_path / "a.js.backup-2024-01-01T00-00-00-000Z").write_text("// TODO: old\n", encoding="utf-8")
        (tmp_path / "a.js").write_text("// TODO: live\n", encoding="utf-8")

        todos = TodoScanner().list_todos(str(tmp_path))
        assert [t.content for t in todos] == ["live"]

    def test_file_patterns(self, tmp_path):
        (tmp_path / "a.ts").write_text("// TODO: ts\n", encoding="utf-8")
        (tmp_path / "b.py").write_text("# TODO: py\n", encoding="utf-8")

        todos = TodoScanner(["*.py"]).list_todos(str(tmp_path))
        assert [t.content for t in todos] == ["py"]

    def test_unreadable_file_skipped(self, tmp_path):
        (tmp_path / "bad.ts").write_bytes(b"// TODO: \xff\xfe\n")
        (tmp_path / "good.ts").write_text("// TODO: fine\n", encoding="utf-8")

        assert [t.content for t in TodoScanner().list_todos(str(tmp_path))] == ["fine"]

    def test_locate_same_line(self):
        todo = scan_text("/w/a.ts", SOURCE)[0]
        assert TodoScanner.locate(todo, SOURCE) is todo

    def test_locate_moved(self):
        todo = scan_text("/w/a.ts", SOURCE)[0]
        moved = TodoScanner.locate(todo, "// header\n// header\n" + SOURCE)

        assert moved.line == 6
        assert moved.id == todo.id

    def test_locate_removed(self):
        todo = scan_text("/w/a.ts", SOURCE)[0]
        assert TodoScanner.locate(todo, SOURCE.replace("TODO", "DONE")) is None
