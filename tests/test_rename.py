"""
Tests for Identifier Rename
===========================

Tests for todoforge/analysis/rename.py
"""

import pytest

from todoforge.analysis import rename_identifier
from todoforge.errors import RecoverableError


class TestRenameIdentifier:
    """Tests for rename_identifier()"""

    def test_renames_references_not_members(self):
        source = "const count = 1;\nconsole.log(count, stats.count);\n"
        result = rename_identifier("a.ts", source, "count", "total")

        assert result.content == "const total = 1;\nconsole.log(total, stats.count);\n"
        assert result.occurrences == 2
        assert result.lines == [1, 2]

    def test_shorthand_property_keeps_key(self):
        source = "const count = 1;\nconst obj = { count };\n"
        result = rename_identifier("a.js", source, "count", "total")

        assert result.content == "const total = 1;\nconst obj = { count: total };\n"

    def test_named_import_gets_alias(self):
        source = "import { parse } from './parser';\nparse('x');\n"
        result = rename_identifier("a.ts", source, "parse", "parseInput")

        assert result.content == "import { parse as parseInput } from './parser';\nparseInput('x');\n"

    def test_same_name_is_noop(self):
        result = rename_identifier("a.ts", "const a = 1;\n", "a", "a")
        assert result.occurrences == 0
        assert result.content == "const a = 1;\n"

    def test_reserved_word_rejected(self):
        with pytest.raises(RecoverableError) as exc_info:
            rename_identifier("a.ts", "const a = 1;\n", "a", "class")
        assert exc_info.value.code == "INVALID_IDENTIFIER"

    def test_missing_name(self):
        with pytest.raises(RecoverableError) as exc_info:
            rename_identifier("a.ts", "const a = 1;\n", "b", "c")
        assert exc_info.value.code == "NAME_NOT_FOUND"

    def test_line_guard(self):
        """The name must occur on the given line or the one after it."""
        source = "// rename a to b\nconst a = 1;\nexport { a };\n"
        assert rename_identifier("a.ts", source, "a", "b", line=1).occurrences == 2

        with pytest.raises(RecoverableError):
            rename_identifier("a.ts", source, "a", "b", line=10)
