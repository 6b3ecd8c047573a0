"""
Tests for Unused Import Analysis
================================

Tests for todoforge/analysis/imports.py
"""

import pytest

from todoforge.analysis import SourceAnalyzer, find_unused_imports, remove_unused_imports
from todoforge.analysis.imports import DEFAULT, NAMED, NAMESPACE, SIDE_EFFECT, collect_import_bindings


@pytest.fixture
def analyzer():
    return SourceAnalyzer()


REACT_COMPONENT = """import { useState, useEffect } from 'react';
import axios from 'axios';
import './polyfills';

export function Widget() {
  useEffect(() => {
    axios.get('/api');
  }, []);
  return null;
}
"""


class TestCollectImportBindings:
    """Tests for collect_import_bindings()"""

    def test_binding_kinds(self, analyzer):
        source = (
            "import React from 'react';\n"
            "import * as path from 'path';\n"
            "import { readFile as read } from 'fs';\n"
            "import './side-effect';\n"
        )
        bindings = collect_import_bindings(analyzer.parse("a.ts", source))

        assert [(b.name, b.kind, b.source) for b in bindings] == [
            ("React", DEFAULT, "react"),
            ("path", NAMESPACE, "path"),
            ("read", NAMED, "fs"),
            ("", SIDE_EFFECT, "./side-effect"),
        ]
        assert bindings[2].imported_name == "readFile"


class TestFindUnusedImports:
    """Tests for find_unused_imports()"""

    def test_single_unused_named_import(self, analyzer):
        """Only useState is unused; useEffect and axios are referenced."""
        unused = find_unused_imports(analyzer.parse("Widget.tsx", REACT_COMPONENT))

        assert len(unused) == 1
        assert unused[0].name == "useState"
        assert unused[0].kind == NAMED
        assert unused[0].source == "react"
        assert unused[0].line == 1

    def test_side_effect_imports_are_used(self, analyzer):
        unused = find_unused_imports(analyzer.parse("a.ts", "import './polyfills';\n"))
        assert unused == []

    def test_alias_is_the_binding(self, analyzer):
        source = "import { readFile as read } from 'fs';\nreadFile('x');\n"
        unused = find_unused_imports(analyzer.parse("a.ts", source))
        assert [u.name for u in unused] == ["read"]

    def test_type_only_usage_counts(self, analyzer):
        source = "import { User } from './user';\nlet current: User | null = null;\nexport { current };\n"
        assert find_unused_imports(analyzer.parse("a.ts", source)) == []

    def test_member_name_is_not_a_usage(self, analyzer):
        source = "import config from './config';\nconst value = settings.config;\nexport default value;\n"
        unused = find_unused_imports(analyzer.parse("a.ts", source))
        assert [u.name for u in unused] == ["config"]

    def test_to_dict(self, analyzer):
        unused = find_unused_imports(analyzer.parse("Widget.tsx", REACT_COMPONENT))
        data = unused[0].to_dict()
        assert data["name"] == "useState"
        assert data["scope"] == "global"


class TestRemoveUnusedImports:
    """Tests for remove_unused_imports()"""

    def test_removes_whole_statement(self, analyzer):
        """The statement goes even though useEffect, on the same line, is used."""
        unused = find_unused_imports(analyzer.parse("Widget.tsx", REACT_COMPONENT))
        result = remove_unused_imports(REACT_COMPONENT, unused)

        assert "from 'react'" not in result
        assert result.startswith("import axios from 'axios';\n")
        assert "import './polyfills';" in result

    def test_multiline_statement(self, analyzer):
        source = "import {\n  a,\n  b,\n} from './ab';\nconsole.log(b);\n"
        unused = find_unused_imports(analyzer.parse("a.ts", source))
        assert remove_unused_imports(source, unused) == "console.log(b);\n"

    def test_nothing_unused_is_identity(self):
        assert remove_unused_imports(REACT_COMPONENT, []) == REACT_COMPONENT

    def test_second_pass_is_noop(self, analyzer):
        unused = find_unused_imports(analyzer.parse("Widget.tsx", REACT_COMPONENT))
        once = remove_unused_imports(REACT_COMPONENT, unused)
        again = find_unused_imports(analyzer.parse("Widget.tsx", once))

        assert [u.name for u in again] == []
