"""
Tests for Unused Variable Analysis
==================================

Tests for todoforge/analysis/variables.py
"""

import pytest

from todoforge.analysis import UnusedVariableAnalyzer
from todoforge.analysis.variables import FUNCTION, PARAMETER, VARIABLE
from todoforge.errors import ParseError, UnsupportedFileTypeError


SOURCE = """const used = 1;
const unusedTop = 2;

function compute(a: number, b: number): number {
  const temp = a * 2;
  const _ignored = 3;
  let result = a + used;
  return result;
}

export function main() {
  return compute(1, 2);
}
"""


@pytest.fixture
def analyzer():
    return UnusedVariableAnalyzer()


class TestAnalyzeFile:
    """Tests for UnusedVariableAnalyzer.analyze_file()"""

    def test_finds_unused_bindings(self, analyzer):
        analysis = analyzer.analyze_file("calc.ts", SOURCE)
        names = {v.name for v in analysis.unused_variables}

        assert names == {"unusedTop", "b", "temp", "main"}
        assert analysis.total_variables == 9

    def test_underscore_names_are_ignored(self, analyzer):
        analysis = analyzer.analyze_file("calc.ts", SOURCE)
        assert "_ignored" not in {v.name for v in analysis.unused_variables}

    def test_only_local_variables_are_safe(self, analyzer):
        """Globals, parameters and functions need review."""
        analysis = analyzer.analyze_file("calc.ts", SOURCE)

        assert [v.name for v in analysis.safe_to_remove] == ["temp"]
        review = {v.name: v for v in analysis.requires_review}
        assert set(review) == {"unusedTop", "b", "main"}
        assert review["unusedTop"].scope == "global"
        assert review["b"].kind == PARAMETER
        assert review["main"].kind == FUNCTION

    def test_scope_paths(self, analyzer):
        analysis = analyzer.analyze_file("calc.ts", SOURCE)
        temp = next(v for v in analysis.unused_variables if v.name == "temp")

        assert temp.kind == VARIABLE
        assert temp.scope == "global.compute"
        assert temp.line == 5

    def test_unsupported_file(self, analyzer):
        with pytest.raises(UnsupportedFileTypeError):
            analyzer.analyze_file("script.py", "x = 1\n")

    def test_parse_error(self, analyzer):
        with pytest.raises(ParseError):
            analyzer.analyze_file("broken.ts", "function (( {\n")

    def test_to_dict(self, analyzer):
        data = analyzer.analyze_file("calc.ts", SOURCE).to_dict()
        assert data["totalVariables"] == 9
        assert [v["name"] for v in data["safeToRemove"]] == ["temp"]


class TestRemoveUnusedVariables:
    """Tests for UnusedVariableAnalyzer.remove_unused_variables()"""

    def test_removes_whole_line(self, analyzer):
        analysis = analyzer.analyze_file("calc.ts", SOURCE)
        removal = analyzer.remove_unused_variables("calc.ts", SOURCE, analysis.safe_to_remove)

        assert removal.removed_count == 1
        assert "temp" not in removal.content
        assert "  const _ignored = 3;\n  let result = a + used;" in removal.content
        assert "const unusedTop = 2;" in removal.content

    def test_shared_statement_is_kept(self, analyzer):
        source = "function f() {\n  let x = 1, y = 2;\n  return y;\n}\nf();\n"
        analysis = analyzer.analyze_file("f.js", source)
        assert [v.name for v in analysis.safe_to_remove] == ["x"]

        removal = analyzer.remove_unused_variables("f.js", source, analysis.safe_to_remove)
        assert removal.removed_count == 0
        assert removal.content == source

    def test_nothing_to_remove(self, analyzer):
        removal = analyzer.remove_unused_variables("calc.ts", SOURCE, [])
        assert removal.removed_count == 0
        assert removal.content == SOURCE

    def test_same_name_in_outer_scope_is_kept(self, analyzer):
        """Only the local binding goes; the file-scope one with the same name stays."""
        source = "const tmp = 1;\n\nexport function run() {\n  const tmp = 2;\n  return 3;\n}\n"
        analysis = analyzer.analyze_file("run.ts", source)
        assert [(v.name, v.line) for v in analysis.safe_to_remove] == [("tmp", 4)]
        assert ("tmp", 1) in [(v.name, v.line) for v in analysis.requires_review]

        removal = analyzer.remove_unused_variables("run.ts", source, analysis.safe_to_remove)

        assert removal.removed_count == 1
        assert removal.content == "const tmp = 1;\n\nexport function run() {\n  return 3;\n}\n"
