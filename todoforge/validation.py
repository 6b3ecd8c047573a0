"""
Syntax Validation
=================

Checks that a file still parses after an action touched it.

- TypeScript / JavaScript: tree-sitter error and missing nodes
- Python: ``ast.parse``
- JSON: ``json.loads``

Files of any other type are reported valid.
"""

import ast
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from todoforge.analysis.syntax import SourceAnalyzer
from todoforge.file_ops import FileOps


@dataclass(frozen=True)
class SyntaxIssue:
    line: int
    column: int
    message: str
    severity: str = "error"

    def to_dict(self) -> Dict[str, Any]:
        return {"line": self.line, "column": self.column, "message": self.message, "severity": self.severity}


@dataclass
class SyntaxValidationResult:
    is_valid: bool
    errors: List[SyntaxIssue] = field(default_factory=list)

    def summary(self) -> str:
        if self.is_valid:
            return "valid"
        first = self.errors[0]
        more = f" (+{len(self.errors) - 1} more)" if len(self.errors) > 1 else ""
        return f"line {first.line}, column {first.column}: {first.message}{more}"


class SyntaxValidator:
    """Per-language syntax checks."""

    def __init__(self, source_analyzer: Optional[SourceAnalyzer] = None):
        self.source_analyzer = source_analyzer or SourceAnalyzer()

    def validate_syntax(self, path: str, content: Optional[str] = None) -> SyntaxValidationResult:
        """
        Validate ``content`` (or the file's current content) as source of its type.

        Raises:
            FileSystemError: if ``content`` is omitted and the file cannot be read
        """
        text = FileOps.read_text(path) if content is None else content
        suffix = Path(path).suffix.lower()

        if self.source_analyzer.supports(path):
            tree = self.source_analyzer.parse(path, text, tolerant=True)
            issues = [
                SyntaxIssue(line, column + 1, message)
                for line, column, message in self.source_analyzer.collect_errors(tree)
            ]
            if not issues and tree.root.has_error:
                issues.append(SyntaxIssue(1, 1, "Invalid syntax"))
            return SyntaxValidationResult(not issues, issues)

        if suffix == ".py":
            try:
                ast.parse(text, filename=path)
            except SyntaxError as e:
                return SyntaxValidationResult(False, [SyntaxIssue(e.lineno or 1, e.offset or 1, e.msg)])
            return SyntaxValidationResult(True)

        if suffix == ".json":
            try:
                json.loads(text)
            except json.JSONDecodeError as e:
                return SyntaxValidationResult(False, [SyntaxIssue(e.lineno, e.colno, e.msg)])
            return SyntaxValidationResult(True)

        return SyntaxValidationResult(True)
