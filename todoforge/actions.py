"""
Action Executors
================

One executor per ActionType. Each executor is a pure function of the current
file content and the pattern match: it returns the new content and a short
description of what changed, and never touches the filesystem. Writing,
validating and rolling back are the session controller's job.

Executors:
- add_comment: comment line above the TODO, in the file's comment syntax
- fix_formatting: trailing whitespace and runs of blank lines
- update_documentation: JSDoc block above the next declaration
- add_import: import statement after the leading import block
- rename_variable: binding-aware rename
- implement_function: stub body synthesis
- remove_unused_imports / remove_unused_variables: analyzer-driven removal
"""

import difflib
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from todoforge.analysis.imports import find_unused_imports, remove_unused_imports
from todoforge.analysis.rename import rename_identifier
from todoforge.analysis.stubs import BALANCED, FunctionImplementor, FunctionStubDetector
from todoforge.analysis.syntax import CLASS_DECLARATION_TYPES, SourceAnalyzer, iter_descendants
from todoforge.analysis.variables import UnusedVariableAnalyzer
from todoforge.errors import RecoverableError, UnsupportedActionError
from todoforge.models import ActionType, TodoItem

HASH_COMMENT_EXTENSIONS = frozenset({".py", ".sh", ".rb", ".yaml", ".yml", ".toml"})

_IMPORT_LINE = re.compile(r"^\s*import\b|^\s*(?:const|let|var)\s+.+=\s*require\(")
_WORD_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|_+")


@dataclass(frozen=True)
class ExecutionRequest:
    """Everything an executor may look at."""
    file_path: str
    content: str
    todo: TodoItem
    extracted: Dict[str, str] = field(default_factory=dict)
    strategy: str = BALANCED


@dataclass(frozen=True)
class ActionResult:
    content: str
    output: str
    lines_added: int = 0
    lines_removed: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.lines_added or self.lines_removed)


def count_line_changes(before: str, after: str) -> Tuple[int, int]:
    """(lines added, lines removed) between two versions of a file."""
    added = removed = 0
    matcher = difflib.SequenceMatcher(None, before.splitlines(), after.splitlines(), autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag in ("replace", "delete"):
            removed += i2 - i1
        if tag in ("replace", "insert"):
            added += j2 - j1
    return added, removed


def _result(before: str, after: str, output: str) -> ActionResult:
    added, removed = count_line_changes(before, after)
    return ActionResult(after, output, added, removed)


def comment_prefix(file_path: str) -> str:
    return "#" if Path(file_path).suffix.lower() in HASH_COMMENT_EXTENSIONS else "//"


def humanize(name: str) -> str:
    """``validateEmail`` -> ``Validate email``."""
    words = [w for w in _WORD_BOUNDARY.split(name) if w]
    if not words:
        return name
    sentence = " ".join(w.lower() if not w.isupper() else w for w in words)
    return sentence[:1].upper() + sentence[1:]


def _split_lines(content: str) -> Tuple[List[str], str]:
    newline = "\r\n" if "\r\n" in content else "\n"
    return content.splitlines(), newline


def _join_lines(lines: List[str], newline: str, original: str) -> str:
    text = newline.join(lines)
    if original.endswith(("\n", "\r")):
        text += newline
    return text


def _todo_index(lines: List[str], todo: TodoItem) -> int:
    index = todo.line - 1
    if not 0 <= index < len(lines):
        raise RecoverableError(
            f"TODO line {todo.line} is outside {todo.file_path} ({len(lines)} lines)",
            "TODO_NOT_FOUND",
        )
    return index


class ActionExecutor:
    """
    Dispatches an ActionType to its executor.

    The analyzers share one SourceAnalyzer, so parsers are built once per
    executor instance.
    """

    def __init__(self, source_analyzer: Optional[SourceAnalyzer] = None):
        self.source_analyzer = source_analyzer or SourceAnalyzer()
        self.implementor = FunctionImplementor(self.source_analyzer)
        self.variables = UnusedVariableAnalyzer(self.source_analyzer)
        self._executors: Dict[ActionType, Callable[[ExecutionRequest], ActionResult]] = {
            ActionType.ADD_COMMENT: self.add_comment,
            ActionType.FIX_FORMATTING: self.fix_formatting,
            ActionType.UPDATE_DOCUMENTATION: self.update_documentation,
            ActionType.ADD_IMPORT: self.add_import,
            ActionType.RENAME_VARIABLE: self.rename_variable,
            ActionType.IMPLEMENT_FUNCTION: self.implement_function,
            ActionType.REMOVE_UNUSED_IMPORTS: self.remove_unused_imports,
            ActionType.REMOVE_UNUSED_VARIABLES: self.remove_unused_variables,
        }

    def supports(self, action_type: ActionType) -> bool:
        return action_type in self._executors

    def execute(self, action_type: ActionType, request: ExecutionRequest) -> ActionResult:
        """
        Compute the new content for ``request``.

        Raises:
            UnsupportedActionError: if no executor handles ``action_type``
            RecoverableError: if the transformation cannot be applied
        """
        executor = self._executors.get(action_type)
        if executor is None:
            raise UnsupportedActionError(getattr(action_type, "value", str(action_type)))
        return executor(request)

    # =========================================================================
    # Text executors
    # =========================================================================

    def add_comment(self, request: ExecutionRequest) -> ActionResult:
        lines, newline = _split_lines(request.content)
        index = _todo_index(lines, request.todo)
        target = lines[index]
        indent = target[:len(target) - len(target.lstrip())]

        description = request.extracted.get("description", "").strip().rstrip(".")
        text = description[:1].upper() + description[1:] if description else request.todo.content
        comment = f"{indent}{comment_prefix(request.file_path)} {text}"

        lines.insert(index, comment)
        new_content = _join_lines(lines, newline, request.content)
        return ActionResult(new_content, f"Added comment: {comment.strip()}", 1, 0)

    def fix_formatting(self, request: ExecutionRequest) -> ActionResult:
        content = request.content
        fixed = re.sub(r"[ \t]+(?=\r?$)", "", content, flags=re.MULTILINE)
        fixed = re.sub(r"(\r?\n)(?:[ \t]*\r?\n){2,}", r"\1\1", fixed)
        if fixed == content:
            return ActionResult(content, "No formatting issues found")
        return _result(content, fixed, "Fixed formatting issues")

    def add_import(self, request: ExecutionRequest) -> ActionResult:
        module = request.extracted.get("module", "").strip()
        source = request.extracted.get("source", "").strip()
        if not module:
            raise RecoverableError("No import module provided", "MISSING_IMPORT_MODULE")
        if not source:
            raise RecoverableError(f"No source module given for import '{module}'", "MISSING_IMPORT_SOURCE")

        statement = f"import {module} from '{source}';"
        lines, newline = _split_lines(request.content)
        normalized = " ".join(statement.replace('"', "'").rstrip(";").split())
        for line in lines:
            if " ".join(line.strip().replace('"', "'").rstrip(";").split()) == normalized:
                return ActionResult(request.content, f"Import already present: {statement}")

        insert_at = 0
        for index, line in enumerate(lines):
            stripped = line.strip()
            if _IMPORT_LINE.match(line):
                insert_at = index + 1
            elif stripped and not stripped.startswith(("//", "/*", "*", "'use", '"use')) and insert_at:
                break
        lines.insert(insert_at, statement)
        return ActionResult(_join_lines(lines, newline, request.content), f"Added import: {statement}", 1, 0)

    # =========================================================================
    # Syntax-tree executors
    # =========================================================================

    def update_documentation(self, request: ExecutionRequest) -> ActionResult:
        lines, newline = _split_lines(request.content)
        index = _todo_index(lines, request.todo)
        target_text = request.extracted.get("target", "").strip().rstrip(".")

        declaration = None
        if self.source_analyzer.supports(request.file_path):
            declaration = self._next_declaration(request.file_path, request.content, request.todo.line)

        if declaration is None:
            text = target_text or request.todo.content
            indent = lines[index][:len(lines[index]) - len(lines[index].lstrip())]
            comment = f"{indent}{comment_prefix(request.file_path)} {text[:1].upper()}{text[1:]}"
            lines.insert(index, comment)
            return ActionResult(_join_lines(lines, newline, request.content), f"Added note: {comment.strip()}", 1, 0)

        line, indent, block = declaration
        start = line - 1
        # Replace a JSDoc block that already sits directly above the declaration
        existing_end = start - 1
        if existing_end >= 0 and lines[existing_end].strip().endswith("*/"):
            existing_start = existing_end
            while existing_start >= 0 and not lines[existing_start].strip().startswith("/**"):
                existing_start -= 1
            if existing_start >= 0:
                del lines[existing_start:start]
                start = existing_start

        lines[start:start] = [f"{indent}{text}" for text in block]
        new_content = _join_lines(lines, newline, request.content)
        return _result(request.content, new_content, f"Documented declaration at line {line}")

    def _next_declaration(self, file_path: str, content: str, after_line: int):
        """(line, indent, JSDoc lines) of the first function or class declared after ``after_line``."""
        tree = self.source_analyzer.parse(file_path, content)
        candidates = []
        for fn in FunctionStubDetector(self.source_analyzer).find_functions(tree):
            if fn.line > after_line:
                candidates.append((fn.line, fn.indent, self._function_doc(fn)))
        for node in iter_descendants(tree.root):
            if node.type in CLASS_DECLARATION_TYPES:
                name = node.child_by_field_name("name")
                if name is not None and tree.line(node) > after_line:
                    line_text = content.splitlines()[tree.line(node) - 1]
                    indent = line_text[:len(line_text) - len(line_text.lstrip())]
                    candidates.append((tree.line(node), indent, ["/**", f" * {humanize(tree.text(name))}.", " */"]))
        if not candidates:
            return None
        return min(candidates, key=lambda item: item[0])

    @staticmethod
    def _function_doc(fn) -> List[str]:
        block = ["/**", f" * {humanize(fn.name)}."]
        if fn.parameters or (fn.return_type and not fn.declares_void):
            block.append(" *")
        for param in fn.parameters:
            type_part = f"{{{param.type}}} " if param.type else ""
            block.append(f" * @param {type_part}{param.name}")
        if fn.return_type and not fn.declares_void:
            block.append(f" * @returns {{{fn.return_type}}}")
        block.append(" */")
        return block

    def rename_variable(self, request: ExecutionRequest) -> ActionResult:
        old_name = request.extracted.get("oldName", "")
        new_name = request.extracted.get("newName", "")
        if not old_name or not new_name:
            raise RecoverableError("Rename needs both an old and a new name", "INVALID_IDENTIFIER")
        renamed = rename_identifier(
            request.file_path,
            request.content,
            old_name,
            new_name,
            line=request.todo.line,
            source_analyzer=self.source_analyzer,
        )
        return _result(
            request.content,
            renamed.content,
            f"Renamed {old_name} to {new_name} ({renamed.occurrences} occurrences)",
        )

    def implement_function(self, request: ExecutionRequest) -> ActionResult:
        function_name = request.extracted.get("functionName") or None
        report = self.implementor.implement_functions(
            request.file_path,
            request.content,
            function_name=function_name,
            line=None if function_name else request.todo.line,
            strategy=request.strategy,
        )
        if not report.changed and function_name:
            # The TODO may name something other than the stub below it
            report = self.implementor.implement_functions(
                request.file_path, request.content, line=request.todo.line, strategy=request.strategy,
            )
        if not report.changed:
            reasons = [f"{name}: {why}" for name, why in report.skipped] or report.messages
            raise RecoverableError(
                f"Nothing implemented in {request.file_path}: {'; '.join(reasons)}",
                "NO_IMPLEMENTATION",
            )
        return _result(request.content, report.content, "; ".join(report.messages))

    def remove_unused_imports(self, request: ExecutionRequest) -> ActionResult:
        tree = self.source_analyzer.parse(request.file_path, request.content)
        unused = find_unused_imports(tree)
        if not unused:
            return ActionResult(request.content, "No unused imports found")
        new_content = remove_unused_imports(request.content, unused)
        names = ", ".join(item.name for item in unused)
        return _result(request.content, new_content, f"Removed unused imports: {names}")

    def remove_unused_variables(self, request: ExecutionRequest) -> ActionResult:
        analysis = self.variables.analyze_file(request.file_path, request.content)
        if not analysis.safe_to_remove:
            review = len(analysis.requires_review)
            return ActionResult(request.content, f"No unused variables safe to remove ({review} need review)")
        removal = self.variables.remove_unused_variables(
            request.file_path, request.content, analysis.safe_to_remove,
        )
        if not removal.removed_count:
            return ActionResult(request.content, "Unused variables share statements with used ones; left in place")
        return _result(
            request.content,
            removal.content,
            f"Removed {removal.removed_count} unused variable statement(s)",
        )
