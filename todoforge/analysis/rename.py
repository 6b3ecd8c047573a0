"""
Identifier Rename
=================

Renames every occurrence of a binding name in a file.

Member names (``obj.name``) and object keys are left alone; shorthand
properties (``{ name }``) are expanded to ``{ name: newName }`` so the object
shape does not change.
"""

import re
from dataclasses import dataclass
from typing import Any, List, Optional

from todoforge.analysis.syntax import SourceAnalyzer, same_node
from todoforge.errors import RecoverableError

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_$][\w$]*$")

RESERVED_WORDS = frozenset("""
    break case catch class const continue debugger default delete do else enum export extends
    false finally for function if import in instanceof new null return super switch this throw
    true try typeof var void while with yield let static implements interface package private
    protected public await
""".split())

_RENAMED_TYPES = frozenset({"identifier", "type_identifier"})
_SHORTHAND_TYPES = frozenset({"shorthand_property_identifier", "shorthand_property_identifier_pattern"})


@dataclass
class RenameResult:
    content: str
    occurrences: int
    lines: List[int]


def _replacement(node: Any, old_name: str, new_name: str) -> str:
    """Text replacing one identifier; module-facing names stay as they were."""
    parent = node.parent
    if parent is not None and parent.type in ("import_specifier", "export_specifier") \
            and parent.child_by_field_name("alias") is None:
        # import { old } -> import { old as new }; export { old } -> export { new as old }
        if parent.type == "import_specifier":
            return f"{old_name} as {new_name}"
        return f"{new_name} as {old_name}"
    if parent is not None and parent.type == "export_specifier" \
            and same_node(parent.child_by_field_name("alias"), node):
        return old_name
    return new_name


def rename_identifier(
    file_path: str,
    content: str,
    old_name: str,
    new_name: str,
    line: Optional[int] = None,
    source_analyzer: Optional[SourceAnalyzer] = None,
) -> RenameResult:
    """
    Rename ``old_name`` to ``new_name`` throughout ``content``.

    Args:
        line: When given, the name must occur on this line (guards against
            renaming something other than what the TODO points at)

    Raises:
        RecoverableError: for invalid names or when ``old_name`` is not found
    """
    if not IDENTIFIER_PATTERN.match(new_name) or new_name in RESERVED_WORDS:
        raise RecoverableError(f"'{new_name}' is not a valid identifier", "INVALID_IDENTIFIER")
    if old_name == new_name:
        return RenameResult(content, 0, [])

    analyzer = source_analyzer or SourceAnalyzer()
    tree = analyzer.parse(file_path, content)

    edits = []
    for node in analyzer.find_all_identifiers_named(tree, old_name):
        if node.type in _RENAMED_TYPES:
            edits.append((node.start_byte, node.end_byte, _replacement(node, old_name, new_name), tree.line(node)))
        elif node.type in _SHORTHAND_TYPES:
            edits.append((node.start_byte, node.end_byte, f"{old_name}: {new_name}", tree.line(node)))

    if not edits:
        raise RecoverableError(f"'{old_name}' does not occur in {file_path}", "NAME_NOT_FOUND")
    if line is not None and not any(edit_line == line for *_, edit_line in edits):
        # The TODO usually sits on the line above the declaration it talks about
        if not any(edit_line == line + 1 for *_, edit_line in edits):
            raise RecoverableError(f"'{old_name}' does not occur near line {line}", "NAME_NOT_FOUND")

    source = tree.source
    for start, end, replacement, _ in sorted(edits, reverse=True):
        source = source[:start] + replacement.encode("utf-8") + source[end:]
    return RenameResult(source.decode("utf-8"), len(edits), sorted({edit[3] for edit in edits}))
