"""
Unused Import Analysis
======================

Finds import bindings that are never referenced and removes the statements
that carry them.

Removal is deliberately coarse: when any binding of an import statement is
unused, the whole statement (every line it spans) is deleted, even if other
bindings of the same statement are still in use.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Set

from todoforge.analysis.syntax import (
    REFERENCE_TYPES,
    SyntaxTree,
    is_declaration_name,
    iter_descendants,
)

DEFAULT = "default"
NAMED = "named"
NAMESPACE = "namespace"
SIDE_EFFECT = "side-effect"


@dataclass(frozen=True)
class ImportBinding:
    """One name an import statement introduces (or none, for side-effect imports)."""
    name: str
    imported_name: str
    source: str
    kind: str
    line: int
    end_line: int
    column: int


@dataclass(frozen=True)
class UnusedImport:
    name: str
    line: int
    column: int
    kind: str
    source: str
    end_line: int
    scope: str = "global"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "line": self.line,
            "column": self.column,
            "kind": self.kind,
            "source": self.source,
            "scope": self.scope,
        }


def _string_value(tree: SyntaxTree, node: Any) -> str:
    if node is None:
        return ""
    return tree.text(node).strip("'\"`")


def collect_import_bindings(tree: SyntaxTree) -> List[ImportBinding]:
    """Every binding introduced by a top-level import statement, in source order."""
    bindings: List[ImportBinding] = []
    for statement in tree.root.named_children:
        if statement.type != "import_statement":
            continue
        line, end_line, column = tree.line(statement), tree.end_line(statement), tree.column(statement)
        source = _string_value(tree, statement.child_by_field_name("source"))

        def add(name_node: Any, kind: str, imported: str = "") -> None:
            local = tree.text(name_node)
            bindings.append(ImportBinding(local, imported or local, source, kind, line, end_line, column))

        clause = None
        for child in statement.named_children:
            if child.type == "import_clause":
                clause = child
            elif child.type == "import_require_clause":
                # import fs = require("fs")
                name_node = next((c for c in child.named_children if c.type == "identifier"), None)
                source = _string_value(tree, child.child_by_field_name("source")) or source
                if name_node is not None:
                    add(name_node, DEFAULT)
                clause = child

        if clause is None:
            bindings.append(ImportBinding("", "", source, SIDE_EFFECT, line, end_line, column))
            continue
        if clause.type == "import_require_clause":
            continue

        for part in clause.named_children:
            if part.type == "identifier":
                add(part, DEFAULT)
            elif part.type == "namespace_import":
                name_node = next((c for c in part.named_children if c.type == "identifier"), None)
                if name_node is not None:
                    add(name_node, NAMESPACE)
            elif part.type == "named_imports":
                for spec in part.named_children:
                    if spec.type != "import_specifier":
                        continue
                    name_node = spec.child_by_field_name("name")
                    alias_node = spec.child_by_field_name("alias")
                    if name_node is None:
                        continue
                    add(alias_node or name_node, NAMED, tree.text(name_node))
    return bindings


def collect_used_identifiers(tree: SyntaxTree) -> Set[str]:
    """Names referenced anywhere outside import statements."""
    used: Set[str] = set()
    for node in iter_descendants(tree.root, prune=lambda n: n.type == "import_statement"):
        if node.type in REFERENCE_TYPES and not is_declaration_name(node):
            used.add(tree.text(node))
    return used


def find_unused_imports(tree: SyntaxTree) -> List[UnusedImport]:
    """
    Import bindings whose local name is never referenced.

    Side-effect imports (``import "./polyfills"``) have no bindings and are
    always considered used.
    """
    used = collect_used_identifiers(tree)
    unused: List[UnusedImport] = []
    for binding in collect_import_bindings(tree):
        if binding.kind == SIDE_EFFECT:
            continue
        if binding.name not in used:
            unused.append(UnusedImport(
                name=binding.name,
                line=binding.line,
                column=binding.column,
                kind=binding.kind,
                source=binding.source,
                end_line=binding.end_line,
            ))
    return unused


def remove_unused_imports(content: str, unused_imports: List[UnusedImport]) -> str:
    """
    Delete every import statement that carries at least one unused binding.

    Pure text transform; backing the file up is the caller's job.
    """
    if not unused_imports:
        return content

    doomed: Set[int] = set()
    for item in unused_imports:
        doomed.update(range(item.line, item.end_line + 1))

    lines = content.splitlines(keepends=True)
    kept = [line for number, line in enumerate(lines, start=1) if number not in doomed]
    return "".join(kept)
