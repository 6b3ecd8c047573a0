"""
Source Analyzer
===============

Parses TypeScript/JavaScript (including TSX/JSX) into tree-sitter syntax trees
and provides the node queries the analyzers are built on:

- identifier lookup by position and by name
- pre-order traversal with subtree pruning
- the declaration-context predicate (is this identifier the *declaring*
  occurrence of a name, or a reference to it?)
- dotted scope paths ("global.UserService.save")

The dialect comes from the file extension. Anything else raises
UnsupportedFileTypeError so callers can report "unsupported file type"
instead of crashing.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

try:
    from tree_sitter_languages import get_parser
except ImportError:  # tree-sitter-languages publishes no wheels past CPython 3.12
    from tree_sitter_language_pack import get_parser

from todoforge.errors import ParseError, UnsupportedFileTypeError

LANGUAGE_BY_EXTENSION = {
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".tsx": "tsx",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
}

# Node types that spell a name
IDENTIFIER_TYPES = frozenset({
    "identifier",
    "type_identifier",
    "property_identifier",
    "private_property_identifier",
    "shorthand_property_identifier",
    "shorthand_property_identifier_pattern",
})

# Node types that can *refer* to a binding. Member names (obj.prop) and object
# keys are property_identifier and never refer to a local binding.
REFERENCE_TYPES = frozenset({
    "identifier",
    "type_identifier",
    "shorthand_property_identifier",
})

FUNCTION_DECLARATION_TYPES = frozenset({"function_declaration", "generator_function_declaration"})
CLASS_DECLARATION_TYPES = frozenset({"class_declaration", "abstract_class_declaration"})
SCOPE_OWNER_TYPES = FUNCTION_DECLARATION_TYPES | CLASS_DECLARATION_TYPES | {"method_definition"}

# parent type -> field names whose child is a declaring occurrence
_DECLARING_FIELDS: Dict[str, Tuple[str, ...]] = {
    "variable_declarator": ("name",),
    "function_declaration": ("name",),
    "generator_function_declaration": ("name",),
    "function": ("name",),
    "function_expression": ("name",),
    "generator_function": ("name",),
    "function_signature": ("name",),
    "class_declaration": ("name",),
    "abstract_class_declaration": ("name",),
    "class": ("name",),
    "method_definition": ("name",),
    "method_signature": ("name",),
    "abstract_method_signature": ("name",),
    "interface_declaration": ("name",),
    "type_alias_declaration": ("name",),
    "enum_declaration": ("name",),
    "type_parameter": ("name",),
    "required_parameter": ("pattern",),
    "optional_parameter": ("pattern",),
    "assignment_pattern": ("left",),
    "arrow_function": ("parameter",),
    "catch_clause": ("parameter",),
    "pair": ("key",),
    "pair_pattern": ("key",),
    "import_specifier": ("name", "alias"),
    "export_specifier": ("alias",),
    "labeled_statement": ("label",),
}

# Every direct identifier child of these is declaring
_DECLARING_CONTAINERS = frozenset({
    "formal_parameters",
    "import_clause",
    "namespace_import",
    "import_require_clause",
    "rest_pattern",
    "array_pattern",
})


def same_node(a: Any, b: Any) -> bool:
    """Identity check that does not depend on Node.__eq__ semantics across bindings."""
    if a is None or b is None:
        return False
    return a.start_byte == b.start_byte and a.end_byte == b.end_byte and a.type == b.type


def is_declaration_name(node: Any) -> bool:
    """
    True if ``node`` is the declaring occurrence of a name.

    Variable, function, class, parameter and import names are declarations;
    so are object keys and labels. Everything else that spells an identifier
    is a reference.
    """
    parent = node.parent
    if parent is None:
        return False
    if parent.type in _DECLARING_CONTAINERS:
        return True
    for field_name in _DECLARING_FIELDS.get(parent.type, ()):
        if same_node(parent.child_by_field_name(field_name), node):
            return True
    return False


def is_inside(node: Any, types: frozenset) -> bool:
    parent = node.parent
    while parent is not None:
        if parent.type in types:
            return True
        parent = parent.parent
    return False


def iter_descendants(node: Any, prune: Optional[Callable[[Any], bool]] = None) -> Iterator[Any]:
    """Pre-order walk. Children of nodes for which ``prune`` is true are skipped."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        if prune is not None and prune(current):
            continue
        stack.extend(reversed(current.children))


@dataclass
class SyntaxTree:
    """A parsed file together with the source it was parsed from."""
    path: str
    language: str
    content: str
    source: bytes
    tree: Any
    _line_starts: List[int] = field(default_factory=list, repr=False)

    @property
    def root(self) -> Any:
        return self.tree.root_node

    def text(self, node: Any) -> str:
        return self.source[node.start_byte:node.end_byte].decode("utf-8", errors="replace")

    def line(self, node: Any) -> int:
        """1-based line of the node's first character."""
        return node.start_point[0] + 1

    def end_line(self, node: Any) -> int:
        return node.end_point[0] + 1

    def column(self, node: Any) -> int:
        """0-based character column of the node's first character."""
        row, byte_col = node.start_point[0], node.start_point[1]
        line_start = self.line_start_byte(row)
        return len(self.source[line_start:line_start + byte_col].decode("utf-8", errors="replace"))

    def line_start_byte(self, row: int) -> int:
        if not self._line_starts:
            starts = [0]
            for index, byte in enumerate(self.source):
                if byte == 0x0A:
                    starts.append(index + 1)
            self._line_starts = starts
        return self._line_starts[min(row, len(self._line_starts) - 1)]

    def byte_offset(self, char_offset: int) -> int:
        return len(self.content[:char_offset].encode("utf-8"))

    def scope_path(self, node: Any) -> str:
        """Dotted chain of enclosing function/class/method names, rooted at "global"."""
        names: List[str] = []
        parent = node.parent
        while parent is not None:
            if parent.type in SCOPE_OWNER_TYPES:
                name = parent.child_by_field_name("name")
                if name is not None:
                    names.append(self.text(name))
            parent = parent.parent
        return ".".join(["global"] + list(reversed(names)))


class SourceAnalyzer:
    """
    Parses source files and answers identifier queries over the result.

    Parsers are cached per dialect on the instance; instances are cheap, so
    concurrent sessions should each hold their own.
    """

    def __init__(self):
        self._parsers: Dict[str, Any] = {}

    @staticmethod
    def dialect_for(file_path: str) -> Optional[str]:
        return LANGUAGE_BY_EXTENSION.get(Path(file_path).suffix.lower())

    @classmethod
    def supports(cls, file_path: str) -> bool:
        return cls.dialect_for(file_path) is not None

    def _parser(self, language: str) -> Any:
        if language not in self._parsers:
            self._parsers[language] = get_parser(language)
        return self._parsers[language]

    def parse(self, file_path: str, content: str, *, tolerant: bool = False) -> SyntaxTree:
        """
        Parse ``content`` using the dialect implied by ``file_path``.

        Args:
            file_path: Used only to select the dialect and for error messages
            content: Source text
            tolerant: Return trees that contain error nodes instead of raising

        Raises:
            UnsupportedFileTypeError: if the extension has no grammar
            ParseError: if the source does not parse cleanly (unless tolerant)
        """
        language = self.dialect_for(file_path)
        if language is None:
            raise UnsupportedFileTypeError(file_path, Path(file_path).suffix)

        source = content.encode("utf-8")
        tree = self._parser(language).parse(source)
        syntax_tree = SyntaxTree(path=file_path, language=language, content=content, source=source, tree=tree)

        if not tolerant and tree.root_node.has_error:
            issues = self.collect_errors(syntax_tree)
            line, column, message = issues[0] if issues else (1, 0, "Invalid syntax")
            raise ParseError(f"{file_path}:{line}:{column + 1}: {message}", path=file_path, line=line, column=column)
        return syntax_tree

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def find_identifier_at(self, tree: SyntaxTree, offset: int) -> Optional[Any]:
        """Identifier node covering character ``offset`` (or ending right before it)."""
        byte = tree.byte_offset(offset)
        for candidate in (byte, byte - 1):
            if candidate < 0:
                continue
            node = tree.root.descendant_for_byte_range(candidate, candidate)
            if node is not None and node.type in IDENTIFIER_TYPES:
                return node
        return None

    def find_all_identifiers_named(self, tree: SyntaxTree, name: str) -> List[Any]:
        encoded = name.encode("utf-8")
        return [
            node for node in iter_descendants(tree.root)
            if node.type in IDENTIFIER_TYPES and tree.source[node.start_byte:node.end_byte] == encoded
        ]

    def for_each_descendant(self, node: Any, visitor: Callable[[Any], Optional[bool]]) -> None:
        """
        Call ``visitor`` on ``node`` and every descendant, pre-order.

        Returning ``False`` from the visitor skips that node's children.
        """
        skipped = set()

        def prune(current: Any) -> bool:
            return (current.start_byte, current.end_byte, current.type) in skipped

        for current in iter_descendants(node, prune):
            if visitor(current) is False:
                skipped.add((current.start_byte, current.end_byte, current.type))

    def collect_errors(self, tree: SyntaxTree) -> List[Tuple[int, int, str]]:
        """(1-based line, 0-based column, message) for every error or missing node."""
        issues: List[Tuple[int, int, str]] = []
        for node in iter_descendants(tree.root, prune=lambda n: n.type == "ERROR" or not n.has_error):
            if node.type == "ERROR":
                snippet = tree.text(node).strip().splitlines()
                shown = snippet[0][:40] if snippet else ""
                issues.append((tree.line(node), tree.column(node), f"Unexpected syntax near '{shown}'"))
            elif node.is_missing:
                issues.append((tree.line(node), tree.column(node), f"Missing '{node.type}'"))
        return issues
