"""
Unused Variable Analysis
========================

Harvests declared bindings (variables, named functions, named classes and
parameters), finds the ones whose name is never referenced, and classifies
each as safe to remove automatically or in need of human review.

The analysis is syntactic: a name counts as used if it is referenced anywhere
in the file, whatever scope the reference sits in. That misses some unused
bindings (shadowed names) but never reports a used one.

Only local variables are ever safe to remove. Functions, classes, parameters
and anything declared at file scope may be part of a public surface, rely on
hoisting or fix a function's arity, so they always go to review.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from todoforge.analysis.syntax import (
    CLASS_DECLARATION_TYPES,
    FUNCTION_DECLARATION_TYPES,
    REFERENCE_TYPES,
    SourceAnalyzer,
    SyntaxTree,
    is_declaration_name,
    iter_descendants,
)

VARIABLE = "variable"
FUNCTION = "function"
CLASS = "class"
PARAMETER = "parameter"

GLOBAL_SCOPE = "global"

VARIABLE_STATEMENT_TYPES = frozenset({"lexical_declaration", "variable_declaration"})
# Statements that may be deleted without breaking the surrounding syntax
_REMOVABLE_PARENTS = frozenset({"program", "statement_block", "switch_case", "switch_default"})


@dataclass(frozen=True)
class UnusedVariable:
    name: str
    line: int
    column: int
    kind: str
    scope: str

    @property
    def safe_to_remove(self) -> bool:
        return self.kind == VARIABLE and self.scope != GLOBAL_SCOPE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "line": self.line,
            "column": self.column,
            "kind": self.kind,
            "scope": self.scope,
        }


@dataclass
class VariableAnalysis:
    unused_variables: List[UnusedVariable] = field(default_factory=list)
    total_variables: int = 0
    safe_to_remove: List[UnusedVariable] = field(default_factory=list)
    requires_review: List[UnusedVariable] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "unusedVariables": [v.to_dict() for v in self.unused_variables],
            "totalVariables": self.total_variables,
            "safeToRemove": [v.to_dict() for v in self.safe_to_remove],
            "requiresReview": [v.to_dict() for v in self.requires_review],
        }


@dataclass
class RemovalResult:
    content: str
    removed_count: int


def _parameter_names(parameters: Any) -> List[Any]:
    """Identifier nodes bound directly by a parameter list."""
    names: List[Any] = []
    for param in parameters.named_children:
        target = param
        if param.type in ("required_parameter", "optional_parameter"):
            target = param.child_by_field_name("pattern")
        elif param.type == "assignment_pattern":
            target = param.child_by_field_name("left")
        elif param.type == "rest_pattern":
            target = next((c for c in param.named_children if c.type == "identifier"), None)
        if target is not None and target.type == "identifier":
            names.append(target)
    return names


class UnusedVariableAnalyzer:
    """Finds and removes unused bindings in TypeScript/JavaScript sources."""

    def __init__(self, source_analyzer: Optional[SourceAnalyzer] = None):
        self.source_analyzer = source_analyzer or SourceAnalyzer()

    def collect_declarations(self, tree: SyntaxTree) -> List[UnusedVariable]:
        """Every candidate binding in the file, used or not."""
        found: List[UnusedVariable] = []

        def add(name_node: Any, kind: str, scope_node: Any) -> None:
            found.append(UnusedVariable(
                name=tree.text(name_node),
                line=tree.line(name_node),
                column=tree.column(name_node),
                kind=kind,
                scope=tree.scope_path(scope_node),
            ))

        for node in iter_descendants(tree.root):
            node_type = node.type
            if node_type == "variable_declarator":
                name = node.child_by_field_name("name")
                if name is not None and name.type == "identifier":
                    add(name, VARIABLE, node)
            elif node_type in FUNCTION_DECLARATION_TYPES:
                name = node.child_by_field_name("name")
                if name is not None:
                    add(name, FUNCTION, node)
            elif node_type in CLASS_DECLARATION_TYPES:
                name = node.child_by_field_name("name")
                if name is not None:
                    add(name, CLASS, node)
            elif node_type == "formal_parameters":
                for name in _parameter_names(node):
                    add(name, PARAMETER, node)
            elif node_type == "arrow_function":
                single = node.child_by_field_name("parameter")
                if single is not None and single.type == "identifier":
                    add(single, PARAMETER, node)
        return found

    @staticmethod
    def collect_usages(tree: SyntaxTree) -> Set[str]:
        return {
            tree.text(node)
            for node in iter_descendants(tree.root)
            if node.type in REFERENCE_TYPES and not is_declaration_name(node)
        }

    def analyze_tree(self, tree: SyntaxTree) -> VariableAnalysis:
        declarations = self.collect_declarations(tree)
        used = self.collect_usages(tree)

        analysis = VariableAnalysis(total_variables=len(declarations))
        for candidate in declarations:
            if candidate.name in used or candidate.name.startswith("_"):
                continue
            analysis.unused_variables.append(candidate)
            if candidate.safe_to_remove:
                analysis.safe_to_remove.append(candidate)
            else:
                analysis.requires_review.append(candidate)
        return analysis

    def analyze_file(self, file_path: str, content: str) -> VariableAnalysis:
        """
        Analyze one file.

        Raises:
            UnsupportedFileTypeError: for non TS/JS files
            ParseError: if the file does not parse
        """
        return self.analyze_tree(self.source_analyzer.parse(file_path, content))

    def remove_unused_variables(
        self,
        file_path: str,
        content: str,
        to_remove: Iterable[UnusedVariable],
    ) -> RemovalResult:
        """
        Delete variable statements whose declarators are *all* in ``to_remove``.

        Declarators are matched by name and position, so a same-named binding
        in another scope is never taken along. Statements that still declare
        something in use are left untouched, as are loop initializers and
        exported declarations.
        """
        targets = {(item.name, item.line, item.column) for item in to_remove}
        if not targets:
            return RemovalResult(content, 0)

        tree = self.source_analyzer.parse(file_path, content)
        spans = []
        for node in iter_descendants(tree.root):
            if node.type not in VARIABLE_STATEMENT_TYPES:
                continue
            if node.parent is None or node.parent.type not in _REMOVABLE_PARENTS:
                continue
            declarators = [c for c in node.named_children if c.type == "variable_declarator"]
            if not declarators:
                continue
            declared = []
            for declarator in declarators:
                name = declarator.child_by_field_name("name")
                if name is None or name.type != "identifier":
                    declared.append(None)
                else:
                    declared.append((tree.text(name), tree.line(name), tree.column(name)))
            if all(key in targets for key in declared):
                spans.append(self._statement_span(tree, node))

        if not spans:
            return RemovalResult(content, 0)

        source = tree.source
        for start, end in sorted(spans, reverse=True):
            source = source[:start] + source[end:]
        return RemovalResult(source.decode("utf-8"), len(spans))

    @staticmethod
    def _statement_span(tree: SyntaxTree, node: Any) -> tuple:
        """Byte span of the statement, widened to whole lines when it has them to itself."""
        source = tree.source
        start, end = node.start_byte, node.end_byte

        line_start = source.rfind(b"\n", 0, start) + 1
        line_end = source.find(b"\n", end)
        line_end = len(source) if line_end == -1 else line_end

        before = source[line_start:start]
        after = source[end:line_end]
        if before.strip() == b"" and after.strip() == b"":
            return line_start, min(line_end + 1, len(source))
        return start, end
