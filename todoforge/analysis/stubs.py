"""
Function Stub Implementation
============================

Three cooperating pieces:

- FunctionStubDetector finds functions whose body is empty, a recognized
  placeholder (``{ return; }``, ``{ throw new Error("Not implemented"); }``)
  or carries a TODO/FIXME marker.
- PurposeInferencer guesses what a stub is for from its name and signature
  (getter, setter, validator, calculator, formatter, converter, processor or
  generic).
- ImplementationSynthesizer produces candidate bodies for that purpose,
  styled like the surrounding file, each with a fixed confidence weight.

A strategy then picks one candidate, and the stub's body node is replaced by
splicing its byte range in the syntax tree.
"""

import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple

from todoforge.analysis.syntax import (
    CLASS_DECLARATION_TYPES,
    FUNCTION_DECLARATION_TYPES,
    SourceAnalyzer,
    SyntaxTree,
    iter_descendants,
)

CONSERVATIVE = "conservative"
BALANCED = "balanced"
CREATIVE = "creative"

GETTER = "getter"
SETTER = "setter"
VALIDATOR = "validator"
CALCULATOR = "calculator"
FORMATTER = "formatter"
CONVERTER = "converter"
PROCESSOR = "processor"
GENERIC = "generic"

CATEGORY_CONFIDENCE = {
    GETTER: 0.8,
    SETTER: 0.8,
    VALIDATOR: 0.7,
    CALCULATOR: 0.7,
    FORMATTER: 0.6,
    CONVERTER: 0.6,
    PROCESSOR: 0.6,
}
GENERIC_TYPED_CONFIDENCE = 0.5
GENERIC_UNTYPED_CONFIDENCE = 0.4
MISSING_PARAMETER_CONFIDENCE = 0.3

STYLE_SAMPLE_LINES = 20

_PLACEHOLDER_BODY = re.compile(
    r"""^\{\s*(?:return\s*;?|throw\s+new\s+Error\(\s*(['"`])not\s+implemented(?:\s+yet)?\.?\1\s*\)\s*;?)?\s*\}$""",
    re.IGNORECASE,
)
_TODO_MARKER = re.compile(r"(?://|/\*|\*)\s*(?:TODO|FIXME)\b:?\s*(.*?)\s*(?:\*/)?$", re.IGNORECASE | re.MULTILINE)
_UNTYPED = ("", "any", "unknown")


# =============================================================================
# Data
# =============================================================================

@dataclass(frozen=True)
class Parameter:
    name: str
    type: str = ""
    optional: bool = False
    default: Optional[str] = None


@dataclass(frozen=True)
class FunctionInfo:
    """A function, method or function-valued variable with a block body."""
    name: str
    line: int
    end_line: int
    parameters: Tuple[Parameter, ...]
    return_type: str
    is_async: bool
    is_method: bool
    class_name: Optional[str]
    signature: str
    indent: str
    body_start: int
    body_end: int
    is_stub: bool = False
    description: str = ""

    @property
    def declares_void(self) -> bool:
        return self.return_type == "void"


@dataclass
class ClassContext:
    name: str
    extends: Optional[str] = None
    implements: List[str] = field(default_factory=list)
    methods: List[str] = field(default_factory=list)
    properties: List[str] = field(default_factory=list)


@dataclass
class CodeStyle:
    indent_char: str = " "
    indent_size: int = 2
    use_semicolons: bool = True
    prefer_arrow_functions: bool = False
    use_async_await: bool = False

    @property
    def indent_unit(self) -> str:
        return "\t" if self.indent_char == "\t" else " " * self.indent_size


@dataclass
class SiblingSignature:
    name: str
    signature: str
    purpose: str


@dataclass
class CodeContext:
    class_context: Optional[ClassContext] = None
    imports: List[str] = field(default_factory=list)
    siblings: List[SiblingSignature] = field(default_factory=list)
    style: CodeStyle = field(default_factory=CodeStyle)


@dataclass(frozen=True)
class Purpose:
    category: str
    description: str


@dataclass(frozen=True)
class ImplementationSuggestion:
    body: str
    confidence: float
    category: str
    description: str


@dataclass(frozen=True)
class ImplementedFunction:
    name: str
    line: int
    category: str
    confidence: float


@dataclass
class ImplementationReport:
    content: str
    implemented: List[ImplementedFunction] = field(default_factory=list)
    skipped: List[Tuple[str, str]] = field(default_factory=list)
    messages: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.implemented)


# =============================================================================
# Helpers
# =============================================================================

def _strip_annotation(text: str) -> str:
    text = text.strip()
    if text.startswith(":"):
        text = text[1:].strip()
    return text


def _lower_first(name: str) -> str:
    return name[:1].lower() + name[1:] if name else name


def _strip_prefix(name: str, prefixes: Sequence[str]) -> str:
    for prefix in prefixes:
        if name.lower().startswith(prefix) and len(name) > len(prefix):
            return _lower_first(name[len(prefix):])
    return name


def _is_array_type(type_name: str) -> bool:
    return type_name.endswith("[]") or type_name.startswith(("Array<", "ReadonlyArray<"))


def _text_without_comments(tree: SyntaxTree, node: Any) -> str:
    pieces: List[bytes] = []
    cursor = node.start_byte
    for child in iter_descendants(node, prune=lambda n: n.type == "comment"):
        if child.type == "comment":
            pieces.append(tree.source[cursor:child.start_byte])
            cursor = child.end_byte
    pieces.append(tree.source[cursor:node.end_byte])
    return b"".join(pieces).decode("utf-8", errors="replace")


def _leading_whitespace(tree: SyntaxTree, node: Any) -> str:
    line_start = tree.line_start_byte(node.start_point[0])
    prefix = tree.source[line_start:node.start_byte].decode("utf-8", errors="replace")
    return prefix[:len(prefix) - len(prefix.lstrip())]


def _parameters(tree: SyntaxTree, node: Any) -> Tuple[Parameter, ...]:
    params_node = node.child_by_field_name("parameters")
    if params_node is None:
        single = node.child_by_field_name("parameter")
        return (Parameter(tree.text(single)),) if single is not None else ()

    params: List[Parameter] = []
    for child in params_node.named_children:
        if child.type in ("required_parameter", "optional_parameter"):
            pattern = child.child_by_field_name("pattern")
            type_node = child.child_by_field_name("type")
            value = child.child_by_field_name("value")
            if pattern is None:
                continue
            params.append(Parameter(
                name=tree.text(pattern).lstrip("."),
                type=_strip_annotation(tree.text(type_node)) if type_node is not None else "",
                optional=child.type == "optional_parameter" or value is not None,
                default=tree.text(value) if value is not None else None,
            ))
        elif child.type == "assignment_pattern":
            left, right = child.child_by_field_name("left"), child.child_by_field_name("right")
            params.append(Parameter(tree.text(left), optional=True, default=tree.text(right) if right else None))
        elif child.type in ("identifier", "rest_pattern", "object_pattern", "array_pattern"):
            params.append(Parameter(tree.text(child).lstrip(".")))
    return tuple(params)


def _return_type(tree: SyntaxTree, node: Any) -> str:
    annotation = node.child_by_field_name("return_type")
    if annotation is None:
        return ""
    text = _strip_annotation(tree.text(annotation))
    if annotation.type == "type_predicate_annotation" or " is " in text:
        return "boolean"
    return text


def _enclosing_class(node: Any) -> Optional[Any]:
    parent = node.parent
    while parent is not None:
        if parent.type in CLASS_DECLARATION_TYPES or parent.type == "class":
            return parent
        parent = parent.parent
    return None


# =============================================================================
# Detection
# =============================================================================

class FunctionStubDetector:
    """Finds functions that still need a real body."""

    def __init__(self, source_analyzer: Optional[SourceAnalyzer] = None):
        self.source_analyzer = source_analyzer or SourceAnalyzer()

    @staticmethod
    def needs_implementation(body_text: str, stripped_body: Optional[str] = None) -> bool:
        """
        True for empty bodies, placeholder bodies, or bodies with a TODO/FIXME marker.

        Args:
            body_text: Raw body text including braces and comments
            stripped_body: Body text with comments removed (computed if omitted)
        """
        if _TODO_MARKER.search(body_text):
            return True
        if stripped_body is None:
            stripped_body = re.sub(r"/\*.*?\*/|//[^\n]*", "", body_text, flags=re.DOTALL)
        normalized = re.sub(r"\s+", " ", stripped_body).strip()
        return bool(_PLACEHOLDER_BODY.match(normalized))

    @staticmethod
    def todo_description(body_text: str) -> str:
        match = _TODO_MARKER.search(body_text)
        return match.group(1).strip() if match else ""

    def find_functions(self, tree: SyntaxTree) -> List[FunctionInfo]:
        """Every function with a block body, in source order, flagged when it is a stub."""
        functions: List[FunctionInfo] = []
        for node in iter_descendants(tree.root):
            name_node = None
            target = node
            if node.type in FUNCTION_DECLARATION_TYPES or node.type == "method_definition":
                name_node = node.child_by_field_name("name")
            elif node.type == "variable_declarator":
                value = node.child_by_field_name("value")
                if value is not None and value.type in ("arrow_function", "function", "function_expression"):
                    name_node = node.child_by_field_name("name")
                    target = value
            if name_node is None:
                continue

            body = target.child_by_field_name("body")
            if body is None or body.type != "statement_block":
                continue

            body_text = tree.text(body)
            is_stub = self.needs_implementation(body_text, _text_without_comments(tree, body))
            klass = _enclosing_class(node) if node.type == "method_definition" else None
            class_name_node = klass.child_by_field_name("name") if klass is not None else None
            signature = tree.source[node.start_byte:body.start_byte].decode("utf-8", errors="replace").strip()

            functions.append(FunctionInfo(
                name=tree.text(name_node),
                line=tree.line(node),
                end_line=tree.end_line(node),
                parameters=_parameters(tree, target),
                return_type=_return_type(tree, target),
                is_async=any(child.type == "async" for child in target.children),
                is_method=node.type == "method_definition",
                class_name=tree.text(class_name_node) if class_name_node is not None else None,
                signature=" ".join(signature.split()),
                indent=_leading_whitespace(tree, node),
                body_start=body.start_byte,
                body_end=body.end_byte,
                is_stub=is_stub,
                description=self.todo_description(body_text) if is_stub else "",
            ))
        return functions

    def find_stubs(self, tree: SyntaxTree) -> List[FunctionInfo]:
        return [fn for fn in self.find_functions(tree) if fn.is_stub]


# =============================================================================
# Context
# =============================================================================

def detect_style(content: str, tree: Optional[SyntaxTree] = None) -> CodeStyle:
    """Indentation, semicolons, arrow-function and async usage of a file."""
    style = CodeStyle()
    lines = content.splitlines()

    for line in lines[:STYLE_SAMPLE_LINES]:
        if not line.strip():
            continue
        if line.startswith("\t"):
            style.indent_char, style.indent_size = "\t", 1
            break
        leading = len(line) - len(line.lstrip(" "))
        if leading > 0:
            style.indent_char, style.indent_size = " ", leading
            break

    code_lines = [
        line.rstrip() for line in lines
        if line.strip() and not line.strip().startswith(("//", "/*", "*", "import", "}", "{"))
    ]
    statement_like = [line for line in code_lines if not line.endswith(("{", ",", "(", "[", "=>"))]
    if statement_like:
        with_semicolon = sum(1 for line in statement_like if line.endswith(";"))
        style.use_semicolons = with_semicolon * 2 >= len(statement_like)

    style.use_async_await = bool(re.search(r"\b(?:async|await)\b", content))
    if tree is not None:
        arrows = sum(1 for n in iter_descendants(tree.root) if n.type == "arrow_function")
        declarations = sum(
            1 for n in iter_descendants(tree.root)
            if n.type in FUNCTION_DECLARATION_TYPES or n.type == "method_definition"
        )
        style.prefer_arrow_functions = arrows > declarations
    return style


def extract_class_context(tree: SyntaxTree, class_node: Any) -> ClassContext:
    name_node = class_node.child_by_field_name("name")
    context = ClassContext(name=tree.text(name_node) if name_node is not None else "")

    heritage = next((c for c in class_node.named_children if c.type == "class_heritage"), None)
    if heritage is not None:
        text = tree.text(heritage)
        extends = re.search(r"\bextends\s+([\w$.]+)", text)
        implements = re.search(r"\bimplements\s+(.+)$", text, re.DOTALL)
        context.extends = extends.group(1) if extends else None
        if implements:
            context.implements = [part.strip() for part in implements.group(1).split(",") if part.strip()]

    body = class_node.child_by_field_name("body")
    for member in body.named_children if body is not None else []:
        if member.type == "method_definition":
            member_name = member.child_by_field_name("name")
            if member_name is not None:
                context.methods.append(tree.text(member_name))
        elif member.type in ("public_field_definition", "field_definition"):
            member_name = member.child_by_field_name("name") or member.child_by_field_name("property")
            if member_name is not None:
                context.properties.append(tree.text(member_name))

    constructor_params = []
    for member in body.named_children if body is not None else []:
        if member.type == "method_definition" and member.child_by_field_name("name") is not None \
                and tree.text(member.child_by_field_name("name")) == "constructor":
            params = member.child_by_field_name("parameters")
            for param in params.named_children if params is not None else []:
                # constructor(private readonly repo: Repo) declares a property
                if any(c.type in ("accessibility_modifier", "readonly") for c in param.children):
                    pattern = param.child_by_field_name("pattern")
                    if pattern is not None:
                        constructor_params.append(tree.text(pattern))
    context.properties.extend(p for p in constructor_params if p not in context.properties)
    return context


class PurposeInferencer:
    """Classifies a function by name and signature."""

    def infer(self, fn: FunctionInfo) -> Purpose:
        name = fn.name
        lower = name.lower()
        params = len(fn.parameters)

        if re.match(r"(get|find|fetch)", lower) and params <= 1 and not fn.declares_void:
            return Purpose(GETTER, f"Returns {_strip_prefix(name, ('get', 'find', 'fetch'))}")
        if re.match(r"(set|update)", lower) and params == 1 and fn.return_type in ("", "void"):
            return Purpose(SETTER, f"Stores {_strip_prefix(name, ('set', 'update'))}")
        if re.search(r"valid|check|verify", lower) or re.match(r"(is|has|can)[A-Z_]", name):
            return Purpose(VALIDATOR, "Validates its input")
        if re.search(r"calculat|comput|sum|total|count", lower):
            return Purpose(CALCULATOR, "Computes a value")
        if re.search(r"format|display|render|stringify", lower):
            return Purpose(FORMATTER, "Formats a value for display")
        if re.search(r"convert|transform|parse", lower) or re.match(r"to[A-Z]", name):
            return Purpose(CONVERTER, "Converts between representations")
        if re.search(r"process|handle", lower):
            return Purpose(PROCESSOR, "Processes its input")
        return Purpose(GENERIC, "General purpose function")


class ImplementationSynthesizer:
    """Builds candidate bodies for a stub, best first."""

    def __init__(self, inferencer: Optional[PurposeInferencer] = None):
        self.inferencer = inferencer or PurposeInferencer()

    def suggest(self, fn: FunctionInfo, context: CodeContext) -> List[ImplementationSuggestion]:
        purpose = self.inferencer.infer(fn)
        template = {
            GETTER: self._getter,
            SETTER: self._setter,
            VALIDATOR: self._validator,
            CALCULATOR: self._calculator,
            FORMATTER: self._formatter,
            CONVERTER: self._converter,
            PROCESSOR: self._processor,
        }.get(purpose.category)

        suggestions: List[ImplementationSuggestion] = []
        if template is not None:
            result = template(fn, context)
            if result is not None:
                statements, confidence = result
                suggestions.append(ImplementationSuggestion(
                    body=self.render(statements, fn, context.style),
                    confidence=confidence,
                    category=purpose.category,
                    description=purpose.description,
                ))
        statements, confidence = self._generic(fn)
        suggestions.append(ImplementationSuggestion(
            body=self.render(statements, fn, context.style),
            confidence=confidence,
            category=GENERIC,
            description=f"Default value for {fn.return_type or 'an untyped result'}",
        ))
        suggestions.sort(key=lambda s: s.confidence, reverse=True)
        return suggestions

    @staticmethod
    def render(statements: List[str], fn: FunctionInfo, style: CodeStyle) -> str:
        """
        Format statements as a block.

        Lines ending in ``{`` or ``}`` are structural; every other line is a
        statement and gets a semicolon when the file uses them.
        """
        unit = style.indent_unit
        depth = 1
        out = ["{"]
        for statement in statements:
            if statement.startswith("}"):
                depth -= 1
            terminator = "" if statement.endswith(("{", "}")) or not style.use_semicolons else ";"
            out.append(f"{fn.indent}{unit * depth}{statement}{terminator}")
            if statement.endswith("{"):
                depth += 1
        out.append(f"{fn.indent}}}")
        return "\n".join(out)

    # -- templates ------------------------------------------------------------

    def _getter(self, fn: FunctionInfo, context: CodeContext):
        if context.class_context is None:
            return None
        prop = _strip_prefix(fn.name, ("get", "find", "fetch"))
        if fn.parameters:
            return [f"return this.{prop}[{fn.parameters[0].name}]"], CATEGORY_CONFIDENCE[GETTER]
        return [f"return this.{prop}"], CATEGORY_CONFIDENCE[GETTER]

    def _setter(self, fn: FunctionInfo, context: CodeContext):
        if context.class_context is None:
            return None
        prop = _strip_prefix(fn.name, ("set", "update"))
        return [f"this.{prop} = {fn.parameters[0].name}"], CATEGORY_CONFIDENCE[SETTER]

    def _validator(self, fn: FunctionInfo, context: CodeContext):
        if not fn.parameters:
            return ["return false"], MISSING_PARAMETER_CONFIDENCE
        if fn.declares_void:
            first = fn.parameters[0].name
            return [
                f"if ({first} == null) {{",
                f'throw new Error("Invalid {first}")',
                "}",
            ], 0.6
        checks = " && ".join(f"{p.name} != null" for p in fn.parameters)
        return [f"return {checks}"], CATEGORY_CONFIDENCE[VALIDATOR]

    def _calculator(self, fn: FunctionInfo, context: CodeContext):
        numeric_result = fn.return_type in ("number", *_UNTYPED)
        if not fn.parameters:
            return (["return 0"], MISSING_PARAMETER_CONFIDENCE) if numeric_result else None
        if len(fn.parameters) == 1 and _is_array_type(fn.parameters[0].type):
            values = fn.parameters[0].name
            return [f"return {values}.reduce((total, value) => total + value, 0)"], CATEGORY_CONFIDENCE[CALCULATOR]
        if len(fn.parameters) >= 2:
            total = " + ".join(p.name for p in fn.parameters)
            return [f"return {total}"], CATEGORY_CONFIDENCE[CALCULATOR] if numeric_result else 0.6
        return ([f"return Number({fn.parameters[0].name})"], 0.6) if numeric_result else None

    def _formatter(self, fn: FunctionInfo, context: CodeContext):
        if not fn.parameters:
            return ['return ""'], MISSING_PARAMETER_CONFIDENCE
        if fn.return_type not in ("string", *_UNTYPED):
            return None
        first = fn.parameters[0]
        if first.type == "Date":
            return [f"return {first.name}.toISOString()"], CATEGORY_CONFIDENCE[FORMATTER]
        return [f"return String({first.name})"], CATEGORY_CONFIDENCE[FORMATTER]

    def _converter(self, fn: FunctionInfo, context: CodeContext):
        if not fn.parameters:
            return None
        value = fn.parameters[0].name
        target = fn.return_type
        if target == "number":
            expression = f"Number({value})"
        elif target == "string":
            expression = f"String({value})"
        elif target == "boolean":
            expression = f"Boolean({value})"
        elif _is_array_type(target):
            expression = f"Array.from({value})"
        elif target in _UNTYPED:
            expression = value
        else:
            expression = f"{value} as unknown as {target}"
        return [f"return {expression}"], CATEGORY_CONFIDENCE[CONVERTER]

    def _processor(self, fn: FunctionInfo, context: CodeContext):
        if not fn.parameters:
            return None
        if fn.declares_void:
            return None
        first = fn.parameters[0].name
        return [f"const result = {first}", "return result"], CATEGORY_CONFIDENCE[PROCESSOR]

    def _generic(self, fn: FunctionInfo):
        return_type = fn.return_type
        typed = return_type not in _UNTYPED and return_type != "void"
        confidence = GENERIC_TYPED_CONFIDENCE if typed else GENERIC_UNTYPED_CONFIDENCE
        if return_type == "boolean":
            return ["return false"], confidence
        if return_type == "number":
            return ["return 0"], confidence
        if return_type == "string":
            return ['return ""'], confidence
        if _is_array_type(return_type):
            return ["return []"], confidence
        if return_type.startswith("Promise<") or return_type == "Promise":
            return ["return Promise.resolve()"], confidence
        return [f'throw new Error("Not implemented: {fn.name}")'], confidence


def select_implementation(
    suggestions: List[ImplementationSuggestion],
    strategy: str = BALANCED,
) -> Optional[ImplementationSuggestion]:
    """
    Pick one suggestion (``suggestions`` must be sorted best first).

    conservative: best suggestion if it reaches 0.7, else nothing
    balanced: best suggestion
    creative: first suggestion reaching 0.4, else best
    """
    if not suggestions:
        return None
    if strategy == CONSERVATIVE:
        return next((s for s in suggestions if s.confidence >= 0.7), None)
    if strategy == CREATIVE:
        return next((s for s in suggestions if s.confidence >= 0.4), suggestions[0])
    return suggestions[0]


# =============================================================================
# Orchestration
# =============================================================================

class FunctionImplementor:
    """Finds stubs in a file and fills them in."""

    def __init__(self, source_analyzer: Optional[SourceAnalyzer] = None):
        self.source_analyzer = source_analyzer or SourceAnalyzer()
        self.detector = FunctionStubDetector(self.source_analyzer)
        self.synthesizer = ImplementationSynthesizer()

    def build_context(self, tree: SyntaxTree, target: FunctionInfo, functions: List[FunctionInfo]) -> CodeContext:
        context = CodeContext(style=detect_style(tree.content, tree))
        context.imports = [
            tree.text(node) for node in tree.root.named_children if node.type == "import_statement"
        ]
        if target.class_name:
            for node in iter_descendants(tree.root):
                if node.type in CLASS_DECLARATION_TYPES | {"class"}:
                    name = node.child_by_field_name("name")
                    if name is not None and tree.text(name) == target.class_name \
                            and node.start_byte <= target.body_start < node.end_byte:
                        context.class_context = extract_class_context(tree, node)
                        break
        inferencer = self.synthesizer.inferencer
        context.siblings = [
            SiblingSignature(fn.name, fn.signature, inferencer.infer(fn).category)
            for fn in functions if fn.body_start != target.body_start
        ]
        return context

    def suggestions_for(self, tree: SyntaxTree, fn: FunctionInfo,
                        functions: Optional[List[FunctionInfo]] = None) -> List[ImplementationSuggestion]:
        functions = functions if functions is not None else self.detector.find_functions(tree)
        return self.synthesizer.suggest(fn, self.build_context(tree, fn, functions))

    @staticmethod
    def _select_targets(stubs: List[FunctionInfo], function_name: Optional[str], line: Optional[int]):
        if function_name:
            return [fn for fn in stubs if fn.name == function_name]
        if line is not None:
            containing = [fn for fn in stubs if fn.line <= line <= fn.end_line]
            if containing:
                return containing[-1:]
            following = [fn for fn in stubs if fn.line >= line]
            return following[:1]
        return stubs

    def implement_functions(
        self,
        file_path: str,
        content: str,
        function_name: Optional[str] = None,
        line: Optional[int] = None,
        strategy: str = BALANCED,
    ) -> ImplementationReport:
        """
        Implement stubs in ``content``.

        Args:
            function_name: Only implement the stub with this name
            line: Only implement the stub containing (or first following) this line
            strategy: conservative, balanced or creative

        Raises:
            UnsupportedFileTypeError, ParseError: from parsing
        """
        tree = self.source_analyzer.parse(file_path, content)
        functions = self.detector.find_functions(tree)
        stubs = [fn for fn in functions if fn.is_stub]
        report = ImplementationReport(content=content)

        targets = self._select_targets(stubs, function_name, line)
        if not targets:
            wanted = f"'{function_name}'" if function_name else "any function"
            report.messages.append(f"No stub found for {wanted} in {file_path}")
            return report

        replacements: List[Tuple[int, int, bytes]] = []
        for fn in targets:
            suggestions = self.suggestions_for(tree, fn, functions)
            choice = select_implementation(suggestions, strategy)
            if choice is None:
                best = suggestions[0].confidence if suggestions else 0.0
                report.skipped.append((fn.name, f"no suggestion reaches 0.7 (best {best:.2f})"))
                continue
            replacements.append((fn.body_start, fn.body_end, choice.body.encode("utf-8")))
            report.implemented.append(ImplementedFunction(fn.name, fn.line, choice.category, choice.confidence))
            report.messages.append(
                f"Implemented {fn.name} as {choice.category} ({choice.confidence:.0%} confidence)"
            )

        source = tree.source
        for start, end, body in sorted(replacements, reverse=True):
            source = source[:start] + body + source[end:]
        report.content = source.decode("utf-8")
        report.implemented.sort(key=lambda item: item.line)
        return report
