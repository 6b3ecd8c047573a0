"""
Safe Pattern Matching
=====================

Maps free-text TODO content onto the transformations TodoForge knows how to
perform safely.

The pattern table is an immutable value handed to the matcher at
construction. Per-session enable/disable lists never touch the table; they
filter matches at decision time (see ``todoforge.gate``). Confidence
overrides from configuration produce a *new* table.
"""

import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Iterator, List, Mapping, Optional, Tuple, Union

from todoforge.errors import ConfigurationError
from todoforge.models import ActionType, RiskLevel

_TAG_PREFIX = re.compile(r"^(?:TODO|FIXME|HACK|NOTE)\b:?\s*", re.IGNORECASE)
_BRANCH_TOKENS = re.compile(r"\b(?:if|for|while|case|catch)\b|&&|\|\||\?(?![.?])")

IDENTIFIER = r"[A-Za-z_$][\w$]*"


@dataclass(frozen=True)
class SafePattern:
    """A named rule mapping TODO text to an action, validated on creation."""
    id: str
    name: str
    description: str
    regex: str
    action_type: ActionType
    confidence: float
    risk_level: RiskLevel
    auto_approve: bool = True
    extract_groups: Tuple[str, ...] = ()
    file_types: Tuple[str, ...] = ()
    max_complexity: Optional[int] = None
    compiled: "re.Pattern[str]" = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        if not re.match(r"^[a-z][a-z0-9-]*$", self.id):
            raise ConfigurationError(f"Invalid pattern id '{self.id}'", key="patterns")
        if not 0.0 <= self.confidence <= 1.0:
            raise ConfigurationError(f"Pattern {self.id}: confidence must be within [0, 1]", key="patterns")
        if not isinstance(self.action_type, ActionType) or not isinstance(self.risk_level, RiskLevel):
            raise ConfigurationError(f"Pattern {self.id}: unknown action type or risk level", key="patterns")
        try:
            compiled = re.compile(self.regex, re.IGNORECASE)
        except re.error as e:
            raise ConfigurationError(f"Pattern {self.id}: invalid regex ({e})", key="patterns") from e
        if compiled.groups < len(self.extract_groups):
            raise ConfigurationError(
                f"Pattern {self.id}: declares {len(self.extract_groups)} groups but regex captures {compiled.groups}",
                key="patterns",
            )
        object.__setattr__(self, "compiled", compiled)

    def applies_to(self, file_path: Optional[str]) -> bool:
        if not self.file_types or not file_path:
            return True
        return Path(file_path).suffix.lstrip(".").lower() in self.file_types

    def extract(self, text: str) -> Optional[Dict[str, str]]:
        """Named groups for ``text``, or None if the pattern does not match."""
        match = self.compiled.search(text)
        if match is None:
            return None
        return {
            name: (match.group(index + 1) or "").strip()
            for index, name in enumerate(self.extract_groups)
        }

    def with_confidence(self, confidence: float) -> "SafePattern":
        return replace(self, confidence=confidence)


class PatternTable:
    """Ordered, immutable collection of patterns with unique ids."""

    def __init__(self, patterns: Tuple[SafePattern, ...]):
        seen = set()
        for pattern in patterns:
            if pattern.id in seen:
                raise ConfigurationError(f"Duplicate pattern id '{pattern.id}'", key="patterns")
            seen.add(pattern.id)
        self._patterns = tuple(patterns)
        self._by_id = {p.id: p for p in self._patterns}

    def __iter__(self) -> Iterator[SafePattern]:
        return iter(self._patterns)

    def __len__(self) -> int:
        return len(self._patterns)

    def __contains__(self, pattern_id: object) -> bool:
        return pattern_id in self._by_id

    @property
    def ids(self) -> List[str]:
        return [p.id for p in self._patterns]

    def get(self, pattern_id: str) -> Optional[SafePattern]:
        return self._by_id.get(pattern_id)

    def with_confidence_overrides(self, overrides: Mapping[str, float]) -> "PatternTable":
        """A new table with some base confidences replaced."""
        unknown = sorted(set(overrides) - set(self._by_id))
        if unknown:
            raise ConfigurationError(f"Unknown pattern id(s): {', '.join(unknown)}", key="patterns.confidence")
        return PatternTable(tuple(
            p.with_confidence(overrides[p.id]) if p.id in overrides else p for p in self._patterns
        ))


# =============================================================================
# Built-in patterns
# =============================================================================

_CODE_FILES = ("ts", "tsx", "js", "jsx", "mjs", "cjs")

SAFE_PATTERNS = PatternTable((
    SafePattern(
        id="add-comment",
        name="Add Comment",
        description="Add an explanatory comment above the TODO",
        regex=r"(?:\badd\s+(?:an?\s+)?)?\bcomments?\b(?:\s+(?:about|for|on|to\s+explain|explaining)\s+(.+))?",
        action_type=ActionType.ADD_COMMENT,
        confidence=0.9,
        risk_level=RiskLevel.LOW,
        extract_groups=("description",),
        file_types=_CODE_FILES + ("py", "java", "cpp", "c", "h"),
    ),
    SafePattern(
        id="fix-formatting",
        name="Fix Formatting",
        description="Strip trailing whitespace and collapse runs of blank lines",
        regex=r"\b(?:fix\s+(?:the\s+)?)?format(?:ting)?\b",
        action_type=ActionType.FIX_FORMATTING,
        confidence=0.85,
        risk_level=RiskLevel.LOW,
    ),
    SafePattern(
        id="update-documentation",
        name="Update Documentation",
        description="Add or refresh a documentation comment",
        regex=r"\b(?:update|add|write)\s+(?:the\s+)?(?:documentation|docs?|jsdoc|docstring)\b(?:\s+(?:for|of|about|with)\s+(.+))?",
        action_type=ActionType.UPDATE_DOCUMENTATION,
        confidence=0.8,
        risk_level=RiskLevel.LOW,
        extract_groups=("target",),
        file_types=_CODE_FILES + ("py", "md", "txt"),
    ),
    SafePattern(
        id="rename-variable",
        name="Rename Variable",
        description="Rename a binding and all of its references",
        regex=rf"\brename\s+(?:(?:the\s+)?(?:variable|var|const|function|class)\s+)?({IDENTIFIER})\s+to\s+({IDENTIFIER})",
        action_type=ActionType.RENAME_VARIABLE,
        confidence=0.9,
        risk_level=RiskLevel.LOW,
        extract_groups=("oldName", "newName"),
        file_types=_CODE_FILES,
        max_complexity=100,
    ),
    SafePattern(
        id="implement-function",
        name="Implement Function",
        description="Synthesize a body for a stub function",
        regex=rf"\b(?:implement|generate\s+implementation\s+for|fill\s+in)\s+(?:the\s+)?(?:function\s+|method\s+)?({IDENTIFIER})",
        action_type=ActionType.IMPLEMENT_FUNCTION,
        confidence=0.8,
        risk_level=RiskLevel.MEDIUM,
        auto_approve=False,
        extract_groups=("functionName",),
        file_types=_CODE_FILES,
        max_complexity=50,
    ),
    SafePattern(
        id="add-import",
        name="Add Import",
        description="Add an import statement",
        regex=(
            rf"\b(?:add\s+)?import\s+(?:for\s+)?(\{{[^}}]*\}}|\*\s+as\s+{IDENTIFIER}|{IDENTIFIER})"
            r"(?:\s+from\s+['\"]?([^'\"\s]+)['\"]?)?"
        ),
        action_type=ActionType.ADD_IMPORT,
        confidence=0.7,
        risk_level=RiskLevel.MEDIUM,
        auto_approve=False,
        extract_groups=("module", "source"),
        file_types=_CODE_FILES,
    ),
    SafePattern(
        id="remove-unused-imports",
        name="Remove Unused Imports",
        description="Delete import statements with unreferenced bindings",
        regex=r"\b(?:remove|clean(?:\s+up)?|delete|clear)\s+(?:the\s+|all\s+)?(?:unused\s+)?imports?\b",
        action_type=ActionType.REMOVE_UNUSED_IMPORTS,
        confidence=0.85,
        risk_level=RiskLevel.LOW,
        file_types=_CODE_FILES,
    ),
    SafePattern(
        id="remove-unused-variables",
        name="Remove Unused Variables",
        description="Delete local variables that are never referenced",
        regex=r"\b(?:remove|clean(?:\s+up)?|delete|clear)\s+(?:the\s+|all\s+)?(?:unused\s+)?(?:variables?|vars?)\b",
        action_type=ActionType.REMOVE_UNUSED_VARIABLES,
        confidence=0.8,
        risk_level=RiskLevel.LOW,
        file_types=_CODE_FILES,
    ),
))


# =============================================================================
# Matching
# =============================================================================

@dataclass(frozen=True)
class PatternMatch:
    pattern: SafePattern
    confidence: float
    action_type: ActionType
    extracted_data: Dict[str, str]
    risk_level: RiskLevel

    @property
    def pattern_id(self) -> str:
        return self.pattern.id


@dataclass(frozen=True)
class Matched:
    best: PatternMatch
    matches: Tuple[PatternMatch, ...]


@dataclass(frozen=True)
class NoMatch:
    todo_content: str


MatchOutcome = Union[Matched, NoMatch]


def normalize_todo_text(content: str) -> str:
    """Trim and drop a leading TODO/FIXME/HACK/NOTE tag."""
    return _TAG_PREFIX.sub("", content.strip()).strip()


def estimate_complexity(file_content: str) -> int:
    """Rough cyclomatic complexity: one plus the number of branch points."""
    return 1 + len(_BRANCH_TOKENS.findall(file_content))


class PatternMatcher:
    """Evaluates every pattern of a table against TODO text."""

    def __init__(self, table: PatternTable = SAFE_PATTERNS):
        self.table = table

    def analyze_pattern(
        self,
        todo_content: str,
        file_content: str = "",
        file_path: Optional[str] = None,
    ) -> List[PatternMatch]:
        """
        All patterns that match, in table order.

        Patterns whose file types exclude ``file_path``, or whose complexity
        limit ``file_content`` exceeds, are not considered.
        """
        text = normalize_todo_text(todo_content)
        if not text:
            return []
        complexity = estimate_complexity(file_content) if file_content else 0

        matches: List[PatternMatch] = []
        for pattern in self.table:
            if not pattern.applies_to(file_path):
                continue
            if pattern.max_complexity is not None and complexity > pattern.max_complexity:
                continue
            extracted = pattern.extract(text)
            if extracted is None:
                continue
            matches.append(PatternMatch(
                pattern=pattern,
                confidence=pattern.confidence,
                action_type=pattern.action_type,
                extracted_data=extracted,
                risk_level=pattern.risk_level,
            ))
        return matches

    @staticmethod
    def best_of(matches: List[PatternMatch]) -> Optional[PatternMatch]:
        """Highest confidence; the earliest pattern wins ties."""
        best: Optional[PatternMatch] = None
        for match in matches:
            if best is None or match.confidence > best.confidence:
                best = match
        return best

    def find_best_match(
        self,
        todo_content: str,
        file_content: str = "",
        file_path: Optional[str] = None,
    ) -> Optional[PatternMatch]:
        return self.best_of(self.analyze_pattern(todo_content, file_content, file_path))

    def match(self, todo_content: str, file_content: str = "", file_path: Optional[str] = None) -> MatchOutcome:
        matches = self.analyze_pattern(todo_content, file_content, file_path)
        best = self.best_of(matches)
        if best is None:
            return NoMatch(todo_content)
        return Matched(best, tuple(matches))
