"""
Error Context and Suggestions
=============================

Every failure the session loop sees is recorded as an ErrorContext: a
classified, immutable record with the operation context it happened in and a
short list of things the user can do about it.

Suggestions come from three places:
- the error type (what kind of failure this is)
- keywords in the error message (permission denied, not a git repository ...)
- regex patterns over the message that can quote part of it back

Records are kept in memory per session and summarized at session end.
"""

import itertools
import logging
import re
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from todoforge.errors import (
    FatalError,
    OperationTimeoutError,
    ValidationError,
)

logger = logging.getLogger(__name__)


class ErrorType(str, Enum):
    FATAL = "FATAL"
    RECOVERABLE = "RECOVERABLE"
    VALIDATION = "VALIDATION"
    SAFETY = "SAFETY"
    TIMEOUT = "TIMEOUT"
    PATTERN_MATCH = "PATTERN_MATCH"


class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


_LOG_LEVELS = {
    Severity.CRITICAL: logging.ERROR,
    Severity.HIGH: logging.WARNING,
    Severity.MEDIUM: logging.INFO,
    Severity.LOW: logging.DEBUG,
}

# Below this a match is considered a poor fit no matter the threshold
VERY_LOW_CONFIDENCE = 0.3


# =============================================================================
# Suggestion Database
# =============================================================================

TYPE_SUGGESTIONS: Dict[ErrorType, List[str]] = {
    ErrorType.PATTERN_MATCH: [
        "Rewrite the TODO to match a supported pattern, e.g. 'add comment about ...' or 'remove unused imports'",
        "Use a specific action verb: add, fix, update, rename, implement or remove",
        "Run `todoforge todos` to see which TODOs match a pattern",
        "Resolve this TODO manually",
    ],
    ErrorType.TIMEOUT: [
        "Narrow the scan with filePatterns or move large generated folders out of the workspace",
        "Retry the session; the operation may have been slowed by disk or CPU load",
    ],
    ErrorType.VALIDATION: [
        "The change was rolled back; check the file for syntax errors that existed before the action",
        "Disable the pattern that produced the change if this keeps happening",
    ],
    ErrorType.FATAL: [
        "Check .todoforge/config.json and TODOFORGE_* environment variables for invalid values",
        "Review the error report, fix the cause and start a new session",
    ],
}

USER_ACTIONS: Dict[ErrorType, str] = {
    ErrorType.FATAL: "Fix the underlying problem and start a new session",
    ErrorType.RECOVERABLE: "No action needed unless the error keeps repeating",
    ErrorType.VALIDATION: "Review the file and the pattern that produced the invalid change",
    ErrorType.SAFETY: "Review the TODO manually or adjust the session thresholds",
    ErrorType.TIMEOUT: "Reduce the workspace size or retry the session",
    ErrorType.PATTERN_MATCH: "Rephrase the TODO or resolve it by hand",
}

# keyword in message -> {trigger (secondary keyword, "" = any): suggestion}
MESSAGE_SUGGESTIONS: Dict[str, Dict[str, str]] = {
    "permission denied": {
        "backup": "The workspace is not writable; backups could not be created next to the file",
        "": "Check file permissions; TodoForge needs write access to the files it edits",
    },
    "no such file": {
        "": "The file was moved or deleted during the session; rescan the workspace",
    },
    "not a git repository": {
        "": "Run `git init` in the workspace or set enableGitIntegration to false",
    },
    "nothing to commit": {
        "": "The action did not change the file, so there was nothing to commit",
    },
    "not supported": {
        "": "Only TypeScript and JavaScript files (.ts, .tsx, .js, .jsx) can be analyzed",
    },
    "unexpected syntax": {
        "": "The file has syntax errors; fix them before running analyzers on it",
    },
    "does not occur": {
        "": "The name in the TODO does not appear in the file; check its spelling",
    },
    "no stub found": {
        "": "The function already has a body; remove the TODO or empty the body first",
    },
}

# (regex, suggestion with \N backreferences)
PATTERN_SUGGESTIONS: List[Tuple[str, str]] = [
    (r"pattern '([\w-]+)' is disabled",
     "Add '\\1' to patterns.enabled (and remove it from patterns.disabled) to allow it"),
    (r"'(\w+)' is not a valid identifier",
     "Pick a new name that is a valid identifier instead of '\\1'"),
    (r"timed out after ([\d.]+)s",
     "The operation exceeded its \\1s deadline; large files slow down parsing"),
]


def message_suggestions(message: str) -> List[str]:
    """Suggestions triggered by the text of an error message."""
    if not message:
        return []
    lower = message.lower()
    suggestions: List[str] = []

    for pattern, template in PATTERN_SUGGESTIONS:
        match = re.search(pattern, message, re.IGNORECASE)
        if match:
            resolved = template
            for i, group in enumerate(match.groups(), 1):
                if group:
                    resolved = resolved.replace(f"\\{i}", group)
            suggestions.append(resolved)
            break

    for keyword, triggers in MESSAGE_SUGGESTIONS.items():
        if keyword in lower:
            for trigger, suggestion in triggers.items():
                if trigger == "" or trigger in lower:
                    if suggestion not in suggestions:
                        suggestions.append(suggestion)
                    break
    return suggestions


# =============================================================================
# Records
# =============================================================================

@dataclass(frozen=True)
class OperationContext:
    """Where an error happened."""
    operation: str
    file_path: Optional[str] = None
    line: Optional[int] = None
    todo_content: Optional[str] = None
    confidence: Optional[float] = None
    safety_threshold: Optional[float] = None
    pattern_id: Optional[str] = None
    attempt: Optional[int] = None
    max_retries: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "operation": self.operation,
            "filePath": self.file_path,
            "line": self.line,
            "todoContent": self.todo_content,
            "confidence": self.confidence,
            "safetyThreshold": self.safety_threshold,
            "patternId": self.pattern_id,
            "attempt": self.attempt,
            "maxRetries": self.max_retries,
        }
        return {k: v for k, v in data.items() if v is not None}


@dataclass(frozen=True)
class ErrorContext:
    id: str
    timestamp: str
    session_id: str
    error_type: ErrorType
    message: str
    context: OperationContext
    suggestions: Tuple[str, ...]
    severity: Severity
    user_action: str
    action_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "sessionId": self.session_id,
            "actionId": self.action_id,
            "errorType": self.error_type.value,
            "message": self.message,
            "context": self.context.to_dict(),
            "suggestions": list(self.suggestions),
            "severity": self.severity.value,
            "userAction": self.user_action,
        }


@dataclass
class ErrorSummary:
    total_errors: int = 0
    by_type: Dict[str, int] = field(default_factory=dict)
    by_severity: Dict[str, int] = field(default_factory=dict)
    critical_errors: List[ErrorContext] = field(default_factory=list)
    top_suggestions: List[str] = field(default_factory=list)
    recommended_actions: List[str] = field(default_factory=list)


# =============================================================================
# Collector
# =============================================================================

class ErrorContextCollector:
    """Classifies, enriches and stores errors for each session."""

    def __init__(self, max_retries: int = 3, clock: Callable[[], float] = time.time):
        self.max_retries = max_retries
        self._clock = clock
        self._sequence = itertools.count(1)
        self._errors: Dict[str, List[ErrorContext]] = {}

    @staticmethod
    def classify_exception(error: BaseException) -> ErrorType:
        """Most specific taxonomy type for an exception."""
        if isinstance(error, (OperationTimeoutError, TimeoutError)):
            return ErrorType.TIMEOUT
        if isinstance(error, ValidationError):
            return ErrorType.VALIDATION
        if isinstance(error, FatalError):
            return ErrorType.FATAL
        return ErrorType.RECOVERABLE

    def _severity(self, error_type: ErrorType, context: OperationContext) -> Severity:
        if error_type == ErrorType.FATAL:
            return Severity.CRITICAL
        if error_type in (ErrorType.TIMEOUT, ErrorType.VALIDATION):
            return Severity.HIGH
        if error_type == ErrorType.PATTERN_MATCH:
            return Severity.MEDIUM
        if error_type == ErrorType.SAFETY:
            confidence = context.confidence if context.confidence is not None else 0.0
            if confidence < VERY_LOW_CONFIDENCE:
                return Severity.HIGH
            if context.safety_threshold is not None and confidence < context.safety_threshold:
                return Severity.MEDIUM
            return Severity.LOW
        max_retries = context.max_retries or self.max_retries
        if context.attempt is not None and context.attempt >= max_retries:
            return Severity.HIGH
        return Severity.LOW

    def _suggestions(self, error_type: ErrorType, message: str, context: OperationContext) -> List[str]:
        suggestions = message_suggestions(message)

        if error_type == ErrorType.SAFETY and context.confidence is not None:
            threshold = context.safety_threshold
            if threshold is not None and context.confidence < threshold:
                lowered = max(0.0, round(context.confidence - 0.1, 2))
                suggestions.append(f"Lower the safety threshold to {lowered:.2f} to allow this match")
                suggestions.append("Make the TODO text more specific so it matches a stronger pattern")
            if context.confidence < VERY_LOW_CONFIDENCE:
                suggestions.append("This TODO is a poor fit for automation; resolve it manually")
        elif error_type == ErrorType.RECOVERABLE:
            max_retries = context.max_retries or self.max_retries
            if context.attempt is not None and context.attempt >= max_retries:
                suggestions.append(
                    f"The operation failed {context.attempt} times in a row; investigate before retrying"
                )
            else:
                suggestions.append("The session will retry or move on to the next TODO automatically")
        suggestions.extend(TYPE_SUGGESTIONS.get(error_type, []))

        unique: List[str] = []
        for suggestion in suggestions:
            if suggestion not in unique:
                unique.append(suggestion)
        return unique

    def record_error(
        self,
        session_id: str,
        error_type: ErrorType,
        error: Union[str, BaseException],
        context: OperationContext,
        action_id: Optional[str] = None,
    ) -> ErrorContext:
        """Build, log and store an ErrorContext."""
        message = error if isinstance(error, str) else str(error)
        severity = self._severity(error_type, context)
        record = ErrorContext(
            id=f"error-{int(self._clock() * 1000)}-{next(self._sequence)}",
            timestamp=datetime.now(timezone.utc).isoformat(),
            session_id=session_id,
            error_type=error_type,
            message=message,
            context=context,
            suggestions=tuple(self._suggestions(error_type, message, context)),
            severity=severity,
            user_action=USER_ACTIONS[error_type],
            action_id=action_id,
        )
        self._errors.setdefault(session_id, []).append(record)

        where = f" ({context.file_path}:{context.line})" if context.file_path and context.line else ""
        logger.log(
            _LOG_LEVELS[severity],
            "[%s/%s] %s: %s%s",
            error_type.value, severity.value, context.operation, message, where,
        )
        return record

    def record_exception(
        self,
        session_id: str,
        error: BaseException,
        context: OperationContext,
        action_id: Optional[str] = None,
    ) -> ErrorContext:
        return self.record_error(session_id, self.classify_exception(error), error, context, action_id)

    def record_safety_rejection(
        self,
        session_id: str,
        todo_content: str,
        confidence: float,
        safety_threshold: float,
        file_path: Optional[str] = None,
        line: Optional[int] = None,
        pattern_id: Optional[str] = None,
    ) -> ErrorContext:
        return self.record_error(
            session_id,
            ErrorType.SAFETY,
            f"Confidence {confidence:.2f} is below the safety threshold {safety_threshold:.2f}",
            OperationContext(
                operation="confidence_gate",
                file_path=file_path,
                line=line,
                todo_content=todo_content,
                confidence=confidence,
                safety_threshold=safety_threshold,
                pattern_id=pattern_id,
            ),
        )

    def record_disabled_pattern(
        self,
        session_id: str,
        todo_content: str,
        pattern_id: str,
        confidence: float,
        safety_threshold: float,
        file_path: Optional[str] = None,
        line: Optional[int] = None,
    ) -> ErrorContext:
        return self.record_error(
            session_id,
            ErrorType.SAFETY,
            f"Pattern '{pattern_id}' is disabled",
            OperationContext(
                operation="confidence_gate",
                file_path=file_path,
                line=line,
                todo_content=todo_content,
                confidence=confidence,
                safety_threshold=safety_threshold,
                pattern_id=pattern_id,
            ),
        )

    def record_pattern_match_failure(
        self,
        session_id: str,
        todo_content: str,
        file_path: Optional[str] = None,
        line: Optional[int] = None,
    ) -> ErrorContext:
        return self.record_error(
            session_id,
            ErrorType.PATTERN_MATCH,
            "No pattern matched the TODO content",
            OperationContext(operation="pattern_match", file_path=file_path, line=line, todo_content=todo_content),
        )

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def get_session_errors(self, session_id: str) -> List[ErrorContext]:
        return list(self._errors.get(session_id, []))

    def clear_session_errors(self, session_id: str) -> None:
        self._errors.pop(session_id, None)

    def get_session_error_summary(self, session_id: str) -> ErrorSummary:
        errors = self._errors.get(session_id, [])
        summary = ErrorSummary(total_errors=len(errors))
        if not errors:
            return summary

        summary.by_type = dict(Counter(e.error_type.value for e in errors))
        summary.by_severity = dict(Counter(e.severity.value for e in errors))
        summary.critical_errors = [e for e in errors if e.severity == Severity.CRITICAL]

        suggestion_counts = Counter(s for e in errors for s in e.suggestions)
        summary.top_suggestions = [s for s, _ in suggestion_counts.most_common(5)]
        action_counts = Counter(e.user_action for e in errors)
        summary.recommended_actions = [a for a, _ in action_counts.most_common(3)]
        return summary

    def generate_error_report(self, session_id: str) -> str:
        """Plain-text session error report."""
        summary = self.get_session_error_summary(session_id)
        lines = ["=" * 60, f"ERROR REPORT: session {session_id}", "=" * 60]
        if summary.total_errors == 0:
            lines.append("No errors recorded.")
            lines.append("=" * 60)
            return "\n".join(lines)

        lines.append(f"Total errors: {summary.total_errors}")
        lines.append("")
        lines.append("By severity:")
        for severity in Severity:
            count = summary.by_severity.get(severity.value, 0)
            if count:
                lines.append(f"  {severity.value}: {count}")
        lines.append("By type:")
        for error_type, count in sorted(summary.by_type.items(), key=lambda item: -item[1]):
            lines.append(f"  {error_type}: {count}")

        if summary.critical_errors:
            lines.append("")
            lines.append("-" * 40)
            lines.append("Critical errors:")
            for error in summary.critical_errors:
                lines.append(f"  [{error.context.operation}] {error.message}")

        lines.append("")
        lines.append("-" * 40)
        lines.append("Top suggestions:")
        for i, suggestion in enumerate(summary.top_suggestions, 1):
            lines.append(f"  {i}. {suggestion}")
        lines.append("Recommended next steps:")
        for action in summary.recommended_actions:
            lines.append(f"  - {action}")
        lines.append("=" * 60)
        return "\n".join(lines)
