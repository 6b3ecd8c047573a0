"""
Tests for Error Context and Suggestions
=======================================

Tests for todoforge/error_context.py
"""

import pytest

from todoforge.error_context import (
    ErrorContextCollector,
    ErrorType,
    OperationContext,
    Severity,
    message_suggestions,
)
from todoforge.errors import (
    ConfigurationError,
    FileSystemError,
    OperationTimeoutError,
    RecoverableError,
    ValidationError,
)


@pytest.fixture
def collector():
    return ErrorContextCollector(max_retries=3, clock=lambda: 1000.0)


class TestMessageSuggestions:
    """Tests for message_suggestions()"""

    def test_empty_message(self):
        assert message_suggestions("") == []

    def test_keyword_with_trigger(self):
        suggestions = message_suggestions("Permission denied while writing backup")
        assert suggestions == ["The workspace is not writable; backups could not be created next to the file"]

    def test_keyword_default(self):
        suggestions = message_suggestions("fatal: not a git repository")
        assert "Run `git init`" in suggestions[0]

    def test_pattern_quotes_message(self):
        suggestions = message_suggestions("Pattern 'rename-variable' is disabled")
        assert suggestions[0] == (
            "Add 'rename-variable' to patterns.enabled (and remove it from patterns.disabled) to allow it"
        )

    def test_unknown_message(self):
        assert message_suggestions("something odd happened") == []


class TestClassification:
    """Tests for ErrorContextCollector.classify_exception()"""

    @pytest.mark.parametrize("error,expected", [
        (OperationTimeoutError("list_todos", 30), ErrorType.TIMEOUT),
        (TimeoutError(), ErrorType.TIMEOUT),
        (ValidationError("bad syntax"), ErrorType.VALIDATION),
        (ConfigurationError("bad value"), ErrorType.FATAL),
        (FileSystemError("gone"), ErrorType.RECOVERABLE),
        (ValueError("anything else"), ErrorType.RECOVERABLE),
    ])
    def test_classify(self, error, expected):
        assert ErrorContextCollector.classify_exception(error) == expected


class TestSafetyRejection:
    """Tests for ErrorContextCollector.record_safety_rejection()"""

    def test_below_threshold_is_medium(self, collector):
        """A 0.5 match against a 0.7 threshold is a MEDIUM safety error."""
        record = collector.record_safety_rejection(
            "session-1", "TODO: refactor this", 0.5, 0.7, "src/a.ts", 12, "add-comment",
        )

        assert record.error_type == ErrorType.SAFETY
        assert record.severity == Severity.MEDIUM
        assert record.context.confidence == 0.5
        assert record.context.safety_threshold == 0.7
        assert record.context.to_dict()["safetyThreshold"] == 0.7
        assert "Lower the safety threshold to 0.40 to allow this match" in record.suggestions
        assert record.user_action == "Review the TODO manually or adjust the session thresholds"

    def test_very_low_confidence_is_high(self, collector):
        record = collector.record_safety_rejection("session-1", "TODO: ???", 0.2, 0.7)

        assert record.severity == Severity.HIGH
        assert "This TODO is a poor fit for automation; resolve it manually" in record.suggestions

    def test_disabled_pattern_is_low(self, collector):
        record = collector.record_disabled_pattern("session-1", "rename a to b", "rename-variable", 0.9, 0.7)

        assert record.error_type == ErrorType.SAFETY
        assert record.severity == Severity.LOW
        assert record.suggestions[0].startswith("Add 'rename-variable' to patterns.enabled")


class TestRecordError:
    """Tests for ErrorContextCollector.record_error() and record_exception()"""

    def test_pattern_match_failure(self, collector):
        record = collector.record_pattern_match_failure("session-1", "make it faster", "a.ts", 3)

        assert record.error_type == ErrorType.PATTERN_MATCH
        assert record.severity == Severity.MEDIUM
        assert record.context.todo_content == "make it faster"
        assert any("todoforge todos" in s for s in record.suggestions)

    def test_fatal_is_critical(self, collector):
        record = collector.record_exception(
            "session-1", ConfigurationError("bad value"), OperationContext(operation="load_config"),
        )
        assert record.severity == Severity.CRITICAL
        assert record.error_type == ErrorType.FATAL

    def test_retry_exhaustion_raises_severity(self, collector):
        early = collector.record_error(
            "session-1", ErrorType.RECOVERABLE, "boom",
            OperationContext(operation="session_iteration", attempt=1, max_retries=3),
        )
        late = collector.record_error(
            "session-1", ErrorType.RECOVERABLE, "boom",
            OperationContext(operation="session_iteration", attempt=3, max_retries=3),
        )

        assert early.severity == Severity.LOW
        assert late.severity == Severity.HIGH
        assert "The operation failed 3 times in a row; investigate before retrying" in late.suggestions

    def test_ids_are_unique(self, collector):
        first = collector.record_error("s", ErrorType.RECOVERABLE, "a", OperationContext(operation="x"))
        second = collector.record_error("s", ErrorType.RECOVERABLE, "b", OperationContext(operation="x"))
        assert first.id != second.id

    def test_to_dict_drops_empty_context(self, collector):
        record = collector.record_exception(
            "s", RecoverableError("oops"), OperationContext(operation="x"), action_id="action-1",
        )
        data = record.to_dict()

        assert data["context"] == {"operation": "x"}
        assert data["actionId"] == "action-1"
        assert data["errorType"] == "RECOVERABLE"


class TestSummary:
    """Tests for session summaries and reports."""

    def test_errors_are_per_session(self, collector):
        collector.record_pattern_match_failure("a", "x")
        collector.record_pattern_match_failure("b", "y")

        assert len(collector.get_session_errors("a")) == 1
        collector.clear_session_errors("a")
        assert collector.get_session_errors("a") == []
        assert len(collector.get_session_errors("b")) == 1

    def test_summary_counts(self, collector):
        collector.record_pattern_match_failure("s", "x")
        collector.record_pattern_match_failure("s", "y")
        collector.record_exception("s", ConfigurationError("bad"), OperationContext(operation="load_config"))

        summary = collector.get_session_error_summary("s")
        assert summary.total_errors == 3
        assert summary.by_type == {"PATTERN_MATCH": 2, "FATAL": 1}
        assert summary.by_severity == {"MEDIUM": 2, "CRITICAL": 1}
        assert len(summary.critical_errors) == 1
        assert summary.recommended_actions[0] == "Rephrase the TODO or resolve it by hand"
        assert len(summary.top_suggestions) <= 5

    def test_empty_summary(self, collector):
        summary = collector.get_session_error_summary("nothing")
        assert summary.total_errors == 0
        assert summary.by_type == {}

    def test_report(self, collector):
        collector.record_exception("s", ConfigurationError("bad value"), OperationContext(operation="load_config"))
        report = collector.generate_error_report("s")

        assert "ERROR REPORT: session s" in report
        assert "Total errors: 1" in report
        assert "[load_config] Configuration Error: bad value" in report

    def test_empty_report(self, collector):
        assert "No errors recorded." in collector.generate_error_report("s")
