"""
Tests for the Confidence Gate
=============================

Tests for todoforge/gate.py
"""

import pytest

from todoforge.config import PatternSelection
from todoforge.gate import ConfidenceGate, GateOutcome
from todoforge.patterns import PatternMatcher


@pytest.fixture
def matcher():
    return PatternMatcher()


def _gate(safety=0.7, auto=0.7, **kwargs):
    return ConfidenceGate(safety, auto, PatternSelection(), **kwargs)


class TestConfidenceGate:
    """Tests for ConfidenceGate.decide()"""

    def test_no_match(self):
        decision = _gate().decide(None)

        assert decision.outcome == GateOutcome.REJECTED_NO_MATCH
        assert decision.match is None
        assert decision.confidence == 0.0
        assert not decision.creates_action

    def test_execute_above_both_thresholds(self, matcher):
        decision = _gate().decide(matcher.find_best_match("add comment", "", "a.ts"))

        assert decision.outcome == GateOutcome.EXECUTE
        assert decision.creates_action
        assert decision.confidence == 0.9

    def test_below_safety_threshold(self, matcher):
        decision = _gate(safety=0.95).decide(matcher.find_best_match("add comment", "", "a.ts"))

        assert decision.outcome == GateOutcome.REJECTED_LOW_CONFIDENCE
        assert "0.90" in decision.reason
        assert not decision.creates_action

    def test_exactly_at_threshold_passes(self, matcher):
        decision = _gate(safety=0.9, auto=0.9).decide(matcher.find_best_match("add comment", "", "a.ts"))
        assert decision.outcome == GateOutcome.EXECUTE

    def test_between_thresholds_requires_approval(self, matcher):
        decision = _gate(safety=0.5, auto=0.95).decide(matcher.find_best_match("add comment", "", "a.ts"))

        assert decision.outcome == GateOutcome.REQUIRES_APPROVAL
        assert decision.creates_action

    def test_disabled_pattern(self, matcher):
        """rename-variable is disabled by default."""
        decision = _gate().decide(matcher.find_best_match("rename foo to bar", "", "a.ts"))

        assert decision.outcome == GateOutcome.REJECTED_DISABLED
        assert "rename-variable" in decision.reason

    def test_disabled_wins_over_enabled(self, matcher):
        selection = PatternSelection(enabled=["add-comment"], disabled=["add-comment"])
        gate = ConfidenceGate(0.7, 0.7, selection)

        decision = gate.decide(matcher.find_best_match("add comment", "", "a.ts"))
        assert decision.outcome == GateOutcome.REJECTED_DISABLED

    def test_safety_checked_before_enablement(self, matcher):
        decision = _gate(safety=0.95).decide(matcher.find_best_match("rename foo to bar", "", "a.ts"))
        assert decision.outcome == GateOutcome.REJECTED_LOW_CONFIDENCE

    def test_pattern_auto_approve_ignored_by_default(self, matcher):
        """add-import is not auto-approve, but only the threshold counts unless configured."""
        match = matcher.find_best_match("add import lodash from lodash", "", "a.ts")
        assert _gate(auto=0.7).decide(match).outcome == GateOutcome.EXECUTE

    def test_pattern_auto_approve_honored_when_configured(self, matcher):
        match = matcher.find_best_match("add import lodash from lodash", "", "a.ts")
        decision = _gate(auto=0.7, honor_pattern_auto_approve=True).decide(match)

        assert decision.outcome == GateOutcome.REQUIRES_APPROVAL
        assert "always requires approval" in decision.reason
