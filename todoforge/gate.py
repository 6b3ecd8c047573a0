"""
Confidence Gate
===============

Decides what happens to a TODO once the matcher has looked at it:

1. nothing matched                      -> rejected (PATTERN_MATCH)
2. best confidence < safety threshold   -> rejected (SAFETY)
3. best pattern not enabled             -> rejected (SAFETY, "pattern disabled")
4. confidence >= auto-approve threshold -> execute
5. otherwise                            -> requires approval
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from todoforge.config import PatternSelection
from todoforge.patterns import PatternMatch


class GateOutcome(str, Enum):
    EXECUTE = "execute"
    REQUIRES_APPROVAL = "requires_approval"
    REJECTED_NO_MATCH = "rejected_no_match"
    REJECTED_LOW_CONFIDENCE = "rejected_low_confidence"
    REJECTED_DISABLED = "rejected_disabled"


@dataclass(frozen=True)
class GateDecision:
    outcome: GateOutcome
    match: Optional[PatternMatch]
    reason: str

    @property
    def creates_action(self) -> bool:
        return self.outcome in (GateOutcome.EXECUTE, GateOutcome.REQUIRES_APPROVAL)

    @property
    def confidence(self) -> float:
        return self.match.confidence if self.match else 0.0


class ConfidenceGate:
    """Applies session thresholds and pattern selection to a TODO's matches."""

    def __init__(
        self,
        safety_threshold: float,
        auto_approve_threshold: float,
        patterns: PatternSelection,
        honor_pattern_auto_approve: bool = False,
    ):
        self.safety_threshold = safety_threshold
        self.auto_approve_threshold = auto_approve_threshold
        self.patterns = patterns
        self.honor_pattern_auto_approve = honor_pattern_auto_approve

    def decide(self, best: Optional[PatternMatch]) -> GateDecision:
        if best is None:
            return GateDecision(GateOutcome.REJECTED_NO_MATCH, None, "No pattern matched the TODO content")

        if best.confidence < self.safety_threshold:
            return GateDecision(
                GateOutcome.REJECTED_LOW_CONFIDENCE,
                best,
                f"Confidence {best.confidence:.2f} is below safety threshold {self.safety_threshold:.2f}",
            )

        if not self.patterns.allows(best.pattern_id):
            return GateDecision(GateOutcome.REJECTED_DISABLED, best, f"Pattern '{best.pattern_id}' is disabled")

        needs_review = self.honor_pattern_auto_approve and not best.pattern.auto_approve
        if best.confidence >= self.auto_approve_threshold and not needs_review:
            return GateDecision(GateOutcome.EXECUTE, best, "Auto-approved")

        reason = (
            f"Pattern '{best.pattern_id}' always requires approval"
            if needs_review
            else f"Confidence {best.confidence:.2f} is below auto-approve threshold {self.auto_approve_threshold:.2f}"
        )
        return GateDecision(GateOutcome.REQUIRES_APPROVAL, best, reason)
