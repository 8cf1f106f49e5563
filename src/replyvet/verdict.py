"""Consensus rule table combining lexical signals and both AI passes.

Rules are evaluated in order and the first match wins:

1. negation language                               -> no_action
2. both passes booking, strong confidence, booking
   language, no constraints                        -> auto_reply
3. both passes booking, weaker confidence, booking
   language                                        -> flag_for_review
4. exactly one pass booking                        -> flag_for_review
5. constraints and either pass booking             -> flag_for_review
6. anything else                                   -> no_action
"""

from __future__ import annotations

from replyvet.config import VerdictThresholds
from replyvet.models import (
    Decision,
    FinalVerdict,
    IntentResult,
    PatternValidationResult,
)

DEFAULT_THRESHOLDS = VerdictThresholds()


def _no_action(reasoning: str) -> FinalVerdict:
    return FinalVerdict(decision=Decision.NO_ACTION, confidence=0.0, reasoning=reasoning)


def _review(confidence: float, reasoning: str) -> FinalVerdict:
    return FinalVerdict(
        decision=Decision.FLAG_FOR_REVIEW,
        confidence=confidence,
        reasoning=reasoning,
        should_flag_for_review=True,
    )


def determine_verdict(
    pass1: IntentResult,
    pass2: IntentResult,
    patterns: PatternValidationResult,
    thresholds: VerdictThresholds = DEFAULT_THRESHOLDS,
) -> FinalVerdict:
    """Return the final decision for one reply. Never raises."""
    if patterns.has_negation_language:
        return _no_action("Negation language present; overrides AI classification")

    both_booking = pass1.is_booking and pass2.is_booking
    lowest = min(pass1.confidence, pass2.confidence)

    if (
        both_booking
        and pass1.confidence >= thresholds.auto_reply_pass1
        and pass2.confidence >= thresholds.auto_reply_pass2
        and patterns.has_booking_language
        and not patterns.has_constraints
    ):
        return FinalVerdict(
            decision=Decision.AUTO_REPLY,
            confidence=lowest,
            reasoning=(
                f"Both passes confirm booking ({pass1.confidence:.0f}/{pass2.confidence:.0f}) "
                "with booking language and no conditions"
            ),
            is_confirmed_yes=True,
            should_auto_reply=True,
        )

    if (
        both_booking
        and pass1.confidence >= thresholds.review_pass1
        and pass2.confidence >= thresholds.review_pass2
        and patterns.has_booking_language
    ):
        reason = "conditions attached" if patterns.has_constraints else "confidence below auto-reply threshold"
        return _review(
            lowest,
            f"Both passes say booking ({pass1.confidence:.0f}/{pass2.confidence:.0f}) but {reason}",
        )

    if pass1.is_booking != pass2.is_booking:
        return _review(
            0.0,
            f"Passes disagree: pass1={pass1.intent_type.value} ({pass1.confidence:.0f}), "
            f"pass2={pass2.intent_type.value} ({pass2.confidence:.0f})",
        )

    if patterns.has_constraints and (pass1.is_booking or pass2.is_booking):
        return _review(lowest, "Booking intent with a condition or question attached")

    return _no_action(
        f"Not a confirmed yes: pass1={pass1.intent_type.value}, pass2={pass2.intent_type.value}"
    )


def fast_path_verdict() -> FinalVerdict:
    """Verdict used when negation without booking language skips both passes."""
    return _no_action("Negation language without booking language; AI passes skipped")
