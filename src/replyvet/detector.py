"""Detection pipeline: patterns, fast path, pass 1, pass 2, verdict."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Callable

from replyvet.classifier import ClassifierPort
from replyvet.config import VerdictThresholds
from replyvet.models import AuditEntry, TwoPassIntentResult
from replyvet.patterns import validate_patterns
from replyvet.text import clean_reply_text
from replyvet.verdict import DEFAULT_THRESHOLDS, determine_verdict, fast_path_verdict

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Detector:
    """Runs one reply through the detection state machine.

    start -> pattern_validated -> [fast_path] -> pass1_complete ->
    pass2_complete -> verdict_determined. Classifier exceptions propagate
    unchanged; there are no retries here.
    """

    def __init__(
        self,
        classifier: ClassifierPort,
        thresholds: VerdictThresholds = DEFAULT_THRESHOLDS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.classifier = classifier
        self.thresholds = thresholds
        self.clock = clock

    def detect(self, text: str) -> TwoPassIntentResult:
        started = time.monotonic()
        trace: list[AuditEntry] = []

        def record(step: str, result: str, **details) -> None:
            entry = AuditEntry(timestamp=self.clock(), step=step, result=result, details=details)
            trace.append(entry)
            logger.debug("detect %s: %s %s", step, result, details)

        clean = clean_reply_text(text)
        record("start", "ok", raw_chars=len(text or ""), clean_chars=len(clean))

        patterns = validate_patterns(clean)
        record(
            "pattern_validated",
            "negation" if patterns.has_negation_language else "ok",
            booking=patterns.has_booking_language,
            negation=patterns.has_negation_language,
            question=patterns.has_question,
            reschedule=patterns.has_reschedule_request,
            constraints=patterns.has_constraints,
            matched=list(patterns.patterns),
        )

        if patterns.has_negation_language and not patterns.has_booking_language:
            verdict = fast_path_verdict()
            record("fast_path", verdict.decision.value, reasoning=verdict.reasoning)
            record(
                "verdict_determined",
                verdict.decision.value,
                confidence=verdict.confidence,
                elapsed_ms=int((time.monotonic() - started) * 1000),
            )
            return TwoPassIntentResult(
                pattern_validation=patterns,
                final_verdict=verdict,
                trace=trace,
                fast_path=True,
            )

        pass1 = self.classifier.classify_pass1(clean)
        record("pass1_complete", pass1.intent_type.value, confidence=pass1.confidence,
               reasoning=pass1.reasoning)

        pass2 = self.classifier.classify_pass2(clean, pass1)
        record("pass2_complete", pass2.intent_type.value, confidence=pass2.confidence,
               reasoning=pass2.reasoning)

        verdict = determine_verdict(pass1, pass2, patterns, self.thresholds)
        record(
            "verdict_determined",
            verdict.decision.value,
            confidence=verdict.confidence,
            reasoning=verdict.reasoning,
            elapsed_ms=int((time.monotonic() - started) * 1000),
        )

        return TwoPassIntentResult(
            pattern_validation=patterns,
            final_verdict=verdict,
            pass1=pass1,
            pass2=pass2,
            trace=trace,
        )


def classify_intent(text: str, detector: Detector) -> TwoPassIntentResult:
    """Preview classification for a piece of text. Writes nothing."""
    return detector.detect(text)
