"""Value objects and enums shared across the detection and retry pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class IntentType(str, Enum):
    BOOKING = "booking"
    INTERESTED = "interested"
    QUESTION = "question"
    NOT_INTERESTED = "not_interested"
    UNSUBSCRIBE = "unsubscribe"
    OUT_OF_OFFICE = "out_of_office"
    OTHER = "other"


class Decision(str, Enum):
    AUTO_REPLY = "auto_reply"
    FLAG_FOR_REVIEW = "flag_for_review"
    NO_ACTION = "no_action"


class LogStatus(str, Enum):
    SENT = "sent"
    SKIPPED = "skipped"
    FLAGGED_FOR_REVIEW = "flagged_for_review"
    ERROR = "error"
    SEND_FAILED = "send_failed"
    EXHAUSTED = "exhausted"


TERMINAL_STATUSES = frozenset({
    LogStatus.SENT, LogStatus.FLAGGED_FOR_REVIEW, LogStatus.EXHAUSTED,
})
RETRYABLE_STATUSES = frozenset({LogStatus.ERROR, LogStatus.SEND_FAILED})
REVIEW_STATUSES = frozenset({LogStatus.FLAGGED_FOR_REVIEW, LogStatus.EXHAUSTED})


@dataclass(frozen=True)
class Contact:
    id: int
    name: str = ""
    email: str = ""


@dataclass(frozen=True)
class ReplyRecord:
    id: int
    user_id: int
    text: str
    received_at: datetime | None = None
    contact: Contact | None = None
    original_subject: str = ""
    sent_email_id: int | None = None


@dataclass(frozen=True)
class PatternValidationResult:
    has_booking_language: bool = False
    has_negation_language: bool = False
    has_question: bool = False
    has_reschedule_request: bool = False
    has_constraints: bool = False
    patterns: tuple[str, ...] = ()


@dataclass(frozen=True)
class IntentResult:
    intent_type: IntentType
    confidence: float
    reasoning: str = ""

    @property
    def is_booking(self) -> bool:
        return self.intent_type == IntentType.BOOKING

    def to_dict(self) -> dict:
        return {
            "intent_type": self.intent_type.value,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
        }


@dataclass(frozen=True)
class FinalVerdict:
    decision: Decision
    confidence: float
    reasoning: str
    is_confirmed_yes: bool = False
    should_auto_reply: bool = False
    should_flag_for_review: bool = False

    def to_dict(self) -> dict:
        return {
            "decision": self.decision.value,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "is_confirmed_yes": self.is_confirmed_yes,
            "should_auto_reply": self.should_auto_reply,
            "should_flag_for_review": self.should_flag_for_review,
        }


@dataclass(frozen=True)
class AuditEntry:
    timestamp: datetime
    step: str
    result: str
    details: dict = field(default_factory=dict)


@dataclass
class TwoPassIntentResult:
    """Everything one detection call produced.

    pass1 and pass2 are None when the negation fast path skipped the AI calls.
    """

    pattern_validation: PatternValidationResult
    final_verdict: FinalVerdict
    pass1: IntentResult | None = None
    pass2: IntentResult | None = None
    trace: list[AuditEntry] = field(default_factory=list)
    fast_path: bool = False

    @property
    def intent_type(self) -> str:
        if self.pass1 is not None:
            return self.pass1.intent_type.value
        return IntentType.NOT_INTERESTED.value

    def to_dict(self) -> dict:
        return {
            "pass1": self.pass1.to_dict() if self.pass1 else None,
            "pass2": self.pass2.to_dict() if self.pass2 else None,
            "patterns": {
                "has_booking_language": self.pattern_validation.has_booking_language,
                "has_negation_language": self.pattern_validation.has_negation_language,
                "has_question": self.pattern_validation.has_question,
                "has_reschedule_request": self.pattern_validation.has_reschedule_request,
                "has_constraints": self.pattern_validation.has_constraints,
                "matched": list(self.pattern_validation.patterns),
            },
            "final_verdict": self.final_verdict.to_dict(),
            "fast_path": self.fast_path,
            "trace": [
                {
                    "timestamp": e.timestamp.isoformat(),
                    "step": e.step,
                    "result": e.result,
                    "details": e.details,
                }
                for e in self.trace
            ],
        }


@dataclass
class AutoReplyLogEntry:
    user_id: int
    reply_id: int
    status: LogStatus
    contact_id: int | None = None
    original_text_snippet: str = ""
    confidence: float = 0.0
    intent_type: str = ""
    composed_reply: str | None = None
    error_message: str | None = None
    sent_at: datetime | None = None
    id: int | None = None


@dataclass(frozen=True)
class ProcessingStatus:
    reply_id: int
    latest_status: LogStatus
    attempt_count: int
    last_attempt_at: datetime | None


@dataclass(frozen=True)
class AutoReplySettings:
    user_id: int
    enabled: bool = False
    booking_link: str | None = None
    custom_template: str | None = None

    @property
    def is_active(self) -> bool:
        return self.enabled and bool(self.booking_link)


@dataclass(frozen=True)
class SendResult:
    success: bool
    message_id: str | None = None
    error: str | None = None


@dataclass
class ProcessResult:
    processed: bool = False
    auto_reply_sent: bool = False
    flagged_for_review: bool = False
    error: str | None = None


@dataclass
class TickSummary:
    users: int = 0
    processed: int = 0
    auto_replies_sent: int = 0
    flagged_for_review: int = 0
    retried: int = 0
    errors: int = 0
    escalated: int = 0
    skipped: int = 0
