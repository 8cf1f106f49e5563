"""Acts on one reply's verdict and writes the append-only log row."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from replyvet.compose import compose_auto_reply, reply_subject
from replyvet.config import AutoReplyConfig
from replyvet.detector import Detector
from replyvet.errors import SendFailure, ValidationFailure
from replyvet.models import (
    AutoReplyLogEntry,
    AutoReplySettings,
    Decision,
    LogStatus,
    ProcessResult,
    ReplyRecord,
    TwoPassIntentResult,
)
from replyvet.senders import SendCapability
from replyvet.stores import LogStore
from replyvet.text import clean_reply_text

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _validate(reply: ReplyRecord, settings: AutoReplySettings) -> None:
    if reply.contact is None:
        raise ValidationFailure("Reply has no contact", reply_id=reply.id)
    if not reply.contact.email:
        raise ValidationFailure("Contact has no email address", reply_id=reply.id)
    # Quoted history and signatures are stripped before classification
    if not clean_reply_text(reply.text).strip():
        raise ValidationFailure("Reply has no text", reply_id=reply.id)
    if not settings.booking_link:
        raise ValidationFailure("No booking link configured", reply_id=reply.id)


class ReplyProcessor:
    """Runs detection for one reply and records exactly one outcome row.

    The only place exceptions become log rows:
      detector raised       -> error        (retried by the scheduler)
      send failed           -> send_failed  (retried by the scheduler)
      malformed input       -> skipped      (never retried)

    A retry after ``send_failed`` re-sends the stored message without
    classifying the reply again.
    """

    def __init__(
        self,
        detector: Detector,
        log_store: LogStore,
        sender: SendCapability,
        config: AutoReplyConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.detector = detector
        self.log_store = log_store
        self.sender = sender
        self.config = config or AutoReplyConfig()
        self.clock = clock

    def process_reply(self, reply: ReplyRecord, settings: AutoReplySettings) -> ProcessResult:
        if self.log_store.has_terminal(reply.id):
            logger.debug("Reply %s already has a terminal status; skipping", reply.id)
            return ProcessResult(processed=False)

        try:
            _validate(reply, settings)
        except ValidationFailure as e:
            logger.warning("Reply %s not processable: %s", reply.id, e)
            self._log(reply, LogStatus.SKIPPED, intent_type="invalid_input", error_message=str(e))
            return ProcessResult(processed=False, error=str(e))

        previous = self.log_store.latest_entry(reply.id)
        if previous is not None and previous.status == LogStatus.SEND_FAILED and previous.composed_reply:
            logger.info("Reply %s: re-sending auto-reply after failed delivery", reply.id)
            return self._deliver(
                reply,
                previous.composed_reply,
                confidence=previous.confidence,
                intent_type=previous.intent_type,
            )

        try:
            detection = self.detector.detect(reply.text)
        except Exception as e:
            logger.warning("Detection failed for reply %s: %s", reply.id, e)
            self._log(
                reply,
                LogStatus.ERROR,
                intent_type="processing_error",
                error_message=f"{type(e).__name__}: {e}",
            )
            return ProcessResult(processed=False, error=str(e))

        verdict = detection.final_verdict
        logger.info(
            "Reply %s (user %s): %s at %.0f%% - %s",
            reply.id, reply.user_id, verdict.decision.value, verdict.confidence, verdict.reasoning,
        )

        if verdict.decision == Decision.AUTO_REPLY:
            body = compose_auto_reply(reply.contact.name, settings.booking_link, settings.custom_template)
            return self._deliver(
                reply,
                body,
                confidence=verdict.confidence,
                intent_type=detection.intent_type,
            )

        if verdict.decision == Decision.FLAG_FOR_REVIEW:
            self._log(
                reply,
                LogStatus.FLAGGED_FOR_REVIEW,
                detection=detection,
                error_message=verdict.reasoning,
            )
            return ProcessResult(processed=True, flagged_for_review=True)

        if self.config.record_no_action:
            self._log(reply, LogStatus.SKIPPED, detection=detection, error_message=verdict.reasoning)
        return ProcessResult(processed=True)

    def _deliver(
        self,
        reply: ReplyRecord,
        body: str,
        confidence: float,
        intent_type: str,
    ) -> ProcessResult:
        subject = reply_subject(reply.original_subject)

        try:
            result = self.sender.send(reply.contact.email, subject, body)
            if not result.success:
                raise SendFailure(result.error or "send failed", reply_id=reply.id)
        except Exception as e:
            logger.warning("Auto-reply to %s for reply %s failed: %s", reply.contact.email, reply.id, e)
            self._log(
                reply,
                LogStatus.SEND_FAILED,
                confidence=confidence,
                intent_type=intent_type,
                composed_reply=body,
                error_message=str(e),
            )
            return ProcessResult(processed=True, error=str(e))

        self._log(
            reply,
            LogStatus.SENT,
            confidence=confidence,
            intent_type=intent_type,
            composed_reply=body,
        )
        logger.info("Auto-reply sent to %s for reply %s (%s)", reply.contact.email, reply.id, result.message_id)
        return ProcessResult(processed=True, auto_reply_sent=True)

    def _log(
        self,
        reply: ReplyRecord,
        status: LogStatus,
        detection: TwoPassIntentResult | None = None,
        intent_type: str | None = None,
        confidence: float | None = None,
        composed_reply: str | None = None,
        error_message: str | None = None,
    ) -> None:
        if detection is not None:
            if confidence is None:
                confidence = detection.final_verdict.confidence
            intent_type = intent_type or detection.intent_type

        self.log_store.append(AutoReplyLogEntry(
            user_id=reply.user_id,
            reply_id=reply.id,
            contact_id=reply.contact.id if reply.contact else None,
            original_text_snippet=(reply.text or "")[: self.config.snippet_chars],
            confidence=confidence or 0.0,
            intent_type=intent_type or "",
            composed_reply=composed_reply,
            status=status,
            error_message=error_message,
            sent_at=self.clock(),
        ))
