"""Promote retry-exhausted replies to a terminal human-review status."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from replyvet.models import AutoReplyLogEntry, LogStatus
from replyvet.stores import LogStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def log_exhausted(entry: AutoReplyLogEntry) -> None:
    """Default notification hook."""
    logger.warning(
        "Reply %s (user %s) exhausted its retries and needs manual follow-up: %s",
        entry.reply_id, entry.user_id, entry.error_message,
    )


class EscalationSweep:
    """Writes exactly one ``exhausted`` row per reply that ran out of retries."""

    def __init__(
        self,
        log_store: LogStore,
        max_attempts: int = 3,
        clock: Callable[[], datetime] = _utcnow,
        notify: Callable[[AutoReplyLogEntry], None] = log_exhausted,
    ):
        self.log_store = log_store
        self.max_attempts = max_attempts
        self.clock = clock
        self.notify = notify

    def escalate(self, user_id: int) -> int:
        """Return the number of replies newly marked exhausted."""
        escalated = 0
        for last_failure in self.log_store.exhaustion_candidates(user_id, self.max_attempts):
            if self.log_store.has_status(last_failure.reply_id, [LogStatus.EXHAUSTED]):
                continue

            entry = AutoReplyLogEntry(
                user_id=user_id,
                reply_id=last_failure.reply_id,
                contact_id=last_failure.contact_id,
                original_text_snippet=last_failure.original_text_snippet,
                confidence=0.0,
                intent_type="retry_exhausted",
                status=LogStatus.EXHAUSTED,
                error_message=(
                    f"Gave up after {self.max_attempts} failed attempts; "
                    f"last {last_failure.status.value}: {last_failure.error_message}"
                ),
                sent_at=self.clock(),
            )
            self.log_store.append(entry)
            escalated += 1

            try:
                self.notify(entry)
            except Exception:
                logger.exception("Exhaustion notification failed for reply %s", entry.reply_id)

        return escalated
