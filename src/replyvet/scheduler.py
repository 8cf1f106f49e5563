"""Periodic retry scheduler driving the reply processor.

One instance owns its own thread, stop event and run bookkeeping. Users and
their replies are processed sequentially; eligibility is recomputed from a
fresh read of the log every tick. Only one scheduler may run against a
database at a time.
"""

from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from replyvet.escalation import EscalationSweep
from replyvet.models import (
    RETRYABLE_STATUSES,
    TERMINAL_STATUSES,
    AutoReplySettings,
    ProcessingStatus,
    TickSummary,
)
from replyvet.processor import ReplyProcessor
from replyvet.stores import LogStore, ReplySource, SettingsStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: timedelta = timedelta(minutes=5)

    def retry_delay(self, attempt_count: int) -> timedelta:
        """Wait required after ``attempt_count`` failures: base * 2^(n-1)."""
        return self.base_delay * (2 ** max(0, attempt_count - 1))

    def should_process(self, status: ProcessingStatus | None, now: datetime) -> tuple[bool, str]:
        """Return (eligible, reason) for a reply's folded status."""
        if status is None:
            return True, "new"
        if status.latest_status in TERMINAL_STATUSES:
            return False, "terminal"
        if status.latest_status not in RETRYABLE_STATUSES:
            return False, "not_retryable"
        if status.attempt_count >= self.max_attempts:
            return False, "exhausted"
        if status.last_attempt_at is not None:
            if now - status.last_attempt_at < self.retry_delay(status.attempt_count):
                return False, "backoff"
        return True, "retry"


class AutoReplyScheduler:
    """Runs ticks every ``interval`` seconds plus up to ``jitter`` seconds."""

    def __init__(
        self,
        processor: ReplyProcessor,
        reply_source: ReplySource,
        settings_store: SettingsStore,
        log_store: LogStore,
        sweep: EscalationSweep,
        policy: RetryPolicy | None = None,
        interval: float = 600,
        jitter: float = 120,
        lookback: timedelta = timedelta(hours=24),
        batch_limit: int = 100,
        clock: Callable[[], datetime] = _utcnow,
        rng: random.Random | None = None,
    ):
        self.processor = processor
        self.reply_source = reply_source
        self.settings_store = settings_store
        self.log_store = log_store
        self.sweep = sweep
        self.policy = policy or RetryPolicy()
        self.interval = interval
        self.jitter = jitter
        self.lookback = lookback
        self.batch_limit = batch_limit
        self.clock = clock
        self.rng = rng or random.Random()

        self.last_run_at: datetime | None = None
        self.last_summary: TickSummary | None = None
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def next_delay(self) -> float:
        return self.interval + self.rng.uniform(0, self.jitter)

    # --- one pass ---------------------------------------------------------

    def tick(self) -> TickSummary:
        """Process every enabled user once. Never raises."""
        started = self.clock()
        summary = TickSummary()

        try:
            users = self.settings_store.enabled_users()
        except Exception:
            logger.exception("Could not load auto-reply settings")
            summary.errors += 1
            users = []

        for settings in users:
            summary.users += 1
            try:
                self._process_user(settings, summary)
            except Exception:
                logger.exception("Auto-reply pass failed for user %s", settings.user_id)
                summary.errors += 1

        finished = self.clock()
        self.last_run_at = finished
        self.last_summary = summary
        try:
            self.log_store.record_run(summary, started, finished)
        except Exception:
            logger.exception("Could not record scheduler run")

        logger.info(
            "Tick done: %d users, %d processed, %d sent, %d flagged, %d retried, "
            "%d errors, %d escalated",
            summary.users, summary.processed, summary.auto_replies_sent,
            summary.flagged_for_review, summary.retried, summary.errors, summary.escalated,
        )
        return summary

    def process_user(self, user_id: int) -> TickSummary:
        """Run a single user's batch outside the timer, e.g. a manual trigger."""
        summary = TickSummary()
        settings = self.settings_store.get(user_id)
        if not settings.is_active:
            logger.info("Auto-reply is not active for user %s", user_id)
            return summary
        summary.users = 1
        self._process_user(settings, summary)
        return summary

    def _process_user(self, settings: AutoReplySettings, summary: TickSummary) -> None:
        user_id = settings.user_id
        now = self.clock()
        statuses = self.log_store.processing_statuses(user_id)
        retryable_ids = [
            reply_id for reply_id, status in statuses.items()
            if status.latest_status in RETRYABLE_STATUSES
            and status.attempt_count < self.policy.max_attempts
        ]
        candidates = self.reply_source.candidate_replies(
            user_id,
            since=now - self.lookback,
            include_ids=retryable_ids,
            limit=self.batch_limit,
        )

        for reply in candidates:
            status = statuses.get(reply.id)
            eligible, reason = self.policy.should_process(status, now)
            if not eligible:
                summary.skipped += 1
                continue

            if reason == "retry":
                summary.retried += 1
                logger.info(
                    "User %s: retrying reply %s (attempt %d)",
                    user_id, reply.id, status.attempt_count + 1,
                )

            try:
                result = self.processor.process_reply(reply, settings)
            except Exception:
                logger.exception("User %s: unexpected failure on reply %s", user_id, reply.id)
                summary.errors += 1
                continue

            if result.processed:
                summary.processed += 1
            if result.auto_reply_sent:
                summary.auto_replies_sent += 1
            if result.flagged_for_review:
                summary.flagged_for_review += 1
            if result.error:
                summary.errors += 1

        summary.escalated += self.sweep.escalate(user_id)

    # --- loop -------------------------------------------------------------

    def run_forever(self, max_ticks: int | None = None) -> None:
        """Tick, then wait interval + jitter, until stopped."""
        ticks = 0
        while not self._stop_event.is_set():
            self.tick()
            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                break
            delay = self.next_delay()
            logger.debug("Next auto-reply tick in %.0fs", delay)
            self._stop_event.wait(delay)

    def start(self) -> None:
        if self.running:
            logger.warning("Auto-reply scheduler already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self.run_forever, name="replyvet-scheduler", daemon=True,
        )
        self._thread.start()
        logger.info("Auto-reply scheduler started (every %.0f-%.0fs)",
                    self.interval, self.interval + self.jitter)

    def stop(self, timeout: float | None = 30.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Auto-reply scheduler stopped")
