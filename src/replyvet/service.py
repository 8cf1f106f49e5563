"""Wiring: build the detector, processor and scheduler from config.

Also exposes the read-only projections used by operator tooling.
"""

from __future__ import annotations

import random
import sqlite3
from datetime import timedelta

from replyvet.classifier import ClassifierPort, build_classifier
from replyvet.config import Config
from replyvet.detector import Detector, classify_intent
from replyvet.escalation import EscalationSweep
from replyvet.models import (
    AutoReplyLogEntry,
    AutoReplySettings,
    ProcessResult,
    ReplyRecord,
    TwoPassIntentResult,
)
from replyvet.processor import ReplyProcessor
from replyvet.scheduler import AutoReplyScheduler, RetryPolicy
from replyvet.senders import DryRunSender, SendCapability
from replyvet.stores import LogStore, SettingsStore, SqliteReplySource

# Labelled replies for `replyvet selftest`
SELFTEST_CASES: list[tuple[str, str, str]] = [
    ("Clear YES - Let's chat", "Yes, let's chat! I'm free next week.", "auto_reply"),
    ("Clear YES - Sounds good",
     "Sounds good, I'm interested in learning more. Let's schedule a call!", "auto_reply"),
    ("Clear YES - Love to",
     "I would love to discuss this further. When are you available?", "auto_reply"),
    ("Interested but question", "Interesting, but how much does this cost?", "flag_for_review"),
    ("Maybe later", "Not now, maybe later after Q1.", "no_action"),
    ("Clear NO", "Not interested, please remove me from your list.", "no_action"),
    ("Out of office", "I'm out of the office until Jan 5th. I'll get back to you then.", "no_action"),
    ("Polite but unsure", "Thanks for reaching out. I'll think about it and let you know.", "no_action"),
    ("Yes with constraint",
     "Yes, but I'm traveling until next month. Can we reconnect then?", "flag_for_review"),
    ("Question only", "What's the pricing? Can you send me more details?", "no_action"),
]


def build_sender(config: Config, dry_run: bool = False) -> SendCapability:
    """Gmail sender unless running dry."""
    if dry_run or config.auto_reply.dry_run:
        return DryRunSender()
    from replyvet.gmail.auth import get_gmail_service
    from replyvet.gmail.sender import GmailSender

    return GmailSender(get_gmail_service(config.gmail))


class AutoReplyService:
    """Entry points exposed to collaborators."""

    def __init__(
        self,
        config: Config,
        db: sqlite3.Connection,
        classifier: ClassifierPort | None = None,
        sender: SendCapability | None = None,
    ):
        self.config = config
        self.db = db
        self.log_store = LogStore(db)
        self.settings_store = SettingsStore(db)
        self.reply_source = SqliteReplySource(db)
        self.detector = Detector(classifier or build_classifier(config.ai), thresholds=config.verdict)
        self._sender = sender

    @property
    def sender(self) -> SendCapability:
        if self._sender is None:
            self._sender = build_sender(self.config)
        return self._sender

    def classify_intent(self, text: str) -> TwoPassIntentResult:
        return classify_intent(text, self.detector)

    def processor(self) -> ReplyProcessor:
        return ReplyProcessor(self.detector, self.log_store, self.sender, self.config.auto_reply)

    def process_reply(self, reply: ReplyRecord, settings: AutoReplySettings) -> ProcessResult:
        return self.processor().process_reply(reply, settings)

    def get_logs(self, user_id: int, limit: int = 50) -> list[AutoReplyLogEntry]:
        return self.log_store.get_logs(user_id, limit)

    def get_pending_review(self, user_id: int) -> list[AutoReplyLogEntry]:
        return self.log_store.get_pending_review(user_id)

    def scheduler(self, rng: random.Random | None = None) -> AutoReplyScheduler:
        sched = self.config.scheduler
        return AutoReplyScheduler(
            processor=self.processor(),
            reply_source=self.reply_source,
            settings_store=self.settings_store,
            log_store=self.log_store,
            sweep=EscalationSweep(self.log_store, max_attempts=sched.max_retry_attempts),
            policy=RetryPolicy(
                max_attempts=sched.max_retry_attempts,
                base_delay=timedelta(seconds=sched.base_delay_seconds),
            ),
            interval=sched.interval_seconds,
            jitter=sched.jitter_seconds,
            lookback=timedelta(hours=sched.lookback_hours),
            batch_limit=sched.batch_limit,
            rng=rng,
        )
