"""Tests for the retry policy, the scheduler tick and exhaustion escalation."""

import random
import threading
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from replyvet.detector import Detector
from replyvet.escalation import EscalationSweep
from replyvet.models import LogStatus, ProcessingStatus, TickSummary
from replyvet.processor import ReplyProcessor
from replyvet.scheduler import AutoReplyScheduler, RetryPolicy
from replyvet.stores import LogStore, SettingsStore, SqliteReplySource
from tests.conftest import (
    T0,
    FakeClassifier,
    FakeSender,
    enable_user,
    failing_classifier,
    insert_contact,
    insert_reply,
    intent,
)


def _scheduler(db, clock, classifier, sender=None, notify=None, max_attempts=3):
    log_store = LogStore(db)
    processor = ReplyProcessor(
        Detector(classifier, clock=clock), log_store, sender or FakeSender(), clock=clock,
    )
    sweep_kwargs = {"notify": notify} if notify else {}
    sweep = EscalationSweep(log_store, max_attempts=max_attempts, clock=clock, **sweep_kwargs)
    return AutoReplyScheduler(
        processor,
        SqliteReplySource(db),
        SettingsStore(db),
        log_store,
        sweep,
        policy=RetryPolicy(max_attempts=max_attempts, base_delay=timedelta(minutes=5)),
        clock=clock,
        rng=random.Random(7),
    )


def _statuses(db, reply_id):
    return [row.status for row in reversed(LogStore(db).logs_for_reply(reply_id))]


@pytest.fixture
def user(db):
    insert_contact(db)
    enable_user(db)


# --- RetryPolicy ----------------------------------------------------------

def test_retry_delay_doubles():
    policy = RetryPolicy(base_delay=timedelta(minutes=5))
    assert policy.retry_delay(1) == timedelta(minutes=5)
    assert policy.retry_delay(2) == timedelta(minutes=10)
    assert policy.retry_delay(3) == timedelta(minutes=20)


def test_retry_delay_is_strictly_increasing():
    policy = RetryPolicy(base_delay=timedelta(seconds=30))
    delays = [policy.retry_delay(n) for n in range(1, 10)]
    assert all(a < b for a, b in zip(delays, delays[1:]))


def _status(latest, attempts, minutes_ago=60):
    return ProcessingStatus(
        reply_id=1,
        latest_status=latest,
        attempt_count=attempts,
        last_attempt_at=T0 - timedelta(minutes=minutes_ago),
    )


@pytest.mark.parametrize("status,expected", [
    (None, (True, "new")),
    (_status(LogStatus.SENT, 0), (False, "terminal")),
    (_status(LogStatus.FLAGGED_FOR_REVIEW, 0), (False, "terminal")),
    (_status(LogStatus.EXHAUSTED, 3), (False, "terminal")),
    (_status(LogStatus.SKIPPED, 0), (False, "not_retryable")),
    (_status(LogStatus.ERROR, 3), (False, "exhausted")),
    (_status(LogStatus.ERROR, 1, minutes_ago=4), (False, "backoff")),
    (_status(LogStatus.ERROR, 1, minutes_ago=5), (True, "retry")),
    (_status(LogStatus.SEND_FAILED, 2, minutes_ago=9), (False, "backoff")),
    (_status(LogStatus.SEND_FAILED, 2, minutes_ago=10), (True, "retry")),
])
def test_should_process(status, expected):
    assert RetryPolicy().should_process(status, T0) == expected


# --- tick -----------------------------------------------------------------

def test_tick_processes_new_replies(db, clock, user):
    insert_reply(db, 1, "Yes! Let's do it, I'm free Tuesday")
    insert_reply(db, 2, "Not interested, please remove me")
    sender = FakeSender()
    scheduler = _scheduler(db, clock, FakeClassifier(intent("booking", 95), intent("booking", 88)), sender)

    summary = scheduler.tick()

    assert summary.users == 1
    assert summary.processed == 2
    assert summary.auto_replies_sent == 1
    assert len(sender.sent) == 1
    assert _statuses(db, 1) == [LogStatus.SENT]
    assert _statuses(db, 2) == [LogStatus.SKIPPED]
    assert scheduler.last_summary is summary
    assert scheduler.last_run_at == clock.now


def test_terminal_replies_are_never_reprocessed(db, clock, user):
    insert_reply(db, 1, "Yes! Let's do it, I'm free Tuesday")
    classifier = FakeClassifier(intent("booking", 95), intent("booking", 88))
    sender = FakeSender()
    scheduler = _scheduler(db, clock, classifier, sender)

    for _ in range(4):
        scheduler.tick()
        clock.advance(minutes=10)

    assert len(sender.sent) == 1
    assert len(classifier.calls) == 2
    assert _statuses(db, 1) == [LogStatus.SENT]


def test_skipped_replies_are_not_retried(db, clock, user):
    insert_reply(db, 1, "Not interested, please remove me")
    scheduler = _scheduler(db, clock, FakeClassifier())
    scheduler.tick()
    clock.advance(hours=1)
    summary = scheduler.tick()

    assert summary.processed == 0
    assert summary.skipped == 1
    assert _statuses(db, 1) == [LogStatus.SKIPPED]


def test_failures_back_off_then_exhaust_once(db, clock, user):
    insert_reply(db, 1, "Yes! Let's do it, I'm free Tuesday")
    notified = []
    scheduler = _scheduler(db, clock, failing_classifier(), notify=notified.append)

    scheduler.tick()                      # attempt 1
    assert _statuses(db, 1) == [LogStatus.ERROR]

    clock.advance(minutes=4)
    summary = scheduler.tick()            # still backing off
    assert summary.retried == 0
    assert _statuses(db, 1) == [LogStatus.ERROR]

    clock.advance(minutes=1)
    summary = scheduler.tick()            # attempt 2
    assert summary.retried == 1

    clock.advance(minutes=9)
    scheduler.tick()                      # backing off (10 minutes now)
    assert len(_statuses(db, 1)) == 2

    clock.advance(minutes=1)
    summary = scheduler.tick()            # attempt 3, then escalated
    assert summary.escalated == 1
    assert _statuses(db, 1) == [
        LogStatus.ERROR, LogStatus.ERROR, LogStatus.ERROR, LogStatus.EXHAUSTED,
    ]

    for _ in range(3):
        clock.advance(hours=1)
        summary = scheduler.tick()
        assert summary.escalated == 0

    rows = LogStore(db).logs_for_reply(1)
    assert [r.status for r in rows].count(LogStatus.EXHAUSTED) == 1
    exhausted = rows[0]
    assert exhausted.intent_type == "retry_exhausted"
    assert "3 failed attempts" in exhausted.error_message
    assert "model timed out" in exhausted.error_message
    assert len(notified) == 1
    assert notified[0].reply_id == 1


def test_send_failed_retry_does_not_reclassify(db, clock, user):
    insert_reply(db, 1, "Yes! Let's do it, I'm free Tuesday")
    classifier = FakeClassifier(intent("booking", 95), intent("booking", 88))
    sender = FakeSender(success=False)
    scheduler = _scheduler(db, clock, classifier, sender)
    scheduler.tick()

    classifier.pass2 = intent("interested", 70)
    sender.success = True
    clock.advance(minutes=5)
    summary = scheduler.tick()

    assert summary.retried == 1
    assert summary.auto_replies_sent == 1
    assert len(classifier.calls) == 2
    assert _statuses(db, 1) == [LogStatus.SEND_FAILED, LogStatus.SENT]


def test_send_failures_count_towards_exhaustion(db, clock, user):
    insert_reply(db, 1, "Yes! Let's do it, I'm free Tuesday")
    classifier = FakeClassifier(intent("booking", 95), intent("booking", 88))
    scheduler = _scheduler(
        db, clock, classifier, FakeSender(success=False), max_attempts=2,
    )
    scheduler.tick()
    clock.advance(minutes=5)
    scheduler.tick()

    assert _statuses(db, 1) == [
        LogStatus.SEND_FAILED, LogStatus.SEND_FAILED, LogStatus.EXHAUSTED,
    ]
    assert LogStore(db).get_pending_review(1)[0].status == LogStatus.EXHAUSTED


def test_failed_reply_is_retried_after_lookback_window(db, clock, user):
    insert_reply(db, 1, "Yes! Let's do it, I'm free Tuesday")
    classifier = failing_classifier()
    scheduler = _scheduler(db, clock, classifier)
    scheduler.tick()

    clock.advance(days=3)
    classifier.error = None
    classifier.pass1 = intent("booking", 95)
    classifier.pass2 = intent("booking", 88)
    scheduler.tick()

    assert _statuses(db, 1) == [LogStatus.ERROR, LogStatus.SENT]


def test_old_replies_outside_lookback_are_ignored(db, clock, user):
    insert_reply(db, 1, "Yes! Let's do it, I'm free Tuesday", received_at=T0 - timedelta(days=2))
    summary = _scheduler(db, clock, FakeClassifier()).tick()
    assert summary.processed == 0
    assert _statuses(db, 1) == []


def test_disabled_users_are_not_processed(db, clock, user):
    SettingsStore(db).update(1, enabled=False)
    insert_reply(db, 1, "Yes! Let's do it, I'm free Tuesday")
    summary = _scheduler(db, clock, FakeClassifier()).tick()
    assert summary.users == 0
    assert _statuses(db, 1) == []


def test_tick_records_run(db, clock, user):
    insert_reply(db, 1, "Not interested, please remove me")
    _scheduler(db, clock, FakeClassifier()).tick()
    row = db.execute("SELECT * FROM scheduler_runs").fetchone()
    assert row["users"] == 1
    assert row["processed"] == 1


def test_process_user_runs_single_batch(db, clock, user):
    insert_reply(db, 1, "Not interested, please remove me")
    scheduler = _scheduler(db, clock, FakeClassifier())
    assert scheduler.process_user(1).processed == 1
    assert scheduler.process_user(2).users == 0


def _mocked_scheduler(**overrides):
    parts = {
        "processor": MagicMock(),
        "reply_source": MagicMock(),
        "settings_store": MagicMock(),
        "log_store": MagicMock(),
        "sweep": MagicMock(),
    }
    parts.update(overrides)
    return AutoReplyScheduler(interval=3600, jitter=0, **parts), parts


def test_tick_never_raises():
    settings_store = MagicMock()
    settings_store.enabled_users.side_effect = RuntimeError("database is locked")
    log_store = MagicMock()
    log_store.record_run.side_effect = RuntimeError("database is locked")
    scheduler, _ = _mocked_scheduler(settings_store=settings_store, log_store=log_store)

    summary = scheduler.tick()
    assert summary.errors == 1
    assert scheduler.last_summary is summary


def test_one_users_failure_does_not_stop_others(db, clock, user):
    enable_user(db, user_id=2)
    insert_contact(db, contact_id=2, user_id=2, email="lee@acme.test")
    insert_reply(db, 1, "Not interested, please remove me")
    insert_reply(db, 2, "Not interested, please remove me", user_id=2, contact_id=2)
    scheduler = _scheduler(db, clock, FakeClassifier())

    real = scheduler.log_store.processing_statuses

    def flaky(user_id):
        if user_id == 1:
            raise RuntimeError("boom")
        return real(user_id)

    scheduler.log_store.processing_statuses = flaky
    summary = scheduler.tick()

    assert summary.users == 2
    assert summary.errors == 1
    assert _statuses(db, 2) == [LogStatus.SKIPPED]


def test_next_delay_stays_within_jitter():
    scheduler, _ = _mocked_scheduler()
    scheduler.interval, scheduler.jitter = 600, 120
    for _ in range(50):
        assert 600 <= scheduler.next_delay() <= 720


def test_start_and_stop():
    ticked = threading.Event()
    log_store = MagicMock()
    log_store.record_run.side_effect = lambda *args: ticked.set()
    settings_store = MagicMock()
    settings_store.enabled_users.return_value = []
    scheduler, _ = _mocked_scheduler(log_store=log_store, settings_store=settings_store)

    scheduler.start()
    assert ticked.wait(5)
    assert scheduler.running is True
    scheduler.stop(timeout=5)

    assert scheduler.running is False
    assert isinstance(scheduler.last_summary, TickSummary)


def test_instances_are_independent():
    a, _ = _mocked_scheduler()
    b, _ = _mocked_scheduler()
    a.settings_store.enabled_users.return_value = []
    b.settings_store.enabled_users.return_value = []

    a.tick()
    assert a.last_summary is not None
    assert b.last_summary is None
    assert b.last_run_at is None
