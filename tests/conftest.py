"""Shared test fixtures."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from replyvet.database import init_db
from replyvet.errors import ClassificationFailure
from replyvet.models import IntentResult, IntentType, SendResult
from replyvet.stores import to_db_time

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def db():
    """In-memory SQLite database with schema initialized."""
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    init_db(conn)
    yield conn
    conn.close()


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


def intent(kind: str, confidence: float, reasoning: str = "") -> IntentResult:
    return IntentResult(intent_type=IntentType(kind), confidence=confidence, reasoning=reasoning)


class FakeClassifier:
    """ClassifierPort returning canned results, or raising when told to."""

    def __init__(self, pass1: IntentResult | None = None, pass2: IntentResult | None = None,
                 error: Exception | None = None):
        self.pass1 = pass1 or intent("other", 50)
        self.pass2 = pass2 or intent("other", 50)
        self.error = error
        self.calls: list[tuple[str, str]] = []

    def classify_pass1(self, text: str) -> IntentResult:
        self.calls.append(("pass1", text))
        if self.error:
            raise self.error
        return self.pass1

    def classify_pass2(self, text: str, pass1: IntentResult) -> IntentResult:
        self.calls.append(("pass2", text))
        return self.pass2


def failing_classifier(message: str = "model timed out") -> FakeClassifier:
    return FakeClassifier(error=ClassificationFailure(message))


class FakeSender:
    """SendCapability that records messages and succeeds unless told otherwise."""

    def __init__(self, success: bool = True, error: str | None = None, raises: Exception | None = None):
        self.success = success
        self.error = error
        self.raises = raises
        self.sent: list[dict] = []

    def send(self, to: str, subject: str, body: str) -> SendResult:
        if self.raises:
            raise self.raises
        self.sent.append({"to": to, "subject": subject, "body": body})
        if not self.success:
            return SendResult(success=False, error=self.error or "mailbox unavailable")
        return SendResult(success=True, message_id=f"msg-{len(self.sent)}")


def insert_contact(db: sqlite3.Connection, contact_id: int = 1, user_id: int = 1,
                   name: str = "Dana Whitfield", email: str = "dana@northwind.io") -> None:
    db.execute(
        "INSERT INTO contacts (id, user_id, name, email) VALUES (?, ?, ?, ?)",
        (contact_id, user_id, name, email),
    )
    db.commit()


def insert_reply(
    db: sqlite3.Connection,
    reply_id: int,
    text: str,
    user_id: int = 1,
    contact_id: int | None = 1,
    received_at: datetime = T0,
    subject: str = "Cutting onboarding time in half",
) -> None:
    db.execute(
        """INSERT INTO replies
           (id, user_id, contact_id, sent_email_id, original_subject,
            reply_content, reply_received_at)
           VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (reply_id, user_id, contact_id, 100 + reply_id, subject, text, to_db_time(received_at)),
    )
    db.commit()


def enable_user(db: sqlite3.Connection, user_id: int = 1,
                booking_link: str = "https://cal.example.com/sam/30min",
                custom_template: str | None = None) -> None:
    db.execute(
        """INSERT INTO auto_reply_settings (user_id, enabled, booking_link, custom_template)
           VALUES (?, 1, ?, ?)""",
        (user_id, booking_link, custom_template),
    )
    db.commit()
