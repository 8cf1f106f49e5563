"""SQLite-backed collaborators: reply source, settings, and the append-only log."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Iterable, Protocol

from replyvet.models import (
    REVIEW_STATUSES,
    RETRYABLE_STATUSES,
    TERMINAL_STATUSES,
    AutoReplyLogEntry,
    AutoReplySettings,
    Contact,
    LogStatus,
    ProcessingStatus,
    ReplyRecord,
    TickSummary,
)


def to_db_time(value: datetime) -> str:
    """Serialize a datetime as a UTC ISO-8601 string."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def from_db_time(value: str | None) -> datetime | None:
    """Parse a stored timestamp; naive values (CURRENT_TIMESTAMP) are UTC."""
    if not value:
        return None
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _placeholders(values: Iterable) -> str:
    return ",".join("?" for _ in values)


# ---------------------------------------------------------------------------
# Reply source
# ---------------------------------------------------------------------------

class ReplySource(Protocol):
    """Where candidate replies come from."""

    def candidate_replies(
        self,
        user_id: int,
        since: datetime,
        include_ids: Iterable[int] = (),
        limit: int = 100,
    ) -> list[ReplyRecord]:
        ...

    def get_reply(self, reply_id: int) -> ReplyRecord | None:
        ...


class SqliteReplySource:
    """Reads replies and their contacts written upstream by reply detection."""

    _SELECT = """SELECT r.id, r.user_id, r.reply_content, r.reply_received_at,
                        r.original_subject, r.sent_email_id, r.contact_id,
                        c.name AS contact_name, c.email AS contact_email
                 FROM replies r
                 LEFT JOIN contacts c ON r.contact_id = c.id"""

    def __init__(self, db: sqlite3.Connection):
        self.db = db

    def candidate_replies(
        self,
        user_id: int,
        since: datetime,
        include_ids: Iterable[int] = (),
        limit: int = 100,
    ) -> list[ReplyRecord]:
        """Replies received since ``since`` plus any explicitly included ids.

        Newest first, capped at ``limit``.
        """
        include_ids = list(include_ids)
        params: list = [user_id, to_db_time(since)]
        where = "datetime(r.reply_received_at) >= datetime(?)"
        if include_ids:
            where = f"({where} OR r.id IN ({_placeholders(include_ids)}))"
            params.extend(include_ids)
        params.append(limit)

        rows = self.db.execute(
            f"""{self._SELECT}
                WHERE r.user_id = ? AND {where}
                ORDER BY datetime(r.reply_received_at) DESC, r.id DESC
                LIMIT ?""",
            params,
        ).fetchall()
        return [self._to_record(row) for row in rows]

    def get_reply(self, reply_id: int) -> ReplyRecord | None:
        row = self.db.execute(f"{self._SELECT} WHERE r.id = ?", (reply_id,)).fetchone()
        return self._to_record(row) if row else None

    @staticmethod
    def _to_record(row: sqlite3.Row) -> ReplyRecord:
        contact = None
        if row["contact_id"] is not None and (row["contact_email"] or row["contact_name"]):
            contact = Contact(
                id=row["contact_id"],
                name=row["contact_name"] or "",
                email=row["contact_email"] or "",
            )
        return ReplyRecord(
            id=row["id"],
            user_id=row["user_id"],
            text=row["reply_content"] or "",
            received_at=from_db_time(row["reply_received_at"]),
            contact=contact,
            original_subject=row["original_subject"] or "",
            sent_email_id=row["sent_email_id"],
        )


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

class SettingsStore:
    """Per-user auto-reply settings."""

    def __init__(self, db: sqlite3.Connection):
        self.db = db

    def get(self, user_id: int) -> AutoReplySettings:
        row = self.db.execute(
            "SELECT * FROM auto_reply_settings WHERE user_id = ?", (user_id,)
        ).fetchone()
        if row is None:
            return AutoReplySettings(user_id=user_id)
        return self._to_settings(row)

    def update(
        self,
        user_id: int,
        enabled: bool | None = None,
        booking_link: str | None = None,
        custom_template: str | None = None,
    ) -> AutoReplySettings:
        """Upsert settings; None leaves a field unchanged.

        Raises ValueError when enabling without a booking link.
        """
        current = self.get(user_id)
        new = AutoReplySettings(
            user_id=user_id,
            enabled=current.enabled if enabled is None else enabled,
            booking_link=current.booking_link if booking_link is None else (booking_link or None),
            custom_template=(
                current.custom_template if custom_template is None else (custom_template or None)
            ),
        )
        if new.enabled and not new.booking_link:
            raise ValueError("Booking link is required when enabling auto-reply")

        self.db.execute(
            """INSERT INTO auto_reply_settings
               (user_id, enabled, booking_link, custom_template, updated_at)
               VALUES (?, ?, ?, ?, CURRENT_TIMESTAMP)
               ON CONFLICT(user_id) DO UPDATE SET
                   enabled = excluded.enabled,
                   booking_link = excluded.booking_link,
                   custom_template = excluded.custom_template,
                   updated_at = excluded.updated_at""",
            (user_id, new.enabled, new.booking_link, new.custom_template),
        )
        self.db.commit()
        return new

    def enabled_users(self) -> list[AutoReplySettings]:
        """Users with auto-reply on and a booking link configured."""
        rows = self.db.execute(
            """SELECT * FROM auto_reply_settings
               WHERE enabled AND booking_link IS NOT NULL AND booking_link != ''
               ORDER BY user_id"""
        ).fetchall()
        return [self._to_settings(row) for row in rows]

    @staticmethod
    def _to_settings(row: sqlite3.Row) -> AutoReplySettings:
        return AutoReplySettings(
            user_id=row["user_id"],
            enabled=bool(row["enabled"]),
            booking_link=row["booking_link"],
            custom_template=row["custom_template"],
        )


# ---------------------------------------------------------------------------
# Log store
# ---------------------------------------------------------------------------

class LogStore:
    """Append-only persistence for AutoReplyLogEntry rows."""

    def __init__(self, db: sqlite3.Connection):
        self.db = db

    def append(self, entry: AutoReplyLogEntry) -> int:
        """Insert a row and return its id.

        A second terminal row for the same reply violates the partial unique
        index and raises sqlite3.IntegrityError.
        """
        sent_at = entry.sent_at or datetime.now(timezone.utc)
        cursor = self.db.execute(
            """INSERT INTO auto_reply_logs
               (user_id, reply_id, contact_id, original_reply_content,
                intent_confidence, intent_type, auto_reply_content,
                status, error_message, sent_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                entry.user_id,
                entry.reply_id,
                entry.contact_id,
                entry.original_text_snippet,
                entry.confidence,
                entry.intent_type,
                entry.composed_reply,
                LogStatus(entry.status).value,
                entry.error_message,
                to_db_time(sent_at),
            ),
        )
        self.db.commit()
        entry.id = cursor.lastrowid
        return cursor.lastrowid

    def has_status(self, reply_id: int, statuses: Iterable[LogStatus]) -> bool:
        values = [LogStatus(s).value for s in statuses]
        row = self.db.execute(
            f"""SELECT 1 FROM auto_reply_logs
                WHERE reply_id = ? AND status IN ({_placeholders(values)})
                LIMIT 1""",
            [reply_id, *values],
        ).fetchone()
        return row is not None

    def has_terminal(self, reply_id: int) -> bool:
        return self.has_status(reply_id, TERMINAL_STATUSES)

    def logs_for_reply(self, reply_id: int) -> list[AutoReplyLogEntry]:
        rows = self.db.execute(
            """SELECT * FROM auto_reply_logs WHERE reply_id = ?
               ORDER BY sent_at DESC, id DESC""",
            (reply_id,),
        ).fetchall()
        return [self._to_entry(row) for row in rows]

    def latest_entry(self, reply_id: int) -> AutoReplyLogEntry | None:
        row = self.db.execute(
            """SELECT * FROM auto_reply_logs WHERE reply_id = ?
               ORDER BY sent_at DESC, id DESC LIMIT 1""",
            (reply_id,),
        ).fetchone()
        return self._to_entry(row) if row else None

    def get_logs(self, user_id: int, limit: int = 50) -> list[AutoReplyLogEntry]:
        """Most recent rows for a user."""
        rows = self.db.execute(
            """SELECT * FROM auto_reply_logs WHERE user_id = ?
               ORDER BY sent_at DESC, id DESC LIMIT ?""",
            (user_id, limit),
        ).fetchall()
        return [self._to_entry(row) for row in rows]

    def get_pending_review(self, user_id: int, limit: int = 100) -> list[AutoReplyLogEntry]:
        """Rows that need a human: flagged replies and exhausted retries."""
        values = sorted(s.value for s in REVIEW_STATUSES)
        rows = self.db.execute(
            f"""SELECT * FROM auto_reply_logs
                WHERE user_id = ? AND status IN ({_placeholders(values)})
                ORDER BY sent_at DESC, id DESC LIMIT ?""",
            [user_id, *values, limit],
        ).fetchall()
        return [self._to_entry(row) for row in rows]

    def processing_statuses(self, user_id: int) -> dict[int, ProcessingStatus]:
        """Fold every row per reply id into its current ProcessingStatus."""
        rows = self.db.execute(
            """SELECT reply_id, status, sent_at FROM auto_reply_logs
               WHERE user_id = ?
               ORDER BY sent_at ASC, id ASC""",
            (user_id,),
        ).fetchall()

        statuses: dict[int, ProcessingStatus] = {}
        for row in rows:
            status = LogStatus(row["status"])
            previous = statuses.get(row["reply_id"])
            attempts = previous.attempt_count if previous else 0
            if status in RETRYABLE_STATUSES:
                attempts += 1
            statuses[row["reply_id"]] = ProcessingStatus(
                reply_id=row["reply_id"],
                latest_status=status,
                attempt_count=attempts,
                last_attempt_at=from_db_time(row["sent_at"]),
            )
        return statuses

    def exhaustion_candidates(self, user_id: int, max_attempts: int) -> list[AutoReplyLogEntry]:
        """Latest failure row for each reply that used up its retries.

        Replies that already carry any terminal row are excluded.
        """
        retryable = sorted(s.value for s in RETRYABLE_STATUSES)
        terminal = sorted(s.value for s in TERMINAL_STATUSES)
        rows = self.db.execute(
            f"""SELECT l.* FROM auto_reply_logs l
                JOIN (
                    SELECT reply_id, MAX(id) AS last_id
                    FROM auto_reply_logs
                    WHERE user_id = ? AND status IN ({_placeholders(retryable)})
                    GROUP BY reply_id
                    HAVING COUNT(*) >= ?
                ) f ON l.id = f.last_id
                WHERE l.reply_id NOT IN (
                    SELECT reply_id FROM auto_reply_logs
                    WHERE status IN ({_placeholders(terminal)})
                )
                ORDER BY l.reply_id""",
            [user_id, *retryable, max_attempts, *terminal],
        ).fetchall()
        return [self._to_entry(row) for row in rows]

    def status_counts(self, user_id: int) -> dict[str, int]:
        rows = self.db.execute(
            """SELECT status, COUNT(*) AS cnt FROM auto_reply_logs
               WHERE user_id = ? GROUP BY status""",
            (user_id,),
        ).fetchall()
        return {row["status"]: row["cnt"] for row in rows}

    def record_run(self, summary: TickSummary, started_at: datetime, finished_at: datetime) -> int:
        """Persist one scheduler tick's counters."""
        cursor = self.db.execute(
            """INSERT INTO scheduler_runs
               (started_at, finished_at, users, processed, auto_replies_sent,
                flagged_for_review, retried, errors, escalated)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                to_db_time(started_at),
                to_db_time(finished_at),
                summary.users,
                summary.processed,
                summary.auto_replies_sent,
                summary.flagged_for_review,
                summary.retried,
                summary.errors,
                summary.escalated,
            ),
        )
        self.db.commit()
        return cursor.lastrowid

    @staticmethod
    def _to_entry(row: sqlite3.Row) -> AutoReplyLogEntry:
        return AutoReplyLogEntry(
            id=row["id"],
            user_id=row["user_id"],
            reply_id=row["reply_id"],
            contact_id=row["contact_id"],
            original_text_snippet=row["original_reply_content"] or "",
            confidence=row["intent_confidence"] or 0.0,
            intent_type=row["intent_type"] or "",
            composed_reply=row["auto_reply_content"],
            status=LogStatus(row["status"]),
            error_message=row["error_message"],
            sent_at=from_db_time(row["sent_at"]),
        )
