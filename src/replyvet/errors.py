"""Failure taxonomy for reply processing.

ReplyProcessor is the only place these are turned into log rows:
ClassificationFailure -> ``error`` (retried), SendFailure -> ``send_failed``
(retried), ValidationFailure -> ``skipped`` (never retried).
"""

from __future__ import annotations


class ReplyVetError(Exception):
    """Base class for replyvet failures."""

    retryable = False

    def __init__(self, message: str, reply_id: int | None = None):
        super().__init__(message)
        self.reply_id = reply_id


class ClassificationFailure(ReplyVetError):
    """An AI pass threw, timed out, or returned output we could not parse."""

    retryable = True


class SendFailure(ReplyVetError):
    """The send capability could not deliver an auto-reply."""

    retryable = True


class ValidationFailure(ReplyVetError):
    """Input is malformed (missing contact, empty text, no booking link)."""
