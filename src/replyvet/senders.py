"""Send capability protocol and a non-delivering sender for dry runs."""

from __future__ import annotations

import logging
import uuid
from typing import Protocol, runtime_checkable

from replyvet.models import SendResult

logger = logging.getLogger(__name__)


@runtime_checkable
class SendCapability(Protocol):
    """Delivers one auto-reply. Reports delivery failure via SendResult."""

    def send(self, to: str, subject: str, body: str) -> SendResult:
        ...


class DryRunSender:
    """Records messages instead of delivering them."""

    def __init__(self):
        self.outbox: list[dict] = []

    def send(self, to: str, subject: str, body: str) -> SendResult:
        message_id = f"dry-run-{uuid.uuid4().hex[:12]}"
        self.outbox.append({"to": to, "subject": subject, "body": body, "message_id": message_id})
        logger.info("Dry run: would send %r to %s", subject, to)
        return SendResult(success=True, message_id=message_id)
