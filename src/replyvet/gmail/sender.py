"""Gmail API send capability."""

from __future__ import annotations

import base64
import logging
from email.message import EmailMessage

from replyvet.models import SendResult

logger = logging.getLogger(__name__)


def build_raw_message(to: str, subject: str, body: str, sender: str | None = None) -> str:
    """Return a base64url-encoded RFC 2822 message for users.messages.send."""
    message = EmailMessage()
    message["To"] = to
    message["Subject"] = subject
    if sender:
        message["From"] = sender
    message.set_content(body)
    return base64.urlsafe_b64encode(message.as_bytes()).decode("ascii")


class GmailSender:
    """Sends auto-replies through the authenticated user's Gmail account."""

    def __init__(self, service, from_address: str | None = None):
        self.service = service
        self.from_address = from_address

    def send(self, to: str, subject: str, body: str) -> SendResult:
        raw = build_raw_message(to, subject, body, sender=self.from_address)
        try:
            response = (
                self.service.users()
                .messages()
                .send(userId="me", body={"raw": raw})
                .execute()
            )
        except Exception as e:
            # HttpError, transport and auth failures all mean "not delivered"
            logger.warning("Gmail send to %s failed: %s", to, e)
            return SendResult(success=False, error=f"{type(e).__name__}: {e}")

        return SendResult(success=True, message_id=response.get("id"))
