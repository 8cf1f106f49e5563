"""Tests for the Gmail send capability (mocked API)."""

import base64
import email
from unittest.mock import MagicMock

from replyvet.gmail.sender import GmailSender, build_raw_message


def _service(response=None, error=None):
    service = MagicMock()
    send = service.users.return_value.messages.return_value.send
    if error is not None:
        send.return_value.execute.side_effect = error
    else:
        send.return_value.execute.return_value = response or {"id": "18c2f0a1"}
    return service, send


def test_build_raw_message_is_decodable():
    raw = build_raw_message("dana@northwind.io", "Re: Intro", "Pick a slot", sender="sam@example.com")
    message = email.message_from_bytes(base64.urlsafe_b64decode(raw))
    assert message["To"] == "dana@northwind.io"
    assert message["From"] == "sam@example.com"
    assert message["Subject"] == "Re: Intro"
    assert "Pick a slot" in message.get_payload()


def test_send_success():
    service, send = _service()
    result = GmailSender(service).send("dana@northwind.io", "Re: Intro", "Pick a slot")

    assert result.success is True
    assert result.message_id == "18c2f0a1"
    kwargs = send.call_args.kwargs
    assert kwargs["userId"] == "me"
    assert "raw" in kwargs["body"]


def test_send_failure_is_reported_not_raised():
    service, _ = _service(error=RuntimeError("quota exceeded"))
    result = GmailSender(service).send("dana@northwind.io", "Re: Intro", "Pick a slot")

    assert result.success is False
    assert "quota exceeded" in result.error
