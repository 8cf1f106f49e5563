"""Auto-reply message composition."""

from __future__ import annotations

from replyvet.ai.prompts import DEFAULT_AUTO_REPLY_TEMPLATE

DEFAULT_SUBJECT = "Your inquiry"


def first_name(contact_name: str | None) -> str:
    if not contact_name:
        return ""
    parts = contact_name.strip().split()
    return parts[0] if parts else ""


def compose_auto_reply(
    contact_name: str | None,
    booking_link: str,
    custom_template: str | None = None,
) -> str:
    """Render the booking reply for a contact.

    Custom templates may use {{name}}, {{first_name}} and {{booking_link}};
    every occurrence is substituted.
    """
    name = first_name(contact_name)

    if custom_template:
        return (
            custom_template
            .replace("{{first_name}}", name)
            .replace("{{name}}", name)
            .replace("{{booking_link}}", booking_link)
        )

    greeting = f"{name}, p" if name else "P"
    return DEFAULT_AUTO_REPLY_TEMPLATE.format(greeting=greeting, booking_link=booking_link)


def reply_subject(original_subject: str | None) -> str:
    subject = (original_subject or "").strip() or DEFAULT_SUBJECT
    if subject.lower().startswith("re:"):
        return subject
    return f"Re: {subject}"
