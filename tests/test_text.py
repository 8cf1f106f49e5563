"""Tests for reply body cleanup."""

from replyvet.text import clean_reply_text, html_to_text, strip_quoted_history


def test_gmail_quote_header_ends_reply():
    text = (
        "Sure, Thursday works.\n"
        "\n"
        "On Tue, Mar 3, 2026 at 10:12 AM Sam Ortiz <sam@example.com> wrote:\n"
        "> Would you be up for a quick call?\n"
    )
    assert strip_quoted_history(text) == "Sure, Thursday works."


def test_quoted_lines_are_dropped():
    text = "> Let's schedule a call\nNot for us, thanks."
    assert strip_quoted_history(text) == "Not for us, thanks."


def test_outlook_original_message_block():
    text = (
        "Happy to chat next week.\n"
        "-----Original Message-----\n"
        "From: Sam Ortiz\n"
        "Let's book a time!\n"
    )
    assert strip_quoted_history(text) == "Happy to chat next week."


def test_forward_fields_before_content_are_kept():
    text = "Subject: re pricing\nWhat does it cost?"
    assert "What does it cost?" in strip_quoted_history(text)


def test_sign_off_and_signature_are_removed():
    text = "Sounds good, I'm free Tuesday.\n\nBest regards,\nDana Whitfield\nVP Ops"
    assert strip_quoted_history(text) == "Sounds good, I'm free Tuesday."

    text = "Let's talk.\n--\nDana | Northwind"
    assert strip_quoted_history(text) == "Let's talk."


def test_sign_off_alone_is_kept():
    assert strip_quoted_history("Thanks") == "Thanks"


def test_html_quote_block_is_dropped():
    html = (
        "<html><body><div>Yes, let's chat!<br>Free Friday.</div>"
        '<div class="gmail_quote">On Mon Sam wrote: let\'s schedule a call</div>'
        "</body></html>"
    )
    text = html_to_text(html)
    assert "Yes, let's chat!" in text
    assert "Free Friday." in text
    assert "schedule a call" not in text


def test_clean_reply_text_handles_html_and_crlf():
    assert clean_reply_text("<p>Not interested</p><blockquote>Book a demo</blockquote>") == "Not interested"
    assert clean_reply_text("Yes please\r\n\r\n> old\r\n") == "Yes please"


def test_clean_reply_text_empty():
    assert clean_reply_text(None) == ""
    assert clean_reply_text("") == ""
