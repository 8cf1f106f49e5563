"""Reply body cleanup: HTML to text, quoted history and signature removal."""

from __future__ import annotations

import re

_QUOTE_HEADER = re.compile(r"^On\s+.+wrote:\s*$")
_OUTLOOK_HEADER = re.compile(r"^-{2,}\s*Original Message\s*-{2,}$", re.IGNORECASE)
_FORWARD_FIELDS = re.compile(r"^(From|Sent|To|Subject):\s", re.IGNORECASE)
_SIGN_OFF = re.compile(
    r"^(Best regards|Kind regards|Regards|Thanks|Thank you|Cheers|Sincerely|"
    r"Best|Warm regards|All the best|Sent from my iPhone|Sent from my iPad|"
    r"Get Outlook for),?\s*$",
    re.IGNORECASE,
)


def html_to_text(body_html: str) -> str:
    """Flatten an HTML body to plain text, dropping the quoted gmail block."""
    from bs4 import BeautifulSoup

    soup = BeautifulSoup(body_html, "lxml")
    for tag in soup.find_all(["script", "style"]):
        tag.decompose()
    for tag in soup.select("div.gmail_quote, blockquote"):
        tag.decompose()
    for br in soup.find_all("br"):
        br.replace_with("\n")
    return soup.get_text("\n")


def strip_quoted_history(text: str) -> str:
    """Keep only what the prospect wrote above the quoted thread and sign-off.

    The quoted outbound email usually contains our own call to action
    ("let's set up a call"), which must never count as the prospect's words.
    """
    clean_lines = []

    for line in text.split("\n"):
        stripped = line.strip()

        if _QUOTE_HEADER.match(stripped) or _OUTLOOK_HEADER.match(stripped):
            break

        if stripped.startswith(">"):
            continue

        if "gmail_quote" in stripped:
            break

        if stripped in ("--", "-- ", "—"):
            break

        # A From:/Sent: block only counts once we have real content above it
        if _FORWARD_FIELDS.match(stripped) and clean_lines:
            break

        if _SIGN_OFF.match(stripped) and clean_lines:
            break

        clean_lines.append(line)

    return "\n".join(clean_lines).strip()


def clean_reply_text(raw: str | None) -> str:
    """Return the prospect-authored portion of a reply, HTML or plain."""
    if not raw:
        return ""
    if re.search(r"<(html|body|div|p|br)\b", raw, re.IGNORECASE):
        raw = html_to_text(raw)
    cleaned = strip_quoted_history(raw.replace("\r\n", "\n"))
    # Collapse runs of blank lines left behind by HTML flattening
    return re.sub(r"\n{3,}", "\n\n", cleaned)
