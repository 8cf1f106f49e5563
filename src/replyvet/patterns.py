"""Lexical validator: deterministic phrase signals from reply text.

Runs before any AI call. Negation is authoritative: a reply that says
"not interested" never reaches the auto-reply path, whatever the models say.
"""

from __future__ import annotations

import re

from replyvet.models import PatternValidationResult

# Explicit refusals and opt-outs
STRONG_NO_PHRASES: list[str] = [
    "not interested", "no thanks", "no thank you", "please remove",
    "remove me", "take me off", "unsubscribe", "stop emailing",
    "stop contacting", "don't contact", "do not contact", "don't email",
    "do not email", "not a good fit", "not for us", "we're all set",
    "we are all set", "wrong person", "absolutely not", "no way",
]

# Softer "not now" language
NEGATION_PHRASES: list[str] = [
    "not now", "not right now", "not at this time", "not the right time",
    "not looking", "already have", "maybe later", "no longer",
    "i'll pass", "we'll pass", "pass for now", "not a priority",
    "no need", "no budget", "don't need", "do not need",
    "can't meet", "cannot meet", "won't be able", "not going to work",
]

STRONG_YES_PHRASES: list[str] = [
    "let's meet", "let's chat", "let's talk", "let's schedule", "let's set up",
    "let's do it", "let's connect", "let's book", "yes, let's", "sure, let's",
    "yes please", "sounds good", "sounds great", "sounds perfect",
    "book me", "schedule a call", "set up a meeting", "set up a call",
    "count me in", "sign me up", "i'm in", "absolutely",
    "definitely interested", "happy to chat", "happy to meet",
    "would love to chat", "would love to meet", "i'd love to chat",
    "i'd love to meet", "love to discuss", "i'm free", "i am free",
    "works for me", "send me your calendar", "send me a link",
    "send over a time", "when are you free", "when can we meet",
    "when are you available", "looking forward to connecting",
]

QUESTION_PHRASES: list[str] = [
    "?", "how does", "how do", "what is", "what's", "can you explain",
    "how much", "what are the", "tell me more", "could you clarify",
    "what do you mean", "do you have", "is there",
]

# Conditions attached to a yes: price, timing, approvals
CONSTRAINT_PHRASES: list[str] = [
    "but", "however", "only if", "as long as", "depends on", "provided that",
    "assuming", "unless", "until", "after the", "once we", "pricing", "price",
    "cost", "how much", "budget", "contract", "next month", "next quarter",
    "next year", "traveling", "travelling", "on vacation", "busy until",
    "need to check", "check with", "run it by", "my boss", "my manager",
    "approval",
]

RESCHEDULE_PHRASES: list[str] = [
    "reschedule", "another time", "different time", "push back", "postpone",
    "move it", "later date", "reconnect", "circle back", "follow up later",
    "touch base later", "instead",
]

# Evaluation order; negation categories first
CATEGORIES: list[tuple[str, list[str]]] = [
    ("strong_no", STRONG_NO_PHRASES),
    ("negation", NEGATION_PHRASES),
    ("strong_yes", STRONG_YES_PHRASES),
    ("question", QUESTION_PHRASES),
    ("constraint", CONSTRAINT_PHRASES),
    ("reschedule", RESCHEDULE_PHRASES),
]


# Phrases that must not match when immediately negated
_NOT_FOLLOWED_BY = {
    "absolutely": r"(?!\s+not\b)",
}


def _compile(phrase: str) -> re.Pattern:
    """Match a phrase on word boundaries where its edges are word characters."""
    body = re.escape(phrase)
    if phrase[0].isalnum():
        body = r"(?<![\w'])" + body
    if phrase[-1].isalnum():
        body = body + r"(?![\w'])"
    body += _NOT_FOLLOWED_BY.get(phrase, "")
    return re.compile(body)


_COMPILED: list[tuple[str, list[tuple[str, re.Pattern]]]] = [
    (category, [(p, _compile(p)) for p in phrases])
    for category, phrases in CATEGORIES
]


def normalize(text: str) -> str:
    """Lower-case and fold typographic quotes so "let’s" matches "let's"."""
    text = text.lower()
    return (
        text.replace("’", "'")
        .replace("‘", "'")
        .replace("“", '"')
        .replace("”", '"')
    )


def match_categories(text: str) -> dict[str, list[str]]:
    """Return every matched phrase per category, in list order."""
    lowered = normalize(text)
    matches: dict[str, list[str]] = {}
    for category, compiled in _COMPILED:
        found = [phrase for phrase, pattern in compiled if pattern.search(lowered)]
        if found:
            matches[category] = found
    return matches


def validate_patterns(text: str) -> PatternValidationResult:
    """Scan reply text and return the five lexical signals.

    Total and deterministic: empty input yields all-False.
    """
    if not text:
        return PatternValidationResult()

    matches = match_categories(text)

    matched: list[str] = []
    for category, _ in CATEGORIES:
        for phrase in matches.get(category, []):
            matched.append(f"{category}:{phrase}")

    has_reschedule = "reschedule" in matches
    return PatternValidationResult(
        has_booking_language="strong_yes" in matches,
        has_negation_language="strong_no" in matches or "negation" in matches,
        has_question="question" in matches,
        has_reschedule_request=has_reschedule,
        # A reschedule request is a condition on the yes
        has_constraints="constraint" in matches or has_reschedule,
        patterns=tuple(matched),
    )
