"""Prompt templates for the two intent-classification passes."""

INTENT_LABELS = (
    "booking, interested, question, not_interested, unsubscribe, out_of_office, other"
)

PASS1_SYSTEM = (
    "You are an email intent classifier for a sales outreach system. "
    "Respond with JSON only."
)

PASS1_PROMPT = """A prospect replied to a cold outreach email. Determine their intent.

Only classify as "booking" if the prospect is CLEARLY saying YES to a meeting:
they explicitly agree to meet, talk, or schedule a call. Interest, curiosity,
questions, or a yes with conditions attached are NOT "booking".

REPLY:
\"\"\"
{reply_text}
\"\"\"

Examples:
- "Yes, let's chat! I'm free next week." -> booking, 95
- "Sounds good, I'm free Tuesday afternoon" -> booking, 94
- "Maybe, what's the pricing?" -> question, 75
- "Interesting, tell me more" -> interested, 70
- "Yes, but I'm traveling until next month" -> interested, 65
- "Not interested" -> not_interested, 90
- "I'm out of office until Monday" -> out_of_office, 95

Respond in JSON only:
{{
  "intent_type": "one of: {labels}",
  "confidence": 0-100 (90+ only when absolutely certain),
  "reasoning": "one sentence"
}}"""

PASS2_SYSTEM = (
    "You are a skeptical senior reviewer auditing an automated email classifier. "
    "You form your own judgement from the reply text. Respond with JSON only."
)

PASS2_PROMPT = """An automated system will send a calendar booking link to this prospect
ONLY if they unambiguously agreed to a meeting. Sending the link to someone who
did not agree is a serious mistake. Read the reply yourself and decide.

REPLY:
\"\"\"
{reply_text}
\"\"\"

A first classifier labelled this reply "{pass1_intent}" ({pass1_confidence:.0f}/100).
That label is unverified and may be wrong. Do not adjust it; ignore it if the
text does not support it and reach your own independent conclusion.

Check before answering:
- Is there an explicit yes to meeting, talking, or scheduling?
- Is the yes conditional (price, timing, approval, "but", "after")?
- Is the prospect asking a question instead of agreeing?
- Could the reply be sarcastic, a refusal, or an auto-responder?

Respond in JSON only:
{{
  "intent_type": "one of: {labels}",
  "confidence": 0-100 (how certain you are of YOUR label),
  "reasoning": "one sentence"
}}"""

DEFAULT_AUTO_REPLY_TEMPLATE = """{greeting}erfect! Let's find a time that works for you.

Here's my calendar - pick any slot that's convenient: {booking_link}

Looking forward to our conversation!"""
