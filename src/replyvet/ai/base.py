"""AI provider protocol and shared response parsing."""

from __future__ import annotations

import json
from typing import Protocol, runtime_checkable


@runtime_checkable
class AIProvider(Protocol):
    """Protocol for AI model providers."""

    def complete(
        self,
        prompt: str,
        model: str,
        system: str = "",
        response_format: str | None = None,
    ) -> dict:
        """Send a prompt and get a structured response.

        Args:
            prompt: the user prompt
            model: model name/identifier
            system: optional system prompt
            response_format: if "json", request JSON output

        Returns:
            Parsed dict from JSON response, or {"text": raw_text} if not JSON.
        """
        ...


def parse_json_response(response_text: str) -> dict:
    """Parse a model reply as JSON, falling back to fenced code blocks.

    Returns {"text": response_text} when nothing parses; callers decide
    whether that is acceptable.
    """
    try:
        parsed = json.loads(response_text)
    except json.JSONDecodeError:
        parsed = None
        for fence in ("```json", "```"):
            if fence not in response_text:
                continue
            start = response_text.index(fence) + len(fence)
            end = response_text.find("```", start)
            if end == -1:
                continue
            try:
                parsed = json.loads(response_text[start:end].strip())
                break
            except json.JSONDecodeError:
                continue

    if isinstance(parsed, dict):
        return parsed
    return {"text": response_text}
