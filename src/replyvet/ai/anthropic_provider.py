"""Anthropic AI provider (Claude Messages API)."""

from __future__ import annotations

from replyvet.ai.base import parse_json_response


class AnthropicProvider:
    """Anthropic API client for Claude models."""

    def __init__(self, timeout: float = 30.0, max_retries: int = 1):
        self.timeout = timeout
        self.max_retries = max_retries
        self._client = None

    def _get_client(self):
        if self._client is None:
            import anthropic
            # SDK retries count extra attempts; ours counts total attempts
            self._client = anthropic.Anthropic(
                timeout=self.timeout,
                max_retries=max(0, self.max_retries - 1),
            )
        return self._client

    def complete(
        self,
        prompt: str,
        model: str,
        system: str = "",
        response_format: str | None = None,
    ) -> dict:
        """Send a prompt to Claude and return parsed response."""
        client = self._get_client()

        kwargs: dict = {
            "model": model,
            "max_tokens": 400,
            "temperature": 0.1,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            kwargs["system"] = system

        response = client.messages.create(**kwargs)

        response_text = ""
        for block in response.content:
            if hasattr(block, "text"):
                response_text += block.text

        return parse_json_response(response_text)
