"""Ollama AI provider: HTTP client for local LLM inference."""

from __future__ import annotations

import logging
import time

import httpx

from replyvet.ai.base import parse_json_response

logger = logging.getLogger(__name__)


class OllamaProvider:
    """Ollama HTTP API client for local or cloud inference.

    ``timeout`` is the per-request deadline in seconds. Connection failures
    and timeouts are retried ``max_retries`` times in total before raising
    ConnectionError; keep it low so one reply cannot stall a scheduler tick.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        api_key: str = "",
        timeout: float = 30.0,
        max_retries: int = 1,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.max_retries = max(1, max_retries)

    def complete(
        self,
        prompt: str,
        model: str,
        system: str = "",
        response_format: str | None = None,
    ) -> dict:
        """Send a prompt to Ollama and return parsed response."""
        payload: dict = {
            "model": model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": 0.1},
        }

        if system:
            payload["system"] = system

        if response_format == "json":
            payload["format"] = "json"

        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        for attempt in range(self.max_retries):
            try:
                with httpx.Client(timeout=self.timeout) as client:
                    resp = client.post(
                        f"{self.base_url}/api/generate",
                        json=payload,
                        headers=headers,
                    )
                    resp.raise_for_status()

                data = resp.json()
                return parse_json_response(data.get("response", ""))

            except (httpx.ConnectError, httpx.TimeoutException) as e:
                if attempt < self.max_retries - 1:
                    logger.debug("Ollama call failed (attempt %d): %s", attempt + 1, e)
                    time.sleep(2 ** attempt)
                    continue
                raise ConnectionError(
                    f"Failed to reach Ollama at {self.base_url}: {e}"
                ) from e

        # max_retries >= 1 so the loop always returns or raises
        raise ConnectionError(f"Failed to reach Ollama at {self.base_url}")
