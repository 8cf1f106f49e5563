"""Two-pass AI intent classification behind a single port."""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from replyvet.ai.base import AIProvider
from replyvet.ai.prompts import (
    INTENT_LABELS,
    PASS1_PROMPT,
    PASS1_SYSTEM,
    PASS2_PROMPT,
    PASS2_SYSTEM,
)
from replyvet.errors import ClassificationFailure
from replyvet.models import IntentResult, IntentType

logger = logging.getLogger(__name__)


@runtime_checkable
class ClassifierPort(Protocol):
    """The two independent classification calls the detector depends on."""

    def classify_pass1(self, text: str) -> IntentResult:
        ...

    def classify_pass2(self, text: str, pass1: IntentResult) -> IntentResult:
        ...


class IntentClassification(BaseModel):
    """Structured output expected from either pass."""

    intent_type: IntentType = Field(
        validation_alias=AliasChoices("intent_type", "intentType", "intent"),
    )
    confidence: float = Field(ge=0.0, le=100.0)
    reasoning: str = ""

    @field_validator("intent_type", mode="before")
    @classmethod
    def _normalize_intent(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower().replace(" ", "_").replace("-", "_")
        return value

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> Any:
        if isinstance(value, bool) or value is None:
            raise ValueError("confidence must be a number")
        try:
            value = float(value)
        except (TypeError, ValueError):
            raise ValueError(f"confidence must be a number, got {value!r}") from None
        # 0-1 scale answers are taken literally, i.e. as near-zero confidence
        return min(100.0, max(0.0, value))

    @field_validator("reasoning", mode="before")
    @classmethod
    def _coerce_reasoning(cls, value: Any) -> Any:
        return "" if value is None else str(value)

    def to_result(self) -> IntentResult:
        return IntentResult(
            intent_type=self.intent_type,
            confidence=self.confidence,
            reasoning=self.reasoning,
        )


def parse_intent(raw: dict, pass_name: str) -> IntentResult:
    """Validate a provider response, raising ClassificationFailure if unusable."""
    if not isinstance(raw, dict):
        raise ClassificationFailure(f"{pass_name}: provider returned {type(raw).__name__}, not an object")
    try:
        return IntentClassification.model_validate(raw).to_result()
    except ValidationError as e:
        snippet = str(raw.get("text", raw))[:200]
        raise ClassificationFailure(
            f"{pass_name}: unparsable classifier output ({e.error_count()} errors): {snippet}"
        ) from e


class LLMIntentClassifier:
    """ClassifierPort over two AIProvider calls.

    The passes may use different providers or models. Neither call sees
    the other's conversation; pass 2 only receives pass 1's label as an
    unverified prior in its prompt.
    """

    def __init__(
        self,
        provider: AIProvider,
        model: str,
        pass2_provider: AIProvider | None = None,
        pass2_model: str | None = None,
    ):
        self.provider = provider
        self.model = model
        self.pass2_provider = pass2_provider or provider
        self.pass2_model = pass2_model or model

    def classify_pass1(self, text: str) -> IntentResult:
        prompt = PASS1_PROMPT.format(reply_text=text, labels=INTENT_LABELS)
        raw = self._call(self.provider, self.model, prompt, PASS1_SYSTEM, "pass1")
        return parse_intent(raw, "pass1")

    def classify_pass2(self, text: str, pass1: IntentResult) -> IntentResult:
        prompt = PASS2_PROMPT.format(
            reply_text=text,
            labels=INTENT_LABELS,
            pass1_intent=pass1.intent_type.value,
            pass1_confidence=pass1.confidence,
        )
        raw = self._call(self.pass2_provider, self.pass2_model, prompt, PASS2_SYSTEM, "pass2")
        return parse_intent(raw, "pass2")

    @staticmethod
    def _call(provider: AIProvider, model: str, prompt: str, system: str, pass_name: str) -> dict:
        try:
            return provider.complete(
                prompt=prompt,
                model=model,
                system=system,
                response_format="json",
            )
        except Exception as e:
            logger.warning("%s call to %s failed: %s", pass_name, model, e)
            raise ClassificationFailure(f"{pass_name}: {type(e).__name__}: {e}") from e


def build_classifier(ai_config) -> LLMIntentClassifier:
    """Create the classifier from an AIConfig."""
    from replyvet.ai import get_provider

    provider_config = ai_config.to_provider_dict()
    provider, model = get_provider(ai_config.model_spec(1), config=provider_config)
    pass2_provider, pass2_model = get_provider(ai_config.model_spec(2), config=provider_config)
    return LLMIntentClassifier(provider, model, pass2_provider, pass2_model)
