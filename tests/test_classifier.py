"""Tests for the two-pass LLM classifier (mocked providers)."""

from unittest.mock import MagicMock, patch

import httpx
import pytest

from replyvet.ai.base import parse_json_response
from replyvet.classifier import LLMIntentClassifier, build_classifier, parse_intent
from replyvet.config import AIConfig
from replyvet.errors import ClassificationFailure
from replyvet.models import IntentType
from tests.conftest import intent


def _provider(*responses):
    provider = MagicMock()
    provider.complete.side_effect = list(responses)
    return provider


def test_pass1_parses_structured_output():
    provider = _provider({"intent_type": "booking", "confidence": 94, "reasoning": "Explicit yes"})
    result = LLMIntentClassifier(provider, "test-model").classify_pass1("Yes, let's chat")

    assert result.intent_type == IntentType.BOOKING
    assert result.confidence == 94
    assert result.reasoning == "Explicit yes"
    kwargs = provider.complete.call_args.kwargs
    assert kwargs["model"] == "test-model"
    assert kwargs["response_format"] == "json"
    assert "Yes, let's chat" in kwargs["prompt"]


def test_camel_case_keys_are_accepted():
    result = parse_intent({"intentType": "Out of Office", "confidence": "95"}, "pass1")
    assert result.intent_type == IntentType.OUT_OF_OFFICE
    assert result.confidence == 95.0


@pytest.mark.parametrize("raw,expected", [(140, 100.0), (-5, 0.0), (0.9, 0.9)])
def test_confidence_is_clamped(raw, expected):
    result = parse_intent({"intent_type": "booking", "confidence": raw}, "pass1")
    assert result.confidence == expected


@pytest.mark.parametrize("raw", [
    {"text": "I think they want a meeting"},            # not JSON
    {"intent_type": "maybe_booking", "confidence": 90},  # outside the closed set
    {"intent_type": "booking"},                          # no confidence
    {"intent_type": "booking", "confidence": "high"},
    {"intent_type": "booking", "confidence": [90]},
])
def test_unusable_output_raises(raw):
    with pytest.raises(ClassificationFailure):
        parse_intent(raw, "pass1")


def test_provider_error_becomes_classification_failure():
    provider = MagicMock()
    provider.complete.side_effect = ConnectionError("Failed to reach Ollama")
    classifier = LLMIntentClassifier(provider, "m")

    with pytest.raises(ClassificationFailure, match="pass1: ConnectionError"):
        classifier.classify_pass1("Let's meet")


def test_timeout_becomes_classification_failure():
    provider = MagicMock()
    provider.complete.side_effect = httpx.ReadTimeout("timed out")
    with pytest.raises(ClassificationFailure):
        LLMIntentClassifier(provider, "m").classify_pass1("Let's meet")


def test_pass2_is_independent_call_with_prior_as_context():
    first = _provider({"intent_type": "booking", "confidence": 95})
    second = _provider({"intent_type": "question", "confidence": 70})
    classifier = LLMIntentClassifier(first, "model-a", second, "model-b")

    p1 = classifier.classify_pass1("Sounds interesting, what's the pricing?")
    p2 = classifier.classify_pass2("Sounds interesting, what's the pricing?", p1)

    assert p2.intent_type == IntentType.QUESTION
    assert first.complete.call_count == 1
    assert second.complete.call_count == 1
    kwargs = second.complete.call_args.kwargs
    assert kwargs["model"] == "model-b"
    assert '"booking" (95/100)' in kwargs["prompt"]
    assert "independent" in kwargs["prompt"]
    assert "skeptical" in kwargs["system"]


def test_pass2_defaults_to_same_provider():
    provider = _provider({"intent_type": "booking", "confidence": 90})
    classifier = LLMIntentClassifier(provider, "m")
    classifier.classify_pass2("Let's chat", intent("booking", 95))
    assert provider.complete.call_count == 1


def test_build_classifier_uses_pass2_model():
    config = AIConfig(provider="ollama", model="mistral-nemo", pass2_model="llama3")
    with patch("replyvet.ai.get_provider") as mock_get:
        mock_get.side_effect = lambda spec, config=None: (MagicMock(), spec.split(":", 1)[1])
        classifier = build_classifier(config)

    specs = [c.args[0] for c in mock_get.call_args_list]
    assert specs == ["ollama:mistral-nemo", "ollama:llama3"]
    assert classifier.model == "mistral-nemo"
    assert classifier.pass2_model == "llama3"


def test_parse_json_response_handles_fenced_blocks():
    text = 'Here you go:\n```json\n{"intent_type": "booking", "confidence": 93}\n```'
    assert parse_json_response(text) == {"intent_type": "booking", "confidence": 93}
    assert parse_json_response("no json here") == {"text": "no json here"}
    assert parse_json_response("[1, 2]") == {"text": "[1, 2]"}
