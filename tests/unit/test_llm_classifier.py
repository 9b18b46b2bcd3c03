"""
Unit tests for classification/llm_classifier.py

Tests:
- JSON extraction from fenced / chatty output
- Schema validation
- Sanitizing (clamping, crisis floor)
- LLMClassifier with a fake model client
"""

import json
import pytest

from classification.llm_classifier import (
    LLMClassifier,
    extract_json,
    format_history,
    sanitize_classification,
    validate_classification,
)
from classification.types import (
    Category,
    ClassificationParseError,
    ClassificationValidationError,
    Method,
    ModelUnavailableError,
)


class FakeModelClient:
    """Returns a canned response and records the prompts it was given."""

    def __init__(self, payload):
        self.payload = payload
        self.prompts = []

    async def __call__(self, system_prompt, user_prompt, max_tokens):
        self.prompts.append((system_prompt, user_prompt, max_tokens))
        text = self.payload if isinstance(self.payload, str) else json.dumps(self.payload)
        return {"text": text}


FULL_RESPONSE = {
    "category": "EMPLOYMENT",
    "subcategory": "job_search",
    "confidence": 0.82,
    "reasoning": "Talks about applications",
    "ambiguous_phrase": "not working",
    "disambiguation": "EMPLOYMENT",
    "emotional_intensity": 6,
}


# =============================================================================
# extract_json Tests
# =============================================================================

def test_extract_json_plain():
    """Plain JSON parses"""
    assert extract_json('{"category": "GENERAL"}') == {"category": "GENERAL"}


def test_extract_json_code_fence():
    """Code fences are stripped"""
    assert extract_json('```json\n{"category": "GENERAL"}\n```')["category"] == "GENERAL"


def test_extract_json_surrounding_prose():
    """A JSON object embedded in prose is found"""
    assert extract_json('Sure! {"category": "CRISIS"} hope that helps')["category"] == "CRISIS"


@pytest.mark.parametrize("text", ["", "no json here", "[1, 2, 3]", "{broken"])
def test_extract_json_errors(text):
    """Unparseable output raises ClassificationParseError"""
    with pytest.raises(ClassificationParseError):
        extract_json(text)


# =============================================================================
# validate / sanitize Tests
# =============================================================================

def test_validate_accepts_full_response():
    """A complete response validates"""
    validate_classification(dict(FULL_RESPONSE))


@pytest.mark.parametrize("field,value", [
    ("category", "SPORTS"),
    ("confidence", 1.5),
    ("confidence", "high"),
    ("confidence", True),
    ("reasoning", None),
    ("emotional_intensity", 0),
])
def test_validate_rejects(field, value):
    """Schema violations raise ClassificationValidationError"""
    data = dict(FULL_RESPONSE)
    data[field] = value
    with pytest.raises(ClassificationValidationError):
        validate_classification(data)


def test_validate_simple_skips_intensity():
    """The simple schema does not require intensity"""
    validate_classification({"category": "GENERAL", "confidence": 0.7, "reasoning": "hi"},
                            require_intensity=False)


def test_sanitize_crisis_floor():
    """A low-confidence CRISIS answer is floored to 0.9 with high intensity"""
    result = sanitize_classification(
        {"category": "CRISIS", "confidence": 0.6, "reasoning": "x", "emotional_intensity": 3},
        Method.CLAUDE_FULL,
    )
    assert result.category is Category.CRISIS
    assert result.confidence == 0.9
    assert result.emotional_intensity >= 8


def test_format_history_limits():
    """format_history keeps only the last `limit` entries"""
    history = [{"role": "user", "content": f"m{i}"} for i in range(10)]
    text = format_history(history, limit=2)
    assert text == "user: m8\nuser: m9"
    assert format_history(None) == ""


# =============================================================================
# LLMClassifier Tests
# =============================================================================

@pytest.mark.asyncio
async def test_classify_without_client_raises():
    """No injected client raises ModelUnavailableError"""
    with pytest.raises(ModelUnavailableError):
        await LLMClassifier().classify("anything")


@pytest.mark.asyncio
async def test_classify_full():
    """Full classification returns a CLAUDE_FULL result"""
    client = FakeModelClient(FULL_RESPONSE)
    classifier = LLMClassifier(client)

    result = await classifier.classify("my search is not working",
                                       history=[{"role": "user", "content": "I applied to 40 jobs"}])

    assert result.category is Category.EMPLOYMENT
    assert result.method is Method.CLAUDE_FULL
    assert result.ambiguous_phrase == "not working"
    assert classifier.calls == 1
    assert "I applied to 40 jobs" in client.prompts[0][1]


@pytest.mark.asyncio
async def test_classify_simple_defaults_intensity():
    """Simple classification fills in intensity"""
    client = FakeModelClient({"category": "RELATIONSHIP", "confidence": 0.7, "reasoning": "partner"})

    result = await LLMClassifier(client).classify_simple("my partner and I keep fighting")

    assert result.method is Method.CLAUDE_SIMPLE
    assert result.emotional_intensity == 5


@pytest.mark.asyncio
async def test_classify_propagates_parse_error():
    """Malformed model output propagates"""
    with pytest.raises(ClassificationParseError):
        await LLMClassifier(FakeModelClient("I'm not sure")).classify("hmm")


@pytest.mark.asyncio
async def test_classify_empty_response():
    """An empty response is a parse error"""
    async def empty(system_prompt, user_prompt, max_tokens):
        return {"text": ""}

    with pytest.raises(ClassificationParseError):
        await LLMClassifier(empty).classify("hmm")
