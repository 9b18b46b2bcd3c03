"""
classification/llm_classifier.py

Model-backed classifier for the ambiguous path. Only reached when both regex
layers were inconclusive.

Two prompts:
- full: category, subcategory, confidence, intensity, ambiguous phrase and
  disambiguation, with recent conversation as context
- simple: category + confidence only, shorter and cheaper

Every failure (client unavailable, timeout inside the client, malformed JSON,
schema violation) propagates. Recovery belongs to the degradation chain.
"""

import json
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional

from classification.types import (
    Category,
    Classification,
    ClassificationParseError,
    ClassificationValidationError,
    Method,
    ModelUnavailableError,
)
from config.app_config import MODEL_MAX_TOKENS, MODEL_SIMPLE_MAX_TOKENS, SESSION_CONTEXT_MESSAGES
from utils.logging_utils import get_logger, log_duration

logger = get_logger("llm_classifier")

ModelClient = Callable[[str, str, int], Awaitable[Dict[str, Any]]]

VALID_CATEGORIES = tuple(c.value for c in Category)

# Static across calls so providers that support prompt caching can reuse it.
SYSTEM_PROMPT = """You classify messages sent to a mental health support chat.

Categories:
- CRISIS: suicidal thoughts, self-harm, wanting to die, immediate danger
- EMPLOYMENT: job loss, workplace stress, career problems, money trouble from work
- RELATIONSHIP: partners, family, friends, breakups, infidelity, parenting
- MENTAL_HEALTH: anxiety, depression, trauma, grief, stress, therapy questions
- IDENTITY: race, culture, discrimination, masculinity, belonging
- TECH_ISSUE: problems with this app (errors, crashes, login)
- GENERAL: greetings, small talk, anything else

Disambiguation rules:
- "not working" about a job or search for work is EMPLOYMENT; about the app is TECH_ISSUE; about therapy or medication is MENTAL_HEALTH.
- "lost" can mean a job, a person, or feeling directionless. Use the context.
- When unsure between CRISIS and another category, choose CRISIS.
- CRISIS always has confidence of at least 0.9.

Respond with JSON only, no prose:
{"category": "...", "subcategory": "...", "confidence": 0.0-1.0, "reasoning": "...",
 "ambiguous_phrase": "... or null", "disambiguation": "... or null", "emotional_intensity": 1-10}"""

SIMPLE_SYSTEM_PROMPT = """Classify the message into exactly one category:
CRISIS, EMPLOYMENT, RELATIONSHIP, MENTAL_HEALTH, IDENTITY, TECH_ISSUE, GENERAL.
Respond with JSON only: {"category": "...", "confidence": 0.0-1.0, "reasoning": "..."}"""

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def extract_json(text: str) -> Dict[str, Any]:
    """Parse a JSON object out of model output, tolerating code fences and chatter."""
    cleaned = _FENCE.sub("", (text or "").strip()).strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        match = _JSON_OBJECT.search(cleaned)
        if not match:
            raise ClassificationParseError(f"No JSON object in model output: {cleaned[:80]!r}") from None
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise ClassificationParseError(f"Malformed JSON from model: {e}") from e
    if not isinstance(data, dict):
        raise ClassificationParseError("Model output is not a JSON object")
    return data


def validate_classification(data: Dict[str, Any], require_intensity: bool = True) -> None:
    """Raise ClassificationValidationError if `data` violates the schema."""
    category = str(data.get("category", "")).upper()
    if category == "TECH":
        category = "TECH_ISSUE"
    if category not in VALID_CATEGORIES:
        raise ClassificationValidationError(f"Invalid category: {data.get('category')!r}")

    confidence = data.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)) or not 0 <= confidence <= 1:
        raise ClassificationValidationError(f"Invalid confidence: {confidence!r}")

    if not isinstance(data.get("reasoning"), str):
        raise ClassificationValidationError("Missing reasoning")

    if require_intensity:
        intensity = data.get("emotional_intensity")
        if isinstance(intensity, bool) or not isinstance(intensity, (int, float)) or not 1 <= intensity <= 10:
            raise ClassificationValidationError(f"Invalid emotional_intensity: {intensity!r}")


def sanitize_classification(data: Dict[str, Any], method: Method) -> Classification:
    """Clamp numeric fields and build a Classification from validated data."""
    category = Category.parse(data.get("category"))
    confidence = min(1.0, max(0.0, float(data.get("confidence", 0.5))))
    intensity = int(round(min(10.0, max(1.0, float(data.get("emotional_intensity") or 5)))))
    subcategory = data.get("subcategory") or None
    reasoning = data.get("reasoning")

    if category is Category.CRISIS:
        return Classification.crisis(
            method,
            confidence=confidence,
            subcategory=subcategory or "suicide",
            emotional_intensity=max(intensity, 8),
            reasoning=reasoning,
        )
    return Classification(
        category=category,
        subcategory=subcategory,
        confidence=confidence,
        emotional_intensity=intensity,
        method=method,
        reasoning=reasoning,
        ambiguous_phrase=data.get("ambiguous_phrase") or None,
        disambiguation=data.get("disambiguation") or None,
    )


def format_history(history: Optional[List[Dict[str, Any]]], limit: int = SESSION_CONTEXT_MESSAGES) -> str:
    if not history:
        return ""
    lines = []
    for entry in history[-limit:]:
        role = entry.get("role", "user")
        content = str(entry.get("content", "")).strip()
        if content:
            lines.append(f"{role}: {content}")
    return "\n".join(lines)


class LLMClassifier:
    """Classifies ambiguous messages with the configured model client."""

    def __init__(self, model_client: Optional[ModelClient] = None,
                 max_tokens: int = MODEL_MAX_TOKENS,
                 simple_max_tokens: int = MODEL_SIMPLE_MAX_TOKENS,
                 context_messages: int = SESSION_CONTEXT_MESSAGES):
        self.model_client = model_client
        self.max_tokens = max_tokens
        self.simple_max_tokens = simple_max_tokens
        self.context_messages = context_messages
        self.calls = 0

    async def _ask(self, system_prompt: str, user_prompt: str, max_tokens: int) -> str:
        if self.model_client is None:
            raise ModelUnavailableError("No model client injected")
        self.calls += 1
        result = await self.model_client(system_prompt, user_prompt, max_tokens)
        text = result.get("text") if isinstance(result, dict) else result
        if not text:
            raise ClassificationParseError("Empty model response")
        return text

    @log_duration("LLM classify")
    async def classify(self, text: str, history: Optional[List[Dict[str, Any]]] = None) -> Classification:
        context = format_history(history, self.context_messages)
        user_prompt = f"Recent conversation:\n{context}\n\nMessage to classify:\n{text}" if context else \
            f"Message to classify:\n{text}"
        raw = await self._ask(SYSTEM_PROMPT, user_prompt, self.max_tokens)
        data = extract_json(raw)
        validate_classification(data)
        result = sanitize_classification(data, Method.CLAUDE_FULL)
        logger.debug(f"[LLMClassifier] {result.category.value}/{result.subcategory} conf={result.confidence:.2f}")
        return result

    @log_duration("LLM classify (simple)")
    async def classify_simple(self, text: str) -> Classification:
        raw = await self._ask(SIMPLE_SYSTEM_PROMPT, text, self.simple_max_tokens)
        data = extract_json(raw)
        validate_classification(data, require_intensity=False)
        data.setdefault("emotional_intensity", 10 if str(data["category"]).upper() == "CRISIS" else 5)
        return sanitize_classification(data, Method.CLAUDE_SIMPLE)
