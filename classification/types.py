"""
classification/types.py

Shared types for every classifier in the pipeline.

`Classification` is the one result shape all strategies return. It is keyed on
`category`; business rules that depend on the category are enforced at
construction time, most importantly that a CRISIS result always carries
confidence >= 0.9.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

CRISIS_MIN_CONFIDENCE = 0.9


class Category(str, Enum):
    """Top-level support categories."""
    CRISIS = "CRISIS"
    EMPLOYMENT = "EMPLOYMENT"
    RELATIONSHIP = "RELATIONSHIP"
    MENTAL_HEALTH = "MENTAL_HEALTH"
    IDENTITY = "IDENTITY"
    TECH_ISSUE = "TECH_ISSUE"
    GENERAL = "GENERAL"

    @classmethod
    def parse(cls, value: Any) -> "Category":
        """Accept enum members, exact names, and the short TECH alias models like to emit."""
        if isinstance(value, cls):
            return value
        name = str(value or "").strip().upper()
        if name == "TECH":
            name = "TECH_ISSUE"
        try:
            return cls(name)
        except ValueError:
            raise ClassificationValidationError(f"Invalid category: {value!r}") from None


class Method(str, Enum):
    """How a classification was produced."""
    REGEX = "regex"
    CLAUDE_FULL = "claude_full"
    CLAUDE_SIMPLE = "claude_simple"
    HYBRID = "hybrid"
    RULE_BASED = "rule_based"
    ABSOLUTE_FALLBACK = "absolute_fallback"
    ESCALATION_PROTOCOL = "escalation_protocol"


# ===== Errors =====

class ClassificationError(Exception):
    """Base class for recoverable classification failures."""


class ModelUnavailableError(ClassificationError):
    """No model client configured, or the provider could not be reached."""


class ClassificationParseError(ClassificationError):
    """Model output was not parseable JSON."""


class ClassificationValidationError(ClassificationError):
    """Parsed output violates the classification schema."""


# ===== Value objects =====

@dataclass(frozen=True)
class Message:
    """Inbound user message. Never mutated by any detector."""
    text: str
    user_id: str
    session_id: str
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class Classification:
    category: Category
    confidence: float
    emotional_intensity: int
    method: Method
    subcategory: Optional[str] = None
    reasoning: Optional[str] = None
    ambiguous_phrase: Optional[str] = None
    disambiguation: Optional[str] = None
    strategy_used: Optional[str] = None
    fallback_level: Optional[int] = None

    def __post_init__(self):
        if not isinstance(self.category, Category):
            object.__setattr__(self, "category", Category.parse(self.category))
        if not isinstance(self.method, Method):
            object.__setattr__(self, "method", Method(self.method))
        if not 0.0 <= float(self.confidence) <= 1.0:
            raise ClassificationValidationError(f"confidence out of range: {self.confidence}")
        if not 1 <= int(self.emotional_intensity) <= 10:
            raise ClassificationValidationError(f"emotional_intensity out of range: {self.emotional_intensity}")
        if self.category is Category.CRISIS and self.confidence < CRISIS_MIN_CONFIDENCE:
            raise ClassificationValidationError(
                f"CRISIS classification requires confidence >= {CRISIS_MIN_CONFIDENCE}, got {self.confidence}"
            )

    @classmethod
    def crisis(cls, method: Method, confidence: float = 1.0, subcategory: str = "suicide",
               emotional_intensity: int = 10, reasoning: Optional[str] = None) -> "Classification":
        """Build a CRISIS result; confidence is floored at the crisis minimum."""
        return cls(
            category=Category.CRISIS,
            subcategory=subcategory,
            confidence=max(float(confidence), CRISIS_MIN_CONFIDENCE),
            emotional_intensity=emotional_intensity,
            method=method,
            reasoning=reasoning,
        )

    @property
    def is_crisis(self) -> bool:
        return self.category is Category.CRISIS

    def with_strategy(self, strategy_used: str, fallback_level: int) -> "Classification":
        return replace(self, strategy_used=strategy_used, fallback_level=fallback_level)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "category": self.category.value,
            "subcategory": self.subcategory,
            "confidence": round(float(self.confidence), 3),
            "emotional_intensity": int(self.emotional_intensity),
            "method": self.method.value,
            "reasoning": self.reasoning,
            "ambiguous_phrase": self.ambiguous_phrase,
            "disambiguation": self.disambiguation,
        }
        if self.strategy_used is not None:
            data["strategy_used"] = self.strategy_used
            data["fallback_level"] = self.fallback_level
        return data
