"""
classification/hybrid_classifier.py

Regex first, model only when a message is genuinely ambiguous.

Flow: crisis regex → clear-case rules → ambiguity check → (ambiguous) model
call → (otherwise) keyword classification. Most traffic never reaches the
model, which keeps this strategy cheap enough to sit third in the
degradation chain.

Also owns the per-category confidence thresholds, sensitivity tuning and the
clarifying questions asked when a result falls below its threshold.
"""

import re
from typing import Any, Dict, List, Optional

from classification.clear_case import classify_obvious
from classification.llm_classifier import LLMClassifier
from classification.rule_based import classify_rule_based
from classification.types import Category, Classification, Method
from utils.crisis_detector import detect_crisis
from utils.logging_utils import get_logger

logger = get_logger("hybrid_classifier")

# Minimum confidence before a result is acted on without a clarifying question
DEFAULT_CONFIDENCE_THRESHOLDS: Dict[str, float] = {
    "crisis": 0.75,
    "employment": 0.85,
    "mental_health": 0.80,
    "relationship": 0.85,
    "tech": 0.90,
    "default": 0.70,
}

_THRESHOLD_KEYS = {
    Category.CRISIS: "crisis",
    Category.EMPLOYMENT: "employment",
    Category.MENTAL_HEALTH: "mental_health",
    Category.RELATIONSHIP: "relationship",
    Category.TECH_ISSUE: "tech",
}

AMBIGUOUS_PATTERNS = [
    re.compile(p, re.IGNORECASE) for p in (
        r"\bnot working\b",
        r"\bnot (good|well|okay|ok)\b",
        r"\bcan'?t (do|be|figure)\b",
        r"\bfeeling down\b",
        r"\blost\b",
        r"\bbroken\b",
        r"\bneed help\b",
        r"\bnothing works\b",
        r"\bi'?m done\b",
    )
]

# (pattern, category, subcategory, confidence, intensity)
_GENERAL_RULES = (
    (re.compile(r"\b(job|work|boss|career|coworker|promotion|interview|salary)\b", re.I),
     Category.EMPLOYMENT, "workplace_stress", 0.7, 6),
    (re.compile(r"\b(girlfriend|boyfriend|wife|husband|partner|relationship|dating|marriage)\b", re.I),
     Category.RELATIONSHIP, "general_relationship", 0.7, 6),
    (re.compile(r"\b(depress\w*|sad|empty|numb|crying)\b", re.I),
     Category.MENTAL_HEALTH, "depression", 0.7, 7),
    (re.compile(r"\b(anxi\w*|panic\w*|nervous|worried|stress\w*)\b", re.I),
     Category.MENTAL_HEALTH, "anxiety", 0.7, 6),
    (re.compile(r"\b(race|racism|racist|discriminat\w*|microaggression\w*|black man|black woman|culture)\b", re.I),
     Category.IDENTITY, "cultural", 0.7, 6),
    (re.compile(r"^\s*(hi|hello|hey|yo|sup)\b", re.I),
     Category.GENERAL, "greeting", 0.8, 3),
    (re.compile(r"\b(good|great|happy|better|grateful|excited|proud)\b", re.I),
     Category.GENERAL, "positive", 0.8, 7),
)

CLARIFYING_QUESTIONS = {
    Category.EMPLOYMENT: "Is this mostly about your job itself, or how work is affecting the rest of your life?",
    Category.RELATIONSHIP: "Is this about a partner, family, or a friendship?",
    Category.MENTAL_HEALTH: "Would you say this feels more like worry and tension, or more like sadness and low energy?",
    Category.TECH_ISSUE: "Is something in the app not behaving the way you expect?",
    Category.IDENTITY: "Is this connected to how people treat you, or more about how you see yourself?",
}
DEFAULT_CLARIFYING_QUESTION = "Can you tell me a little more about what's going on?"


def is_ambiguous(text: str) -> bool:
    return any(p.search(text or "") for p in AMBIGUOUS_PATTERNS)


def find_ambiguous_phrase(text: str) -> Optional[str]:
    for pattern in AMBIGUOUS_PATTERNS:
        match = pattern.search(text or "")
        if match:
            return match.group(0)
    return None


def classify_general(text: str) -> Classification:
    """Keyword classification for non-ambiguous, non-clear messages."""
    for pattern, category, subcategory, confidence, intensity in _GENERAL_RULES:
        if pattern.search(text or ""):
            return Classification(
                category=category,
                subcategory=subcategory,
                confidence=confidence,
                emotional_intensity=intensity,
                method=Method.HYBRID,
                reasoning="Keyword match",
            )
    return Classification(
        category=Category.GENERAL,
        subcategory="casual",
        confidence=0.5,
        emotional_intensity=5,
        method=Method.HYBRID,
        reasoning="No strong signal",
    )


def disambiguate_not_working(text: str, history: Optional[List[Dict[str, Any]]] = None) -> str:
    """Resolve "not working" to EMPLOYMENT, TECH, TREATMENT or UNCLEAR."""
    context = " ".join(str(h.get("content", "")) for h in (history or [])[-3:])
    combined = f"{context} {text or ''}".lower()
    if re.search(r"\b(job|unemployed|hired|applications?|resume|interview|looking for work)\b", combined):
        return "EMPLOYMENT"
    if re.search(r"\b(app|button|screen|login|page|loading|website)\b", combined):
        return "TECH"
    if re.search(r"\b(therapy|therapist|medication|meds|treatment|counseling|prescription)\b", combined):
        return "TREATMENT"
    return "UNCLEAR"


class HybridClassifier:
    """Regex-first classifier that calls the model only for ambiguous messages."""

    def __init__(self, llm_classifier: Optional[LLMClassifier] = None,
                 thresholds: Optional[Dict[str, float]] = None):
        self.llm_classifier = llm_classifier
        self.confidence_thresholds = dict(thresholds or DEFAULT_CONFIDENCE_THRESHOLDS)
        self.stats = {"regex": 0, "llm": 0, "keyword": 0}

    async def classify(self, text: str, context: Optional[Dict[str, Any]] = None) -> Classification:
        context = context or {}

        detection = detect_crisis(text)
        if detection.is_crisis:
            self.stats["regex"] += 1
            return Classification.crisis(Method.HYBRID, confidence=1.0, subcategory=detection.subcategory,
                                         reasoning=f"Crisis pattern: {detection.matched_pattern}")

        obvious = classify_obvious(text, context.get("original_text"))
        if obvious is not None:
            self.stats["regex"] += 1
            return obvious

        if is_ambiguous(text) and self.llm_classifier is not None:
            self.stats["llm"] += 1
            result = await self.llm_classifier.classify(text, context.get("history"))
            phrase = find_ambiguous_phrase(text)
            disambiguation = result.disambiguation
            if phrase and phrase.lower() == "not working" and not disambiguation:
                disambiguation = disambiguate_not_working(text, context.get("history"))
            return Classification(
                category=result.category,
                subcategory=result.subcategory,
                confidence=result.confidence,
                emotional_intensity=result.emotional_intensity,
                method=Method.HYBRID,
                reasoning=result.reasoning,
                ambiguous_phrase=result.ambiguous_phrase or phrase,
                disambiguation=disambiguation,
            )

        self.stats["keyword"] += 1
        result = classify_general(text)
        if result.category is Category.GENERAL and result.subcategory == "casual":
            # Fall through to the broader keyword rules before settling on casual
            broader = classify_rule_based(text)
            if broader.category is not Category.GENERAL:
                return Classification(
                    category=broader.category,
                    subcategory=broader.subcategory,
                    confidence=min(broader.confidence, 0.7),
                    emotional_intensity=broader.emotional_intensity,
                    method=Method.HYBRID,
                    reasoning=broader.reasoning,
                )
        return result

    def threshold_for(self, category: Category) -> float:
        return self.confidence_thresholds.get(_THRESHOLD_KEYS.get(category, "default"),
                                              self.confidence_thresholds["default"])

    def meets_confidence_threshold(self, classification: Classification) -> bool:
        return classification.confidence >= self.threshold_for(classification.category)

    def adjust_sensitivity(self, category: str, delta: float) -> float:
        """Shift a threshold by `delta`, clamped to [0.5, 0.99]. Returns the new value."""
        key = category.lower() if category.lower() in self.confidence_thresholds else "default"
        updated = min(0.99, max(0.5, self.confidence_thresholds[key] + delta))
        self.confidence_thresholds[key] = round(updated, 3)
        logger.info(f"[Hybrid] Threshold for {key} set to {self.confidence_thresholds[key]}")
        return self.confidence_thresholds[key]

    def get_clarifying_question(self, classification: Classification) -> Optional[str]:
        """Question to ask when a non-crisis result is below its threshold; None otherwise."""
        if classification.is_crisis or self.meets_confidence_threshold(classification):
            return None
        return CLARIFYING_QUESTIONS.get(classification.category, DEFAULT_CLARIFYING_QUESTION)
