"""
classification/rule_based.py

Pure keyword classifiers with no external dependency.

- classify_rule_based: the last regular strategy in the degradation chain.
- absolute_fallback: what the chain returns when every strategy failed. It
  cannot fail and checks crisis keywords before anything else.
"""

import re
from typing import Optional, Tuple

from classification.types import Category, Classification, Method
from utils.crisis_detector import detect_crisis

# (pattern, category, subcategory, confidence, intensity, reasoning); first match wins
_RULES: Tuple[Tuple[re.Pattern, Category, str, float, int, str], ...] = (
    (re.compile(r"\b(laid off|fired|lost (my )?job|unemployed|terminated)\b", re.I),
     Category.EMPLOYMENT, "job_loss", 0.8, 7, "Job loss keywords"),
    (re.compile(r"\b(girlfriend|boyfriend|wife|husband|partner|relationship|divorce|breakup|broke up)\b", re.I),
     Category.RELATIONSHIP, "general_relationship", 0.75, 6, "Relationship keywords"),
    (re.compile(r"\b(depress\w*|sad|empty|numb|hopeless|worthless)\b", re.I),
     Category.MENTAL_HEALTH, "depression", 0.75, 7, "Depression keywords"),
    (re.compile(r"\b(anxi\w*|panic\w*|nervous|worried|worry|overwhelm\w*|stress\w*)\b", re.I),
     Category.MENTAL_HEALTH, "anxiety", 0.75, 6, "Anxiety keywords"),
    (re.compile(r"\b(app|error|bug|crash\w*|glitch|not loading|won'?t load|login)\b", re.I),
     Category.TECH_ISSUE, "app_error", 0.7, 2, "Technical keywords"),
)

_FALLBACK_CRISIS = re.compile(r"(suicid|kill|die\b|end it all|ending it|hurt myself)", re.I)
_FALLBACK_WORK = re.compile(r"\b(job|work|fired|laid off|boss|career)\b", re.I)


def classify_rule_based(text: str) -> Classification:
    """Keyword classification; always returns a result."""
    detection = detect_crisis(text or "")
    if detection.is_crisis:
        return Classification.crisis(
            Method.RULE_BASED,
            confidence=1.0,
            subcategory=detection.subcategory,
            reasoning=f"Crisis pattern: {detection.matched_pattern}",
        )

    for pattern, category, subcategory, confidence, intensity, reasoning in _RULES:
        if pattern.search(text or ""):
            return Classification(
                category=category,
                subcategory=subcategory,
                confidence=confidence,
                emotional_intensity=intensity,
                method=Method.RULE_BASED,
                reasoning=reasoning,
            )

    return Classification(
        category=Category.GENERAL,
        subcategory="general",
        confidence=0.6,
        emotional_intensity=3,
        method=Method.RULE_BASED,
        reasoning="No specific keywords",
    )


def absolute_fallback(text: str, fallback_level: Optional[int] = None) -> Classification:
    """Dependency-free last resort. Crisis keywords are checked first."""
    text = text or ""
    if _FALLBACK_CRISIS.search(text) or detect_crisis(text).is_crisis:
        result = Classification.crisis(
            Method.ABSOLUTE_FALLBACK,
            confidence=0.9,
            subcategory="crisis",
            reasoning="Emergency fallback: crisis keywords detected",
        )
    elif _FALLBACK_WORK.search(text):
        result = Classification(
            category=Category.EMPLOYMENT,
            subcategory="general",
            confidence=0.6,
            emotional_intensity=5,
            method=Method.ABSOLUTE_FALLBACK,
            reasoning="Emergency fallback: work keywords",
        )
    else:
        result = Classification(
            category=Category.GENERAL,
            subcategory="general",
            confidence=0.5,
            emotional_intensity=3,
            method=Method.ABSOLUTE_FALLBACK,
            reasoning="Emergency fallback: default",
        )
    if fallback_level is not None:
        result = result.with_strategy("absolute_fallback", fallback_level)
    return result
