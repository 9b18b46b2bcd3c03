"""
classification/clear_case.py

Second regex layer. Resolves the large share of non-crisis messages whose
meaning is unambiguous (explicit job loss, infidelity, breakups, named
clinical conditions, app errors, bare greetings) without calling any model.

Returns None whenever it is not certain, which tells the caller to hand the
message to the degradation chain. It also returns None if any crisis keyword
is present, even when a clear-case rule matched, so crisis handling can never
be bypassed by an earlier, cheaper rule.
"""

import re
from dataclasses import dataclass
from typing import Optional, Tuple

from classification.types import Category, Classification, Method
from utils.crisis_detector import contains_crisis_keyword
from utils.logging_utils import get_logger

logger = get_logger("clear_case")


@dataclass(frozen=True)
class ClearCaseRule:
    name: str
    pattern: re.Pattern
    category: Category
    subcategory: Optional[str]
    confidence: float
    emotional_intensity: int
    reasoning: str
    use_original: bool = False  # match against the raw text instead of normalized


CLEAR_CASE_RULES: Tuple[ClearCaseRule, ...] = (
    ClearCaseRule(
        "job_loss",
        re.compile(r"\b(laid off|fired|terminated|lost my job|unemployed|jobless)\b", re.IGNORECASE),
        Category.EMPLOYMENT, "job_loss", 0.95, 7,
        "Explicit job loss language",
    ),
    ClearCaseRule(
        "infidelity",
        re.compile(r"\b(girlfriend|boyfriend|wife|husband|partner)\s+(is\s+|was\s+)?(cheating|cheated)\b", re.IGNORECASE),
        Category.RELATIONSHIP, "infidelity", 0.95, 9,
        "Explicit infidelity language",
    ),
    ClearCaseRule(
        "breakup",
        re.compile(r"\b(divorce|divorced|divorcing|broke up|breakup|break up|dumped me)\b", re.IGNORECASE),
        Category.RELATIONSHIP, "breakup", 0.9, 8,
        "Explicit breakup or divorce language",
    ),
    ClearCaseRule(
        "clinical_condition",
        re.compile(r"\b(severe|major|clinical)\s+(depression|anxiety|ptsd)\b", re.IGNORECASE),
        Category.MENTAL_HEALTH, None, 0.95, 8,
        "Named clinical condition",
    ),
    ClearCaseRule(
        "tech_error",
        re.compile(r"\b(error|bug|crash(ed|es|ing)?|glitch|freeze|frozen)\b", re.IGNORECASE),
        Category.TECH_ISSUE, "app_error", 0.9, 2,
        "Technical problem report",
    ),
    ClearCaseRule(
        "greeting",
        re.compile(r"^\s*(hi|hello|hey|sup|what'?s up|good morning|good afternoon|good evening|yo|wassup)[\s!?.]*$",
                   re.IGNORECASE),
        Category.GENERAL, "greeting", 0.95, 3,
        "Simple greeting",
        use_original=True,
    ),
)


def classify_obvious(text: str, original_text: Optional[str] = None) -> Optional[Classification]:
    """Classify unambiguous messages, or return None to defer.

    Args:
        text: Normalized message text
        original_text: Raw text as typed (greetings are matched against it,
            since slang expansion can turn "yo" style openers into longer text)
    """
    if not text:
        return None
    original_text = original_text if original_text is not None else text

    if contains_crisis_keyword(text) or contains_crisis_keyword(original_text):
        logger.debug("[ClearCase] Crisis keyword present; deferring")
        return None

    for rule in CLEAR_CASE_RULES:
        haystack = original_text if rule.use_original else text
        match = rule.pattern.search(haystack)
        if not match:
            continue
        subcategory = rule.subcategory
        if subcategory is None:
            # clinical_condition: subcategory is the named condition
            subcategory = match.group(2).lower()
        logger.debug(f"[ClearCase] Rule '{rule.name}' matched")
        return Classification(
            category=rule.category,
            subcategory=subcategory,
            confidence=rule.confidence,
            emotional_intensity=rule.emotional_intensity,
            method=Method.REGEX,
            reasoning=rule.reasoning,
        )
    return None
