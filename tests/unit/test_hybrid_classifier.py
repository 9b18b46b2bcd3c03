"""
Unit tests for classification/hybrid_classifier.py

Tests:
- Regex paths never call the model
- Ambiguous text goes to the model
- "not working" disambiguation
- Thresholds, sensitivity and clarifying questions
"""

import pytest
from unittest.mock import AsyncMock, Mock

from classification.hybrid_classifier import (
    HybridClassifier,
    disambiguate_not_working,
    find_ambiguous_phrase,
    is_ambiguous,
)
from classification.types import Category, Classification, Method


def _llm_returning(classification):
    llm = Mock()
    llm.classify = AsyncMock(return_value=classification)
    return llm


# =============================================================================
# Helper Tests
# =============================================================================

def test_is_ambiguous():
    """Ambiguous phrases are detected"""
    assert is_ambiguous("it's just not working")
    assert is_ambiguous("I feel so lost")
    assert not is_ambiguous("I love my dog")


def test_find_ambiguous_phrase():
    """The matched phrase is returned"""
    assert find_ambiguous_phrase("my meds are not working") == "not working"
    assert find_ambiguous_phrase("fine") is None


@pytest.mark.parametrize("text,expected", [
    ("my job applications are not working", "EMPLOYMENT"),
    ("the login button is not working", "TECH"),
    ("my therapy is not working", "TREATMENT"),
    ("it's not working", "UNCLEAR"),
])
def test_disambiguate_not_working(text, expected):
    """"not working" resolves from keywords"""
    assert disambiguate_not_working(text) == expected


def test_disambiguate_uses_history():
    """Recent history is part of the context"""
    history = [{"role": "user", "content": "I've sent out my resume everywhere"}]
    assert disambiguate_not_working("nothing's not working", history) == "EMPLOYMENT"


# =============================================================================
# HybridClassifier Tests
# =============================================================================

@pytest.mark.asyncio
async def test_crisis_regex_skips_model():
    """Crisis patterns never reach the model"""
    llm = _llm_returning(None)
    classifier = HybridClassifier(llm)

    result = await classifier.classify("I want to kill myself")

    assert result.is_crisis
    assert result.method is Method.HYBRID
    llm.classify.assert_not_called()
    assert classifier.stats["regex"] == 1


@pytest.mark.asyncio
async def test_clear_case_skips_model():
    """Clear cases never reach the model"""
    llm = _llm_returning(None)
    result = await HybridClassifier(llm).classify("i got laid off today")

    assert result.category is Category.EMPLOYMENT
    llm.classify.assert_not_called()


@pytest.mark.asyncio
async def test_ambiguous_calls_model_and_disambiguates():
    """Ambiguous text goes to the model; "not working" is disambiguated locally"""
    llm = _llm_returning(Classification(category=Category.EMPLOYMENT, confidence=0.8,
                                        emotional_intensity=6, method=Method.CLAUDE_FULL,
                                        subcategory="job_search", reasoning="jobs"))
    classifier = HybridClassifier(llm)

    result = await classifier.classify("my job hunt is not working")

    llm.classify.assert_awaited_once()
    assert result.method is Method.HYBRID
    assert result.ambiguous_phrase == "not working"
    assert result.disambiguation == "EMPLOYMENT"
    assert classifier.stats["llm"] == 1


@pytest.mark.asyncio
async def test_ambiguous_without_model_uses_keywords():
    """Without a model, ambiguous text falls back to keywords"""
    result = await HybridClassifier(None).classify("I'm feeling down")

    assert result.method is Method.HYBRID
    assert result.category is Category.GENERAL


@pytest.mark.asyncio
async def test_keyword_path():
    """Non-ambiguous text uses keyword rules"""
    result = await HybridClassifier(None).classify("my boss keeps yelling at me")

    assert result.category is Category.EMPLOYMENT
    assert result.subcategory == "workplace_stress"


@pytest.mark.asyncio
async def test_keyword_path_broader_rules():
    """Casual results fall through to the broader rule set, capped at 0.7"""
    result = await HybridClassifier(None).classify("everything feels hopeless")

    assert result.category is Category.MENTAL_HEALTH
    assert result.confidence <= 0.7


# =============================================================================
# Threshold Tests
# =============================================================================

def test_thresholds():
    """Per-category thresholds apply"""
    classifier = HybridClassifier()
    low = Classification(category=Category.TECH_ISSUE, confidence=0.8, emotional_intensity=2,
                         method=Method.HYBRID)
    assert classifier.threshold_for(Category.TECH_ISSUE) == 0.90
    assert not classifier.meets_confidence_threshold(low)
    assert classifier.get_clarifying_question(low) is not None


def test_clarifying_question_never_for_crisis():
    """Crisis results never get a clarifying question"""
    crisis = Classification.crisis(Method.HYBRID)
    assert HybridClassifier().get_clarifying_question(crisis) is None


def test_adjust_sensitivity_clamped():
    """Thresholds are clamped to [0.5, 0.99]"""
    classifier = HybridClassifier()
    assert classifier.adjust_sensitivity("crisis", -1.0) == 0.5
    assert classifier.adjust_sensitivity("tech", 1.0) == 0.99
    # unknown categories adjust the default
    assert classifier.adjust_sensitivity("sports", 0.05) == 0.75
