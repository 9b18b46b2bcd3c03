"""
Unit tests for classification/types.py

Tests:
- Category parsing and aliases
- Classification invariants (ranges, crisis confidence floor)
- Helpers (crisis, with_strategy, to_dict)
"""

import pytest
from classification.types import (
    CRISIS_MIN_CONFIDENCE,
    Category,
    Classification,
    ClassificationValidationError,
    Method,
)


# =============================================================================
# Category Tests
# =============================================================================

def test_category_parse_names():
    """parse accepts exact names in any case"""
    assert Category.parse("employment") is Category.EMPLOYMENT
    assert Category.parse(Category.CRISIS) is Category.CRISIS


def test_category_parse_tech_alias():
    """TECH is accepted as TECH_ISSUE"""
    assert Category.parse("tech") is Category.TECH_ISSUE


def test_category_parse_invalid():
    """Unknown names raise a validation error"""
    with pytest.raises(ClassificationValidationError):
        Category.parse("SPORTS")


# =============================================================================
# Classification Tests
# =============================================================================

def test_classification_coerces_strings():
    """String category and method are coerced to enums"""
    result = Classification(category="GENERAL", confidence=0.5, emotional_intensity=3, method="hybrid")
    assert result.category is Category.GENERAL
    assert result.method is Method.HYBRID


def test_crisis_requires_high_confidence():
    """CRISIS below the floor is rejected"""
    with pytest.raises(ClassificationValidationError):
        Classification(category=Category.CRISIS, confidence=0.5, emotional_intensity=9, method=Method.HYBRID)


@pytest.mark.parametrize("confidence,intensity", [(-0.1, 5), (1.1, 5), (0.5, 0), (0.5, 11)])
def test_out_of_range_values_rejected(confidence, intensity):
    """Confidence and intensity are range checked"""
    with pytest.raises(ClassificationValidationError):
        Classification(category=Category.GENERAL, confidence=confidence,
                       emotional_intensity=intensity, method=Method.RULE_BASED)


def test_crisis_helper_floors_confidence():
    """Classification.crisis never goes below the crisis minimum"""
    result = Classification.crisis(Method.CLAUDE_FULL, confidence=0.3)
    assert result.is_crisis
    assert result.confidence == CRISIS_MIN_CONFIDENCE
    assert result.subcategory == "suicide"
    assert result.emotional_intensity == 10


def test_with_strategy_returns_copy():
    """with_strategy annotates a copy and leaves the original alone"""
    original = Classification(category=Category.GENERAL, confidence=0.6, emotional_intensity=3,
                              method=Method.RULE_BASED)
    annotated = original.with_strategy("rule_based", 3)

    assert annotated.strategy_used == "rule_based"
    assert annotated.fallback_level == 3
    assert original.strategy_used is None


def test_to_dict_includes_strategy_only_when_set():
    """strategy fields appear in to_dict only after with_strategy"""
    base = Classification(category=Category.EMPLOYMENT, confidence=0.95, emotional_intensity=7,
                          method=Method.REGEX, subcategory="job_loss")
    data = base.to_dict()
    assert data["category"] == "EMPLOYMENT"
    assert data["method"] == "regex"
    assert "strategy_used" not in data

    data = base.with_strategy("hybrid", 2).to_dict()
    assert data["strategy_used"] == "hybrid"
    assert data["fallback_level"] == 2


def test_classification_is_frozen():
    """Classifications are immutable"""
    result = Classification(category=Category.GENERAL, confidence=0.6, emotional_intensity=3,
                            method=Method.RULE_BASED)
    with pytest.raises(AttributeError):
        result.confidence = 0.9
