"""
Unit tests for classification/clear_case.py

Tests:
- Each clear-case rule
- Deferral (None) on unclear text
- Crisis keywords always defer
"""

import pytest
from classification.clear_case import classify_obvious
from classification.types import Category, Method


# =============================================================================
# classify_obvious Tests
# =============================================================================

def test_job_loss():
    """Explicit job loss is EMPLOYMENT/job_loss at 0.95"""
    result = classify_obvious("i've been laid off and can't pay rent")
    assert result.category is Category.EMPLOYMENT
    assert result.subcategory == "job_loss"
    assert result.confidence == 0.95
    assert result.method is Method.REGEX


def test_infidelity():
    """Partner cheating is RELATIONSHIP/infidelity"""
    result = classify_obvious("my girlfriend is cheating on me")
    assert result.category is Category.RELATIONSHIP
    assert result.subcategory == "infidelity"


def test_breakup():
    """Breakup language is RELATIONSHIP/breakup"""
    result = classify_obvious("we broke up last week")
    assert result.subcategory == "breakup"


def test_clinical_condition_subcategory():
    """Named clinical conditions use the condition as subcategory"""
    result = classify_obvious("i was diagnosed with severe depression")
    assert result.category is Category.MENTAL_HEALTH
    assert result.subcategory == "depression"


def test_tech_error():
    """App errors are TECH_ISSUE"""
    result = classify_obvious("the app crashed again")
    assert result.category is Category.TECH_ISSUE


def test_greeting_uses_original_text():
    """Greetings are matched against the raw text"""
    result = classify_obvious("hey friend", original_text="Hey!")
    assert result.category is Category.GENERAL
    assert result.subcategory == "greeting"


@pytest.mark.parametrize("text", [
    "i got fired and i want to die",
    "laid off, thinking about suicide",
    "my boyfriend cheated and i want to end my life",
])
def test_crisis_keyword_defers(text):
    """Crisis wording defers even when a clear rule matches"""
    assert classify_obvious(text) is None


def test_crisis_in_original_text_defers():
    """Crisis wording in the raw text defers too"""
    assert classify_obvious("laid off", original_text="laid off and I want to kill myself") is None


@pytest.mark.parametrize("text", ["my job search is not working", "i feel kind of off", ""])
def test_unclear_defers(text):
    """Anything not clear-cut returns None"""
    assert classify_obvious(text) is None
