"""
Unit tests for resources/resource_matcher.py and resources/default_resources.py

Tests:
- Index construction (and full rebuild)
- Additive scoring, crisis boost, cultural boost
- Stable ordering and limits
- Free-text search
"""

import pytest

from classification.types import Category, Classification, Method
from resources.default_resources import DEFAULT_RESOURCES, Resource, load_default_resources
from resources.resource_matcher import SmartResourceMatcher


def _classification(category, subcategory=None, intensity=5, confidence=0.8):
    if category is Category.CRISIS:
        return Classification.crisis(Method.REGEX, subcategory=subcategory or "suicide",
                                     emotional_intensity=intensity)
    return Classification(category=category, subcategory=subcategory, confidence=confidence,
                          emotional_intensity=intensity, method=Method.REGEX)


@pytest.fixture
def matcher():
    return SmartResourceMatcher(load_default_resources())


# =============================================================================
# Catalog Tests
# =============================================================================

def test_catalog_ids_unique():
    """Every catalog resource has a unique id"""
    ids = [r.id for r in DEFAULT_RESOURCES]
    assert len(ids) == len(set(ids))


def test_catalog_crisis_numbers():
    """988 and the Crisis Text Line are present with their numbers"""
    by_id = {r.id: r for r in DEFAULT_RESOURCES}
    assert "988" in by_id["crisis_988"].phone
    assert "741741" in (by_id["crisis_text"].phone or by_id["crisis_text"].description)


# =============================================================================
# Indexing Tests
# =============================================================================

def test_query_before_index_returns_empty():
    """Queries before indexing return nothing"""
    empty = SmartResourceMatcher()
    assert empty.indexed is False
    assert empty.fast_resource_match(_classification(Category.EMPLOYMENT, "job_loss")) == []
    assert empty.search_resources("therapy") == []


def test_reindex_replaces(matcher):
    """index_resources discards the previous index"""
    only = Resource(id="only", title="Only One", description="Single resource", category="general", type="article")
    matcher.index_resources([only])

    assert list(matcher.resources) == ["only"]
    assert matcher.get_resources_by_category("crisis") == []


def test_duplicate_ids_keep_first():
    """Duplicate ids are skipped"""
    first = Resource(id="dup", title="First", description="one", category="general", type="article")
    second = Resource(id="dup", title="Second", description="two", category="general", type="article")
    m = SmartResourceMatcher([first, second])
    assert m.resources["dup"].title == "First"


# =============================================================================
# Scoring Tests
# =============================================================================

def test_crisis_match(matcher):
    """Crisis classification ranks 988 and the Crisis Text Line first"""
    results = matcher.fast_resource_match(_classification(Category.CRISIS, "suicide", 10))

    assert [m.resource.id for m in results[:2]] == ["crisis_988", "crisis_text"]
    assert results[0].relevance_score == 45


def test_employment_match(matcher):
    """Job loss favours the job-loss resource"""
    results = matcher.fast_resource_match(_classification(Category.EMPLOYMENT, "job_loss", 7))

    assert results[0].resource.id == "employment_dol"
    assert results[0].relevance_score == 25
    assert all(m.resource.category == "employment" for m in results)


def test_high_intensity_adds_crisis_resources(matcher):
    """Intensity >= 8 pulls crisis resources in"""
    results = matcher.fast_resource_match(_classification(Category.RELATIONSHIP, "infidelity", 9), limit=10)
    assert any(m.resource.category == "crisis" for m in results)


def test_low_intensity_no_crisis_resources(matcher):
    """Intensity below 8 does not"""
    results = matcher.fast_resource_match(_classification(Category.RELATIONSHIP, "couples", 5), limit=10)
    assert not any(m.resource.category == "crisis" for m in results)


def test_cultural_boost(matcher):
    """Culturally relevant resources get +5 when a context is given"""
    classification = _classification(Category.MENTAL_HEALTH, "therapy", 6)

    plain = {m.resource.id: m.relevance_score for m in matcher.fast_resource_match(classification, limit=10)}
    boosted = {m.resource.id: m.relevance_score
               for m in matcher.fast_resource_match(classification, limit=10, cultural_context="black")}

    assert boosted["therapy_therapyforblackmen"] == plain["therapy_therapyforblackmen"] + 5
    assert boosted["therapy_betterhelp"] == plain["therapy_betterhelp"]


def test_cultural_context_adds_unmatched_cultural_resources(matcher):
    """Culturally relevant resources join the results even outside the category"""
    results = matcher.fast_resource_match(_classification(Category.EMPLOYMENT, "job_loss", 5),
                                          limit=20, cultural_context="black")
    scores = {m.resource.id: m.relevance_score for m in results}

    for resource_id in ("therapy_therapyforblackmen", "identity_blackmentalhealth",
                        "identity_brothers", "fatherhood_blackdads", "lgbtq_blackline"):
        assert scores[resource_id] == 5
    assert scores["employment_dol"] == 25
    assert scores["employment_blackcareernetwork"] == 15
    assert [m.resource.category for m in results[:2]] == ["employment", "employment"]
    added = next(m for m in results if m.resource.id == "identity_brothers")
    assert added.reason == "Culturally relevant resource"


def test_no_cultural_context_adds_nothing(matcher):
    results = matcher.fast_resource_match(_classification(Category.EMPLOYMENT, "job_loss", 5), limit=20)
    assert all(m.resource.category == "employment" for m in results)


def test_ties_keep_catalog_order(matcher):
    """Equal scores keep catalog order"""
    results = matcher.fast_resource_match(_classification(Category.MENTAL_HEALTH, "therapy", 5), limit=3)
    assert [m.resource.id for m in results] == [
        "therapy_inclusivetherapists", "therapy_therapyforblackmen", "therapy_betterhelp",
    ]


def test_limit(matcher):
    """limit caps the result list"""
    assert len(matcher.fast_resource_match(_classification(Category.CRISIS), limit=2)) == 2
    assert matcher.fast_resource_match(_classification(Category.CRISIS), limit=0) == []


def test_match_to_dict(matcher):
    """ResourceMatch serializes the fields the client renders"""
    data = matcher.fast_resource_match(_classification(Category.CRISIS))[0].to_dict()
    assert {"id", "title", "phone", "url", "relevance_score", "reason"} <= set(data)


# =============================================================================
# Search / lookup Tests
# =============================================================================

def test_search_resources(matcher):
    """Free-text search scores one point per keyword"""
    results = matcher.search_resources("couples therapy")
    assert results
    assert results[0].resource.category in ("relationship", "mental_health")


def test_get_crisis_resources(matcher):
    """get_crisis_resources only returns crisis-category entries"""
    crisis = matcher.get_crisis_resources()
    assert crisis
    assert all(r.category == "crisis" for r in crisis)


def test_get_stats(matcher):
    """Stats describe the index"""
    stats = matcher.get_stats()
    assert stats["indexed"] is True
    assert stats["total_resources"] == len(DEFAULT_RESOURCES)
