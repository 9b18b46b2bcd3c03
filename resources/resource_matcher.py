"""
# resources/resource_matcher.py

Module Contract
- Purpose: Precomputed inverted indexes over the static resource catalog, scored against a classification at query time.
- Inputs:
  - index_resources(resources) (build time; fully replaces any previous index)
  - fast_resource_match(classification, limit, cultural_context) → List[ResourceMatch]
  - search_resources(query, limit) → List[ResourceMatch]
- Outputs:
  - Ranked ResourceMatch objects (resource, relevance_score, reason, matched_keywords)
- Scoring (additive):
  - +10 category, +15 subcategory, +20 crisis resources when emotional_intensity >= 8, +5 culturally relevant (black / african-american / poc) when a cultural context is given; unmatched culturally relevant resources join the results at 5
  - Stable sort, score descending; ties keep catalog order
- Concurrency:
  - Read-only after index_resources(); safe to share across concurrent requests without locks.
- Error handling:
  - Querying before indexing logs a warning and returns [].
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from classification.types import Classification
from resources.default_resources import Resource
from utils.logging_utils import get_logger, log_duration
from utils.text_utils import extract_keywords

logger = get_logger("resource_matcher")

CATEGORY_SCORE = 10
SUBCATEGORY_SCORE = 15
CRISIS_BOOST = 20
CULTURAL_BOOST = 5
CRISIS_INTENSITY_THRESHOLD = 8
CULTURAL_TAGS = ("black", "african-american", "poc")


@dataclass
class ResourceMatch:
    resource: Resource
    relevance_score: float
    reason: str
    matched_keywords: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        r = self.resource
        return {
            "id": r.id,
            "title": r.title,
            "description": r.description,
            "type": r.type,
            "url": r.url,
            "phone": r.phone,
            "relevance_score": self.relevance_score,
            "reason": self.reason,
        }


class SmartResourceMatcher:
    """Inverted-index resource matcher."""

    def __init__(self, resources: Optional[Iterable[Resource]] = None):
        self.reset()
        if resources is not None:
            self.index_resources(resources)

    def reset(self) -> None:
        self.resources: Dict[str, Resource] = {}
        self._order: Dict[str, int] = {}
        self.keyword_index: Dict[str, List[str]] = {}
        self.category_index: Dict[str, List[str]] = {}
        self.cultural_index: Dict[str, List[str]] = {}
        self.indexed = False

    @staticmethod
    def _add(index: Dict[str, List[str]], key: Optional[str], resource_id: str) -> None:
        if not key:
            return
        bucket = index.setdefault(key.lower(), [])
        if resource_id not in bucket:
            bucket.append(resource_id)

    @log_duration("Resource indexing")
    def index_resources(self, resources: Iterable[Resource]) -> None:
        """Build all three indexes from scratch. Previous indexes are discarded."""
        self.reset()
        for position, resource in enumerate(resources):
            if resource.id in self.resources:
                logger.warning(f"[ResourceMatcher] Duplicate resource id {resource.id}; keeping the first")
                continue
            self.resources[resource.id] = resource
            self._order[resource.id] = position

            for keyword in extract_keywords(f"{resource.title} {resource.description}"):
                self._add(self.keyword_index, keyword, resource.id)
            for tag in resource.tags:
                self._add(self.keyword_index, tag, resource.id)

            # Subcategory keys share the category index
            self._add(self.category_index, resource.category, resource.id)
            self._add(self.category_index, resource.subcategory, resource.id)

            for tag in resource.cultural_relevance:
                self._add(self.cultural_index, tag, resource.id)

        self.indexed = True
        logger.info(
            f"[ResourceMatcher] Indexed {len(self.resources)} resources: "
            f"{len(self.keyword_index)} keywords, {len(self.category_index)} categories, "
            f"{len(self.cultural_index)} cultural tags"
        )

    def _ranked(self, matches: Dict[str, ResourceMatch], limit: int) -> List[ResourceMatch]:
        # sorted() is stable; catalog order breaks ties
        ordered = sorted(matches.values(), key=lambda m: self._order[m.resource.id])
        ordered = sorted(ordered, key=lambda m: m.relevance_score, reverse=True)
        return ordered[:max(0, limit)]

    def _bump(self, matches: Dict[str, ResourceMatch], resource_id: str, points: float,
              reason: Optional[str], keyword: str) -> None:
        match = matches.get(resource_id)
        if match is None:
            matches[resource_id] = ResourceMatch(self.resources[resource_id], points, reason or "", [keyword])
            return
        match.relevance_score += points
        match.matched_keywords.append(keyword)
        if reason:
            match.reason = reason

    def fast_resource_match(self, classification: Classification, limit: int = 3,
                            cultural_context: Optional[str] = None) -> List[ResourceMatch]:
        if not self.indexed:
            logger.warning("[ResourceMatcher] Resources not indexed yet")
            return []

        matches: Dict[str, ResourceMatch] = {}
        category = classification.category.value.lower()

        for rid in self.category_index.get(category, []):
            self._bump(matches, rid, CATEGORY_SCORE, f"Matches category: {category}", category)

        if classification.subcategory:
            sub = classification.subcategory.lower()
            for rid in self.category_index.get(sub, []):
                self._bump(matches, rid, SUBCATEGORY_SCORE, f"Matches subcategory: {sub}", sub)

        intensity = classification.emotional_intensity
        if intensity >= CRISIS_INTENSITY_THRESHOLD:
            reason = f"Crisis resource for high emotional intensity ({intensity})"
            for rid in self.category_index.get("crisis", []):
                if self.resources[rid].category == "crisis":
                    self._bump(matches, rid, CRISIS_BOOST, reason, "crisis")

        if cultural_context:
            boosted = set()
            for tag in CULTURAL_TAGS:
                for rid in self.cultural_index.get(tag, []):
                    if rid in boosted:
                        continue
                    boosted.add(rid)
                    reason = None if rid in matches else "Culturally relevant resource"
                    self._bump(matches, rid, CULTURAL_BOOST, reason, "culturally-relevant")

        results = self._ranked(matches, limit)
        logger.debug(f"[ResourceMatcher] {category}/{classification.subcategory} → {[m.resource.id for m in results]}")
        return results

    def search_resources(self, query: str, limit: int = 5) -> List[ResourceMatch]:
        """Free-text search: +1 per query keyword found in a resource's index entries."""
        if not self.indexed:
            logger.warning("[ResourceMatcher] Resources not indexed yet")
            return []
        matches: Dict[str, ResourceMatch] = {}
        for keyword in extract_keywords(query):
            for rid in self.keyword_index.get(keyword, []):
                self._bump(matches, rid, 1, f"Matches search: {query}", keyword)
        return self._ranked(matches, limit)

    def get_resources_by_category(self, category: str) -> List[Resource]:
        return [self.resources[rid] for rid in self.category_index.get((category or "").lower(), [])]

    def get_crisis_resources(self) -> List[Resource]:
        return [r for r in self.get_resources_by_category("crisis") if r.category == "crisis"]

    def get_stats(self) -> Dict[str, Any]:
        return {
            "indexed": self.indexed,
            "total_resources": len(self.resources),
            "keywords": len(self.keyword_index),
            "categories": len(self.category_index),
            "cultural_tags": len(self.cultural_index),
            "category_breakdown": {k: len(v) for k, v in self.category_index.items()},
        }
