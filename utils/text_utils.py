"""
utils/text_utils.py

Small text helpers shared by the resource matcher and the handoff summary.

Module Contract:
- Purpose: Keyword extraction for inverted indexes, whole-word keyword scoring
- Inputs: Free text, keyword lists
- Outputs: Deduplicated keyword lists, match counts/scores
- Dependencies: None
- Side effects: None
"""

import re
from typing import Iterable, List

STOPWORDS = frozenset({
    "a", "an", "and", "are", "as", "at", "be", "by", "for", "from", "has", "he",
    "in", "is", "it", "its", "of", "on", "that", "the", "to", "was", "will",
    "with", "you", "your", "their", "our", "can",
})

_NON_WORD = re.compile(r"[^\w\s-]")


def extract_keywords(text: str, min_length: int = 3) -> List[str]:
    """Lowercased, stopword-free, deduplicated tokens in order of first appearance.

    Hyphens are kept inside tokens ("self-harm", "african-american") because
    cultural tags and catalog tags use them.
    """
    if not text:
        return []
    cleaned = _NON_WORD.sub(" ", text.lower())
    seen = {}
    for word in cleaned.split():
        if len(word) >= min_length and word not in STOPWORDS and word not in seen:
            seen[word] = None
    return list(seen)


def _word_pattern(keyword: str) -> re.Pattern:
    return re.compile(r"\b" + re.escape(keyword.lower()) + r"\b")


def count_keyword_matches(keywords: Iterable[str], text: str) -> int:
    """Number of keywords (or phrases) present in `text` as whole words."""
    lowered = (text or "").lower()
    if not lowered:
        return 0
    return sum(1 for k in keywords if _word_pattern(k).search(lowered))


def keyword_score(keywords: List[str], text: str) -> float:
    """Share of `keywords` found in `text`, 0.0 to 1.0."""
    if not keywords:
        return 0.0
    return count_keyword_matches(keywords, text) / len(keywords)


def truncate(text: str, limit: int) -> str:
    text = text or ""
    return text if len(text) <= limit else text[:limit]
