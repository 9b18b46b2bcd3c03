"""
utils/crisis_detector.py

Instant, dependency-free crisis gate. Runs before every other classifier and
short-circuits the pipeline on a hit, so the highest-risk messages never wait
on a network call.

Patterns are grouped by the kind of language they catch. They are tuned for
recall: a false positive costs a crisis banner, a false negative can cost a
life. Apostrophes are optional and curly quotes are accepted because people
type "cant" and phones insert "can’t".

Module Contract:
- Purpose: Regex crisis detection + broad crisis keyword check
- Inputs: Message text (normalized or raw)
- Outputs: CrisisDetection(is_crisis, matched_pattern, matched_text)
- Dependencies: None
- Side effects: None (pure, synchronous)
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

_APOS = r"[’']?"

# (group name, pattern) in evaluation order
CRISIS_PATTERN_SOURCES: List[Tuple[str, str]] = [
    ("suicidal_ideation",
     r"\b(suicid\w*|kill(ing)? myself|end it all|want(ed)? to die|wanna die|better off dead|rather be dead)\b"),
    ("self_harm",
     r"\b(hurt(ing)? myself|harm(ing)? myself|self[\s-]?harm\w*|cut(ting)? myself|cutting)\b"),
    ("hopelessness",
     rf"\b(can{_APOS}t do this anymore|can{_APOS}t go on|can{_APOS}t take it anymore)\b"),
    ("not_wanting_to_live",
     rf"\b(don{_APOS}t want to (be here|live|exist)|done with life|no reason to live|not worth living)\b"),
    ("ending_life",
     r"\b(end(ing)? my life|take my (own )?life|ending it( all)?)\b"),
    ("planning",
     r"\b(have a plan to|set a date|wrote (a |my )?goodbye|final arrangements|gave away my things|this is my last day)\b"),
    ("finality",
     r"\b(goodbye forever|this is goodbye)\b"),
    ("burden",
     r"\b(better off without me|(a )?burden to everyone|nobody would miss me)\b"),
]

CRISIS_PATTERNS: List[Tuple[str, re.Pattern]] = [
    (name, re.compile(source, re.IGNORECASE)) for name, source in CRISIS_PATTERN_SOURCES
]

PATTERN_SUBCATEGORIES = {"self_harm": "self_harm", "hopelessness": "despair"}

# Substring roots used by the defensive re-checks in downstream classifiers.
# Broader than the patterns above on purpose.
CRISIS_KEYWORDS = (
    "suicid", "kill myself", "end it all", "ending it all", "want to die",
    "better off dead", "hurt myself", "self harm", "self-harm", "cutting myself",
    "cut myself", "end my life", "take my life", "no reason to live",
    "not worth living", "can't go on", "cant go on", "can’t go on",
)


@dataclass(frozen=True)
class CrisisDetection:
    """Result of the regex crisis gate."""
    is_crisis: bool
    matched_pattern: Optional[str] = None  # pattern group name, e.g. "self_harm"
    matched_text: Optional[str] = None

    @property
    def subcategory(self) -> str:
        """Crisis subcategory implied by the matched pattern group."""
        return PATTERN_SUBCATEGORIES.get(self.matched_pattern, "suicide")


NO_CRISIS = CrisisDetection(is_crisis=False)


def detect_crisis(text: str) -> CrisisDetection:
    """Return the first crisis pattern that matches `text`."""
    if not text:
        return NO_CRISIS
    for name, pattern in CRISIS_PATTERNS:
        match = pattern.search(text)
        if match:
            return CrisisDetection(True, name, match.group(0))
    return NO_CRISIS


def contains_crisis_keyword(text: str) -> bool:
    """Broad check: any crisis pattern or crisis keyword root in `text`."""
    if not text:
        return False
    lowered = text.lower()
    if any(keyword in lowered for keyword in CRISIS_KEYWORDS):
        return True
    return detect_crisis(lowered).is_crisis
