"""
utils/slang_normalizer.py

Rewrites informal chat language into canonical phrasing before any detector
runs, so the crisis patterns and clear-case rules only have to know one
spelling of each idea.

Module Contract:
- Purpose: Deterministic slang/acronym expansion
- Inputs: Raw message text
- Outputs: Lowercased text with whole-word slang replaced
- Dependencies: None (compiled regexes over a static dictionary)
- Side effects: None
"""

import re
from typing import Dict, List, Tuple

# Keys are matched as whole words after lowercasing. None of the keys or
# expansions overlap a crisis indicator, so detector roots survive untouched.
SLANG_DICTIONARY: Dict[str, str] = {
    "brb": "be right back",
    "lol": "laughing",
    "idk": "i don't know",
    "idc": "i don't care",
    "smh": "shaking my head",
    "tbh": "to be honest",
    "imho": "in my humble opinion",
    "imo": "in my opinion",
    "fml": "my life is going badly",
    "wtf": "what the heck",
    "nvm": "never mind",
    "nm": "not much",
    "ily": "i love you",
    "hbd": "happy birthday",
    "yolo": "you only live once",
    "fomo": "fear of missing out",
    "bet": "okay",
    "cap": "lie",
    "no cap": "honestly",
    "deadass": "seriously",
    "lowkey": "kind of secretly",
    "highkey": "very openly",
    "sus": "suspicious",
    "lit": "exciting",
    "vibing": "relaxing",
    "salty": "bitter",
    "ghost": "stop replying",
    "ghosting": "ignoring me",
    "shade": "disrespect",
    "throwing shade": "being disrespectful",
    "tea": "gossip",
    "spill the tea": "share the news",
    "extra": "over the top",
    "goat": "greatest of all time",
    "w": "win",
    "l": "loss",
    "fam": "friends",
    "bruh": "friend",
    "bro": "friend",
    "mood": "relatable feeling",
}


def _compile(dictionary: Dict[str, str]) -> re.Pattern:
    # Longest keys first so "no cap" wins over "cap" and "spill the tea" over "tea".
    # One alternation means an expansion is never itself re-expanded.
    keys = sorted(dictionary, key=len, reverse=True)
    return re.compile(r"\b(" + "|".join(re.escape(k) for k in keys) + r")\b")


_SLANG_PATTERN = _compile(SLANG_DICTIONARY)


def normalize(text: str) -> str:
    """Lowercase `text` and expand slang. Unknown tokens pass through."""
    if not text:
        return ""
    return _SLANG_PATTERN.sub(lambda m: SLANG_DICTIONARY[m.group(1)], text.lower())


def expanded_terms(text: str) -> List[Tuple[str, str]]:
    """(slang, expansion) pairs found in `text`, in order of appearance."""
    if not text:
        return []
    return [(m.group(1), SLANG_DICTIONARY[m.group(1)]) for m in _SLANG_PATTERN.finditer(text.lower())]
