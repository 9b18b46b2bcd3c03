"""
Unit tests for utils/slang_normalizer.py

Tests:
- Whole-word slang expansion
- Longest-phrase precedence
- Crisis wording survives normalization
"""

from utils.slang_normalizer import normalize, expanded_terms


# =============================================================================
# normalize Tests
# =============================================================================

def test_normalize_lowercases():
    """normalize lowercases plain text"""
    assert normalize("Hello There") == "hello there"


def test_normalize_expands_acronyms():
    """Known acronyms are expanded"""
    assert normalize("idk tbh") == "i don't know to be honest"


def test_normalize_whole_words_only():
    """Slang keys inside longer words are left alone"""
    assert normalize("capital letters") == "capital letters"
    assert normalize("lollipop") == "lollipop"


def test_normalize_longest_phrase_wins():
    """Multi-word keys win over their single-word suffixes"""
    assert normalize("no cap") == "honestly"
    assert normalize("spill the tea") == "share the news"


def test_normalize_no_double_expansion():
    """An expansion is not re-expanded"""
    # "bro" -> "friend"; "friend" is not itself a key
    assert normalize("bro") == "friend"


def test_normalize_empty():
    """Empty and None input return an empty string"""
    assert normalize("") == ""
    assert normalize(None) == ""


def test_normalize_keeps_crisis_phrases():
    """Crisis phrases pass through untouched"""
    assert normalize("lowkey I want to kill myself") == "kind of secretly i want to kill myself"
    assert "end it all" in normalize("fml I just want to end it all")


# =============================================================================
# expanded_terms Tests
# =============================================================================

def test_expanded_terms_order():
    """expanded_terms reports pairs in order of appearance"""
    assert expanded_terms("idk lol") == [("idk", "i don't know"), ("lol", "laughing")]


def test_expanded_terms_none():
    """No slang gives an empty list"""
    assert expanded_terms("nothing to see here") == []
    assert expanded_terms("") == []
