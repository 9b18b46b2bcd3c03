# classification/__init__.py
"""
Classification stack, cheapest first: clear-case regex rules, rule-based
keywords, hybrid (regex + selective model call), full model classifier, all
wrapped by the graceful degradation chain.
"""

from .types import (
    Category,
    Classification,
    ClassificationError,
    ClassificationParseError,
    ClassificationValidationError,
    Message,
    Method,
    ModelUnavailableError,
)

__all__ = [
    "Category",
    "Classification",
    "ClassificationError",
    "ClassificationParseError",
    "ClassificationValidationError",
    "Message",
    "Method",
    "ModelUnavailableError",
]
