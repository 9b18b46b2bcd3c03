# resources/__init__.py
"""Static resource catalog and the inverted-index matcher built over it."""

from .default_resources import DEFAULT_RESOURCES, Resource, load_default_resources
from .resource_matcher import ResourceMatch, SmartResourceMatcher

__all__ = ["DEFAULT_RESOURCES", "Resource", "ResourceMatch", "SmartResourceMatcher", "load_default_resources"]
