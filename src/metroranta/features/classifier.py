"""
Amenity classifier: category + display name from OpenStreetMap tags.

Both the name fallbacks and the category selectors are ordered tables rather than
nested conditionals, so their precedence can be asserted directly in tests and the
Overpass query builder can reuse the same selectors.
"""

from __future__ import annotations

from typing import Mapping

from metroranta.domain.models import ALL_CATEGORIES, AmenityCategory

# A selector is a conjunction of exact tag matches, e.g. (("amenity", "cafe"),).
TagSelector = tuple[tuple[str, str], ...]

CATEGORY_SELECTORS: dict[AmenityCategory, tuple[TagSelector, ...]] = {
    "toilets": (
        (("amenity", "toilets"),),
        (("tourism", "information"), ("information", "office")),
    ),
    "cafes": (
        (("amenity", "cafe"),),
        (("amenity", "restaurant"),),
        (("amenity", "fast_food"),),
    ),
    "indoor": (
        (("amenity", "library"),),
        (("tourism", "museum"),),
        (("amenity", "community_centre"),),
        (("shop", "mall"),),
        (("public_transport", "station"),),
    ),
}

# First matching (tag, value) wins; the last element is the category default.
NAME_PRECEDENCE: dict[AmenityCategory, tuple[tuple[tuple[str, str], str], ...]] = {
    "toilets": (),
    "cafes": (
        (("amenity", "restaurant"), "Restaurant"),
        (("amenity", "fast_food"), "Fast Food"),
    ),
    "indoor": (
        (("amenity", "library"), "Library"),
        (("tourism", "museum"), "Museum"),
        (("amenity", "community_centre"), "Community Centre"),
        (("shop", "mall"), "Shopping Mall"),
        (("public_transport", "station"), "Station"),
    ),
}

DEFAULT_NAMES: dict[AmenityCategory, str] = {
    "toilets": "Public Toilet",
    "cafes": "Café",
    "indoor": "Indoor Space",
}

UNKNOWN_NAME = "Unknown"


def _tag(tags: Mapping[str, object] | None, key: str) -> str | None:
    if not tags:
        return None
    value = tags.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def resolve_name(tags: Mapping[str, object] | None, category: str) -> str:
    """Return `tags["name"]`, else the category's precedence-based default. Never raises."""
    name = _tag(tags, "name")
    if name:
        return name

    for (key, value), label in NAME_PRECEDENCE.get(category, ()):  # type: ignore[arg-type]
        if _tag(tags, key) == value:
            return label
    return DEFAULT_NAMES.get(category, UNKNOWN_NAME)  # type: ignore[arg-type]


def matches_selector(tags: Mapping[str, object] | None, selector: TagSelector) -> bool:
    return all(_tag(tags, key) == value for key, value in selector)


def classify(tags: Mapping[str, object] | None) -> AmenityCategory | None:
    """Assign a category from tags (toilets, then cafes, then indoor), or None."""
    for category in ALL_CATEGORIES:
        if any(matches_selector(tags, sel) for sel in CATEGORY_SELECTORS[category]):
            return category
    return None
