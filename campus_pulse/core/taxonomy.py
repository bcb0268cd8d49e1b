"""
Fixed campus taxonomy: category slugs, location types, authorities, urgency bands.
"""

from __future__ import annotations

from enum import StrEnum


class UrgencyLevel(StrEnum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class ReportType(StrEnum):
    GENERAL = "GENERAL"
    SPAM = "SPAM"
    EMERGENCY = "EMERGENCY"


class ImpactScope(StrEnum):
    SINGLE = "single"
    MULTI = "multi"


class IssueStatus(StrEnum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"


OPEN_STATUSES: tuple[str, ...] = (IssueStatus.OPEN.value, IssueStatus.IN_PROGRESS.value)


class LocationType(StrEnum):
    HOSTEL = "hostel"
    ACADEMIC_BLOCK = "academic_block"
    COMMON_AREA = "common_area"
    HOSPITAL = "hospital"
    SPORTS = "sports"
    CANTEEN = "canteen"


DEFAULT_LOCATION_TYPE = LocationType.COMMON_AREA.value


class Authority(StrEnum):
    PROVOST = "Provost"
    ADMINISTRATIVE_OFFICE = "Administrative Office"
    SECURITY_IN_CHARGE = "Security In-Charge"
    ACADEMIC_AFFAIRS = "Academic Affairs"


DEFAULT_AUTHORITY = Authority.ADMINISTRATIVE_OFFICE.value

# Order matters for substring normalization: earlier slugs win.
VALID_CATEGORIES: tuple[str, ...] = (
    "wifi",
    "water",
    "sanitation",
    "electricity",
    "hostel",
    "academics",
    "safety",
    "food",
    "infrastructure",
)
DEFAULT_CATEGORY = "infrastructure"

ENVIRONMENTAL_CATEGORIES: frozenset[str] = frozenset(
    {"water", "electricity", "sanitation", "infrastructure"}
)

DISPLAY_TO_SLUG: dict[str, str] = {
    "wifi": "wifi",
    "wi-fi": "wifi",
    "wi-fi/internet": "wifi",
    "internet": "wifi",
    "water": "water",
    "water supply": "water",
    "electricity": "electricity",
    "electricity/power": "electricity",
    "power": "electricity",
    "sanitation": "sanitation",
    "cleanliness/sanitation": "sanitation",
    "cleanliness": "sanitation",
    "hostel": "hostel",
    "academics": "academics",
    "academic": "academics",
    "safety": "safety",
    "security": "safety",
    "food": "food",
    "food quality": "food",
    "canteen": "food",
    "mess": "food",
    "infrastructure": "infrastructure",
}

# Substring hints, checked in order; the first hit wins.
_CATEGORY_HINTS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("wifi", "internet"), "wifi"),
    (("water",), "water"),
    (("electric", "power"), "electricity"),
    (("sanitation", "clean"), "sanitation"),
    (("hostel",), "hostel"),
    (("academic", "exam"), "academics"),
    (("safety", "security"), "safety"),
    (("food", "canteen", "mess"), "food"),
)
_DISPLAY_EXTRA_HINTS: dict[str, tuple[str, ...]] = {"academics": ("class",)}


def _match_hints(normalized: str, *, include_display_extras: bool) -> str:
    for hints, slug in _CATEGORY_HINTS:
        extras = _DISPLAY_EXTRA_HINTS.get(slug, ()) if include_display_extras else ()
        if any(hint in normalized for hint in (*hints, *extras)):
            return slug
    return DEFAULT_CATEGORY


def to_valid_category(raw: str | None) -> str:
    """Normalize a category name onto a known slug, defaulting to infrastructure."""
    normalized = (raw or "").strip().lower()
    if normalized in VALID_CATEGORIES:
        return normalized
    return _match_hints(normalized, include_display_extras=False)


def display_name_to_slug(display_name: str | None) -> str:
    """Map a model-chosen category display name back to its slug."""
    normalized = (display_name or "").strip().lower()
    mapped = DISPLAY_TO_SLUG.get(normalized)
    if mapped is not None:
        return mapped
    return _match_hints(normalized, include_display_extras=True)


def is_environmental_category(category: str) -> bool:
    return category in ENVIRONMENTAL_CATEGORIES


def urgency_level_for_score(score: float) -> UrgencyLevel:
    if score >= 0.9:
        return UrgencyLevel.CRITICAL
    if score >= 0.7:
        return UrgencyLevel.HIGH
    if score >= 0.5:
        return UrgencyLevel.MEDIUM
    return UrgencyLevel.LOW


def clamp_unit(value: float) -> float:
    """Clamp to [0, 1]; NaN becomes 0."""
    if value != value:
        return 0.0
    return max(0.0, min(1.0, value))
