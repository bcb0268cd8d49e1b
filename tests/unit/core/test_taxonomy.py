from __future__ import annotations

import pytest

from campus_pulse.core.taxonomy import (
    UrgencyLevel,
    clamp_unit,
    display_name_to_slug,
    is_environmental_category,
    to_valid_category,
    urgency_level_for_score,
)

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("water", "water"),
        (" WiFi ", "wifi"),
        ("Internet outage", "wifi"),
        ("power", "electricity"),
        ("cleanliness", "sanitation"),
        ("exam hall", "academics"),
        ("mess food", "food"),
        ("", "infrastructure"),
        (None, "infrastructure"),
        ("roads", "infrastructure"),
    ],
)
def test_to_valid_category(raw: str | None, expected: str) -> None:
    assert to_valid_category(raw) == expected


def test_display_name_to_slug_prefers_table_then_hints() -> None:
    assert display_name_to_slug("Wi-Fi/Internet") == "wifi"
    assert display_name_to_slug("Food Quality") == "food"
    assert display_name_to_slug("Class timings") == "academics"
    assert to_valid_category("Class timings") == "infrastructure"


@pytest.mark.parametrize(
    ("score", "level"),
    [
        (0.95, UrgencyLevel.CRITICAL),
        (0.9, UrgencyLevel.CRITICAL),
        (0.7, UrgencyLevel.HIGH),
        (0.5, UrgencyLevel.MEDIUM),
        (0.49, UrgencyLevel.LOW),
    ],
)
def test_urgency_level_for_score(score: float, level: UrgencyLevel) -> None:
    assert urgency_level_for_score(score) is level


def test_environmental_set_and_clamp() -> None:
    assert is_environmental_category("water") is True
    assert is_environmental_category("wifi") is False
    assert clamp_unit(1.4) == 1.0
    assert clamp_unit(-0.2) == 0.0
    assert clamp_unit(float("nan")) == 0.0
