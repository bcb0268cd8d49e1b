from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from campus_pulse.core.taxonomy import Authority
from campus_pulse.processing.reference_data import ReferenceDataError
from campus_pulse.processing.routing_resolver import (
    RoutingDecision,
    RoutingResolver,
    determine_authority,
    routing_suggestion,
)

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    ("category", "location_type", "authority", "reason"),
    [
        (
            "safety",
            "hostel",
            Authority.SECURITY_IN_CHARGE,
            "Safety issues always route to Security In-Charge",
        ),
        (
            "academics",
            "academic_block",
            Authority.ACADEMIC_AFFAIRS,
            "Academic issues route to Academic Affairs",
        ),
        (
            "wifi",
            "hostel",
            Authority.ADMINISTRATIVE_OFFICE,
            "WiFi issues route to Administrative Office",
        ),
        ("water", "hostel", Authority.PROVOST, "water issue in hostel location routes to Provost"),
        ("food", "hostel", Authority.PROVOST, "food issue in hostel location routes to Provost"),
        (
            "electricity",
            "academic_block",
            Authority.ADMINISTRATIVE_OFFICE,
            "electricity issue in academic_block routes to Administrative Office",
        ),
        ("food", "canteen", Authority.ADMINISTRATIVE_OFFICE, "Default routing to Administrative Office"),
    ],
)
def test_determine_authority_table(
    category: str,
    location_type: str,
    authority: Authority,
    reason: str,
) -> None:
    rule = determine_authority(category, location_type)

    assert rule.authority is authority
    assert rule.reason == reason


def test_determine_authority_normalizes_inputs() -> None:
    rule = determine_authority(" WATER ", None)

    assert rule.authority is Authority.ADMINISTRATIVE_OFFICE
    assert rule.reason == "water issue in common_area routes to Administrative Office"


def test_routing_suggestion_reports_confidence() -> None:
    assert routing_suggestion("safety", "sports")["confidence"] == "high"
    assert routing_suggestion("hostel", "hostel") == {
        "authority_name": "Provost",
        "reason": "hostel issue in hostel location routes to Provost",
        "confidence": "high",
    }
    assert routing_suggestion("food", "canteen")["confidence"] == "medium"


@pytest.mark.asyncio
async def test_route_resolves_authority_row(mock_db_session: AsyncMock) -> None:
    authority_id = uuid4()
    mock_db_session.scalar.return_value = SimpleNamespace(id=authority_id, name="Provost")

    decision = await RoutingResolver(session=mock_db_session).route("water", "hostel")

    assert decision == RoutingDecision(
        authority_id=authority_id,
        authority_name="Provost",
        reason="water issue in hostel location routes to Provost",
    )


@pytest.mark.asyncio
async def test_route_missing_authority_raises(mock_db_session: AsyncMock) -> None:
    mock_db_session.scalar.return_value = None

    with pytest.raises(ReferenceDataError, match="Authority not found: Security In-Charge"):
        await RoutingResolver(session=mock_db_session).route("safety", "hostel")


@pytest.mark.asyncio
async def test_apply_to_issue_sets_authority(mock_db_session: AsyncMock) -> None:
    issue = SimpleNamespace(authority_id=None)
    mock_db_session.get.return_value = issue
    decision = RoutingDecision(authority_id=uuid4(), authority_name="Provost", reason="r")

    await RoutingResolver(session=mock_db_session).apply_to_issue(uuid4(), decision)

    assert issue.authority_id == decision.authority_id
    mock_db_session.flush.assert_awaited_once()
