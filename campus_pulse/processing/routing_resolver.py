"""
Deterministic authority routing by category and location type.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from campus_pulse.core.taxonomy import DEFAULT_LOCATION_TYPE, Authority, LocationType
from campus_pulse.processing.reference_data import ReferenceDataError, ReferenceDataService
from campus_pulse.storage.models import AggregatedIssue

logger = structlog.get_logger(__name__)

_FIXED_ROUTES: dict[str, tuple[Authority, str]] = {
    "safety": (Authority.SECURITY_IN_CHARGE, "Safety issues always route to Security In-Charge"),
    "academics": (Authority.ACADEMIC_AFFAIRS, "Academic issues route to Academic Affairs"),
    "sanitation": (
        Authority.ADMINISTRATIVE_OFFICE,
        "Sanitation issues route to Administrative Office",
    ),
    "wifi": (Authority.ADMINISTRATIVE_OFFICE, "WiFi issues route to Administrative Office"),
    "infrastructure": (
        Authority.ADMINISTRATIVE_OFFICE,
        "Infrastructure issues route to Administrative Office",
    ),
}
_HOSTEL_PROVOST_CATEGORIES = frozenset({"water", "electricity", "hostel", "food"})
_UTILITY_CATEGORIES = frozenset({"water", "electricity"})


@dataclass(slots=True, frozen=True)
class RoutingRule:
    authority: Authority
    reason: str
    matched: str

    @property
    def confidence(self) -> str:
        return "high" if self.matched in {"fixed", "hostel"} else "medium"


@dataclass(slots=True, frozen=True)
class RoutingDecision:
    authority_id: UUID
    authority_name: str
    reason: str


def determine_authority(category_name: str, location_type: str | None) -> RoutingRule:
    """Pure lookup; rules are evaluated in order and the first match wins."""
    category = (category_name or "").strip().lower()
    loc_type = (location_type or DEFAULT_LOCATION_TYPE).strip().lower()

    fixed = _FIXED_ROUTES.get(category)
    if fixed is not None:
        return RoutingRule(authority=fixed[0], reason=fixed[1], matched="fixed")
    if loc_type == LocationType.HOSTEL.value and category in _HOSTEL_PROVOST_CATEGORIES:
        return RoutingRule(
            authority=Authority.PROVOST,
            reason=f"{category} issue in hostel location routes to Provost",
            matched="hostel",
        )
    if category in _UTILITY_CATEGORIES:
        return RoutingRule(
            authority=Authority.ADMINISTRATIVE_OFFICE,
            reason=f"{category} issue in {loc_type} routes to Administrative Office",
            matched="location",
        )
    return RoutingRule(
        authority=Authority.ADMINISTRATIVE_OFFICE,
        reason="Default routing to Administrative Office",
        matched="default",
    )


def routing_suggestion(category_name: str, location_type: str | None) -> dict[str, Any]:
    """Routing preview for admin screens."""
    rule = determine_authority(category_name, location_type)
    return {
        "authority_name": rule.authority.value,
        "reason": rule.reason,
        "confidence": rule.confidence,
    }


class RoutingResolver:
    """Resolves routing rules to authority rows and applies them to issues."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def route(self, category_name: str, location_type: str | None) -> RoutingDecision:
        rule = determine_authority(category_name, location_type)
        authority = await ReferenceDataService(self.session).get_authority_by_name(
            rule.authority.value
        )
        if authority is None:
            msg = f"Authority not found: {rule.authority.value}"
            raise ReferenceDataError(msg)
        return RoutingDecision(
            authority_id=authority.id,
            authority_name=authority.name,
            reason=rule.reason,
        )

    async def apply_to_issue(self, issue_id: UUID, decision: RoutingDecision) -> None:
        issue = await self.session.get(AggregatedIssue, issue_id)
        if issue is None:
            msg = f"Aggregated issue not found: {issue_id}"
            raise ReferenceDataError(msg)
        issue.authority_id = decision.authority_id
        await self.session.flush()
        logger.info(
            "Issue routed",
            aggregated_issue_id=str(issue_id),
            authority=decision.authority_name,
            reason=decision.reason,
        )
