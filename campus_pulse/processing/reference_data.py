"""
Lookups over the seeded reference tables and submitted reports.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_pulse.storage.models import Authority, IssueCategory, IssueReport, Location


class ReferenceDataError(LookupError):
    """A reference row the pipeline depends on is missing."""


class ReferenceDataService:
    """Read-only access to categories, locations, authorities and reports."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_category_names(self) -> list[str]:
        query = select(IssueCategory.name).order_by(IssueCategory.name.asc())
        return list((await self.session.scalars(query)).all())

    async def list_location_names(self) -> list[str]:
        query = (
            select(Location.name)
            .where(Location.is_active.is_(True))
            .order_by(Location.name.asc())
        )
        return list((await self.session.scalars(query)).all())

    async def get_category(self, category_id: UUID) -> IssueCategory:
        category = await self.session.get(IssueCategory, category_id)
        if category is None:
            msg = f"Category not found: {category_id}"
            raise ReferenceDataError(msg)
        return category

    async def get_location(self, location_id: UUID) -> Location:
        location = await self.session.get(Location, location_id)
        if location is None:
            msg = f"Location not found: {location_id}"
            raise ReferenceDataError(msg)
        return location

    async def get_authority_by_name(self, name: str) -> Authority | None:
        query = select(Authority).where(Authority.name == name).limit(1)
        authority: Authority | None = await self.session.scalar(query)
        return authority

    async def get_report(self, report_id: UUID) -> IssueReport:
        report = await self.session.get(IssueReport, report_id)
        if report is None:
            msg = f"Issue report not found: {report_id}"
            raise ReferenceDataError(msg)
        return report
