"""
Aggregation of reports into canonical issues keyed by (category, location).

A tuple has at most one open or in-progress issue. Concurrent first reports
for the same tuple race on the partial unique index; the loser re-reads
the winner instead of failing.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

import structlog
from sqlalchemy import func, select, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from campus_pulse.core.observability import record_aggregation_decision
from campus_pulse.core.taxonomy import OPEN_STATUSES, IssueStatus
from campus_pulse.storage.models import (
    OPEN_ISSUE_PREDICATE,
    AggregatedIssue,
    IssueAggregationMap,
    IssueReport,
)

logger = structlog.get_logger(__name__)


@dataclass(slots=True, frozen=True)
class AggregationResult:
    aggregated_issue_id: UUID
    is_new: bool


class AggregationEngine:
    """Find-or-create the canonical issue for a report and link it."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def aggregate(
        self,
        report_id: UUID,
        category_id: UUID,
        location_id: UUID,
    ) -> AggregationResult:
        existing_issue_id = await self._linked_issue_id(report_id)
        if existing_issue_id is not None:
            record_aggregation_decision(decision="already_linked")
            return AggregationResult(aggregated_issue_id=existing_issue_id, is_new=False)

        issue_id = await self._find_open_issue_id(category_id, location_id)
        is_new = False
        race_lost = False
        if issue_id is None:
            issue_id = await self._insert_open_issue(category_id, location_id)
            is_new = issue_id is not None
        if issue_id is None:
            # Lost the insert race: another report created the issue first.
            issue_id = await self._find_open_issue_id(category_id, location_id)
            if issue_id is None:
                msg = (
                    "Failed to create or load open aggregated issue for "
                    f"category={category_id} location={location_id}"
                )
                raise RuntimeError(msg)
            race_lost = True

        linked_issue_id = await self._link_report(report_id, issue_id)
        if linked_issue_id != issue_id:
            is_new = False

        if race_lost:
            decision = "race_lost"
        else:
            decision = "created" if is_new else "joined"
        record_aggregation_decision(decision=decision)
        logger.info(
            "Report aggregated",
            report_id=str(report_id),
            aggregated_issue_id=str(linked_issue_id),
            is_new=is_new,
        )
        return AggregationResult(aggregated_issue_id=linked_issue_id, is_new=is_new)

    async def report_count(self, issue_id: UUID) -> int:
        query = select(func.count(IssueAggregationMap.id)).where(
            IssueAggregationMap.aggregated_issue_id == issue_id
        )
        count = await self.session.scalar(query)
        return int(count or 0)

    async def linked_reports(self, issue_id: UUID) -> list[IssueReport]:
        query = (
            select(IssueReport)
            .join(IssueAggregationMap, IssueAggregationMap.issue_report_id == IssueReport.id)
            .where(IssueAggregationMap.aggregated_issue_id == issue_id)
            .order_by(IssueReport.created_at.asc())
        )
        return list((await self.session.scalars(query)).all())

    async def _linked_issue_id(self, report_id: UUID) -> UUID | None:
        query = (
            select(IssueAggregationMap.aggregated_issue_id)
            .where(IssueAggregationMap.issue_report_id == report_id)
            .limit(1)
        )
        issue_id: UUID | None = await self.session.scalar(query)
        return issue_id

    async def _find_open_issue_id(self, category_id: UUID, location_id: UUID) -> UUID | None:
        query = (
            select(AggregatedIssue.id)
            .where(AggregatedIssue.canonical_category_id == category_id)
            .where(AggregatedIssue.location_id == location_id)
            .where(AggregatedIssue.status.in_(OPEN_STATUSES))
            .order_by(AggregatedIssue.created_at.asc())
            .limit(1)
        )
        issue_id: UUID | None = await self.session.scalar(query)
        return issue_id

    async def _insert_open_issue(self, category_id: UUID, location_id: UUID) -> UUID | None:
        statement = (
            pg_insert(AggregatedIssue)
            .values(
                canonical_category_id=category_id,
                location_id=location_id,
                status=IssueStatus.OPEN.value,
            )
            .on_conflict_do_nothing(
                index_elements=[
                    AggregatedIssue.canonical_category_id,
                    AggregatedIssue.location_id,
                ],
                index_where=text(OPEN_ISSUE_PREDICATE),
            )
            .returning(AggregatedIssue.id)
        )
        issue_id: UUID | None = await self.session.scalar(statement)
        return issue_id

    async def _link_report(self, report_id: UUID, issue_id: UUID) -> UUID:
        try:
            async with self.session.begin_nested():
                self.session.add(
                    IssueAggregationMap(issue_report_id=report_id, aggregated_issue_id=issue_id)
                )
                await self.session.flush()
        except IntegrityError:
            # A concurrent run linked this report already.
            existing = await self._linked_issue_id(report_id)
            if existing is None:
                raise
            return existing
        return issue_id
