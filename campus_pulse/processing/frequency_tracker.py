"""
Rolling 30-minute report counts per canonical issue.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_pulse.processing.triage_persistence import PersistOutcome, best_effort_write
from campus_pulse.storage.models import FrequencyMetric, IssueAggregationMap, IssueReport

WINDOW_MINUTES = 30
HIGH_FREQUENCY_THRESHOLD = 5


@dataclass(slots=True, frozen=True)
class FrequencyResult:
    count: int
    persist: PersistOutcome


def format_frequency(count: int) -> str:
    if count <= 0:
        return "No recent reports"
    if count == 1:
        return f"1 report in last {WINDOW_MINUTES} minutes"
    return f"{count} reports in last {WINDOW_MINUTES} minutes"


def is_high_frequency(count: int) -> bool:
    return count >= HIGH_FREQUENCY_THRESHOLD


class FrequencyTracker:
    """Counts linked reports in the trailing window and records a metric row."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def track(self, issue_id: UUID, now: datetime | None = None) -> FrequencyResult:
        reference = now or datetime.now(tz=UTC)
        window_start = reference - timedelta(minutes=WINDOW_MINUTES)
        query = (
            select(func.count(IssueReport.id))
            .join(IssueAggregationMap, IssueAggregationMap.issue_report_id == IssueReport.id)
            .where(IssueAggregationMap.aggregated_issue_id == issue_id)
            .where(IssueReport.created_at >= window_start)
        )
        count = int(await self.session.scalar(query) or 0)

        async def _write() -> None:
            self.session.add(
                FrequencyMetric(
                    aggregated_issue_id=issue_id,
                    time_window_minutes=WINDOW_MINUTES,
                    report_count=count,
                    calculated_at=reference,
                )
            )

        outcome = await best_effort_write(self.session, record="frequency_metric", write=_write)
        return FrequencyResult(count=count, persist=outcome)

    async def latest(self, issue_id: UUID) -> FrequencyMetric | None:
        query = (
            select(FrequencyMetric)
            .where(FrequencyMetric.aggregated_issue_id == issue_id)
            .order_by(FrequencyMetric.calculated_at.desc())
            .limit(1)
        )
        metric: FrequencyMetric | None = await self.session.scalar(query)
        return metric

    async def history(self, issue_id: UUID, limit: int = 10) -> list[FrequencyMetric]:
        if limit < 1:
            msg = "limit must be >= 1"
            raise ValueError(msg)
        query = (
            select(FrequencyMetric)
            .where(FrequencyMetric.aggregated_issue_id == issue_id)
            .order_by(FrequencyMetric.calculated_at.desc())
            .limit(limit)
        )
        return list((await self.session.scalars(query)).all())
