from __future__ import annotations

from uuid import UUID

import pytest
from sqlalchemy import func, select

from campus_pulse.processing.pipeline_coordinator import (
    PipelineCoordinator,
    PipelineRequest,
    PipelineResult,
)
from campus_pulse.processing.triage_orchestrator import TriageOrchestrator
from campus_pulse.storage.database import async_session_maker
from campus_pulse.storage.models import (
    AggregatedIssue,
    AutomationMetadata,
    IssueAggregationMap,
    PrioritySnapshot,
)
from tests.integration.conftest import ReferenceRows, create_report, ensure_reference_rows

pytestmark = pytest.mark.integration


async def _run_pipeline(
    rows: ReferenceRows,
    report_id: UUID,
    *,
    title: str,
    description: str,
) -> PipelineResult:
    async with async_session_maker() as session:
        coordinator = PipelineCoordinator(
            session=session,
            orchestrator=TriageOrchestrator(remote=None),
            model_name="heuristic",
        )
        result = await coordinator.run(
            PipelineRequest(
                report_id=report_id,
                title=title,
                description=description,
                category_id=rows.category_id,
                location_id=rows.location_id,
            )
        )
        await session.commit()
    return result


@pytest.mark.asyncio
async def test_two_wifi_reports_link_to_one_issue() -> None:
    rows = await ensure_reference_rows(category="wifi", location="Central Library")
    first_id = await create_report(rows, title="Wifi not working", description="Library wifi down")
    second_id = await create_report(rows, title="Internet down", description="No wifi in library")

    first = await _run_pipeline(
        rows, first_id, title="Wifi not working", description="Library wifi down"
    )
    second = await _run_pipeline(
        rows, second_id, title="Internet down", description="No wifi in library"
    )

    assert first.success and second.success
    assert first.aggregation_status == "new"
    assert second.aggregation_status == "linked"
    assert first.aggregated_issue_id == second.aggregated_issue_id

    async with async_session_maker() as session:
        report_count = await session.scalar(
            select(func.count(IssueAggregationMap.id)).where(
                IssueAggregationMap.aggregated_issue_id == first.aggregated_issue_id
            )
        )
        snapshot_count = await session.scalar(
            select(func.count(PrioritySnapshot.id)).where(
                PrioritySnapshot.aggregated_issue_id == first.aggregated_issue_id
            )
        )
        issue = await session.get(AggregatedIssue, first.aggregated_issue_id)

    assert int(report_count or 0) == 2
    assert int(snapshot_count or 0) == 2
    assert issue is not None
    assert issue.status == "open"
    assert issue.authority_id is not None


@pytest.mark.asyncio
async def test_spam_report_is_rejected_without_aggregation() -> None:
    rows = await ensure_reference_rows(category="water", location="Boys Hostel A")
    report_id = await create_report(rows, title="test")

    result = await _run_pipeline(rows, report_id, title="test", description="")

    assert result.success is True
    assert result.rejected is True
    assert result.aggregated_issue_id is None

    async with async_session_maker() as session:
        metadata = await session.scalar(
            select(AutomationMetadata).where(AutomationMetadata.issue_report_id == report_id)
        )
        link_count = await session.scalar(
            select(func.count(IssueAggregationMap.id)).where(
                IssueAggregationMap.issue_report_id == report_id
            )
        )

    assert metadata is not None
    assert metadata.report_type == "SPAM"
    assert int(link_count or 0) == 0
