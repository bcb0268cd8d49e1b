from __future__ import annotations

import asyncio
from uuid import UUID

import pytest
from sqlalchemy import func, select

from campus_pulse.processing.aggregation_engine import AggregationEngine, AggregationResult
from campus_pulse.storage.database import async_session_maker
from campus_pulse.storage.models import AggregatedIssue, IssueAggregationMap
from tests.integration.conftest import ReferenceRows, create_report, ensure_reference_rows

pytestmark = pytest.mark.integration


async def _aggregate_task(
    *,
    report_id: UUID,
    rows: ReferenceRows,
    ready_queue: asyncio.Queue[None],
    start_event: asyncio.Event,
) -> AggregationResult:
    async with async_session_maker() as session:
        engine = AggregationEngine(session=session)
        ready_queue.put_nowait(None)
        await start_event.wait()
        result = await engine.aggregate(report_id, rows.category_id, rows.location_id)
        await session.commit()
    return result


@pytest.mark.asyncio
async def test_concurrent_first_reports_share_one_open_issue() -> None:
    rows = await ensure_reference_rows(category="water", location="Boys Hostel B")
    report_ids = [
        await create_report(rows, title="No water supply"),
        await create_report(rows, title="Taps dry since morning"),
    ]
    start_event = asyncio.Event()
    ready_queue: asyncio.Queue[None] = asyncio.Queue()

    tasks = [
        asyncio.create_task(
            _aggregate_task(
                report_id=report_id,
                rows=rows,
                ready_queue=ready_queue,
                start_event=start_event,
            )
        )
        for report_id in report_ids
    ]

    await ready_queue.get()
    await ready_queue.get()
    start_event.set()
    results = await asyncio.gather(*tasks)

    assert results[0].aggregated_issue_id == results[1].aggregated_issue_id
    assert sorted(result.is_new for result in results) == [False, True]

    async with async_session_maker() as session:
        issue_count = await session.scalar(
            select(func.count(AggregatedIssue.id))
            .where(AggregatedIssue.canonical_category_id == rows.category_id)
            .where(AggregatedIssue.location_id == rows.location_id)
        )
        link_count = await session.scalar(
            select(func.count(IssueAggregationMap.id)).where(
                IssueAggregationMap.aggregated_issue_id == results[0].aggregated_issue_id
            )
        )

    assert int(issue_count or 0) == 1
    assert int(link_count or 0) == 2


@pytest.mark.asyncio
async def test_reaggregating_a_linked_report_is_idempotent() -> None:
    rows = await ensure_reference_rows(category="wifi", location="Central Library")
    report_id = await create_report(rows, title="Wifi down")

    async with async_session_maker() as session:
        engine = AggregationEngine(session=session)
        first = await engine.aggregate(report_id, rows.category_id, rows.location_id)
        second = await engine.aggregate(report_id, rows.category_id, rows.location_id)
        count = await engine.report_count(first.aggregated_issue_id)
        await session.commit()

    assert first.is_new is True
    assert second.is_new is False
    assert second.aggregated_issue_id == first.aggregated_issue_id
    assert count == 1


@pytest.mark.asyncio
async def test_resolved_issue_does_not_absorb_new_reports() -> None:
    rows = await ensure_reference_rows(category="electricity", location="Girls Hostel A")
    first_report = await create_report(rows, title="Power cut")

    async with async_session_maker() as session:
        first = await AggregationEngine(session=session).aggregate(
            first_report, rows.category_id, rows.location_id
        )
        issue = await session.get(AggregatedIssue, first.aggregated_issue_id)
        assert issue is not None
        issue.status = "resolved"
        await session.commit()

    second_report = await create_report(rows, title="Power cut again")
    async with async_session_maker() as session:
        second = await AggregationEngine(session=session).aggregate(
            second_report, rows.category_id, rows.location_id
        )
        await session.commit()

    assert second.is_new is True
    assert second.aggregated_issue_id != first.aggregated_issue_id
