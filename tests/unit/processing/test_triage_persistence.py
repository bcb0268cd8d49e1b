from __future__ import annotations

from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from campus_pulse.core.taxonomy import ReportType, UrgencyLevel
from campus_pulse.processing.triage_persistence import (
    PersistStatus,
    TriagePersistence,
    TriageStatus,
    metadata_values,
)
from campus_pulse.processing.triage_types import AutomationOutput
from campus_pulse.storage.models import PrioritySnapshot

pytestmark = pytest.mark.unit


def test_metadata_values_rounds_and_clamps_scores() -> None:
    output = AutomationOutput(
        category="water",
        urgency_score=0.75432,
        confidence=1.3,
        spam_confidence=-0.2,
        urgency_level=UrgencyLevel.HIGH,
        reasoning="Fast triage",
    )
    now = datetime(2026, 3, 1, 9, 30, tzinfo=UTC)

    values = metadata_values(output, model="heuristic", triage_status=TriageStatus.COMPLETED, now=now)

    assert values["urgency_score"] == 0.754
    assert values["confidence_score"] == 1.0
    assert values["spam_confidence"] == 0.0
    assert values["urgency_level"] == "HIGH"
    assert values["triage_status"] == "completed"
    assert values["raw_model_output"]["model"] == "heuristic"
    assert values["raw_model_output"]["timestamp"] == now.isoformat()
    assert values["raw_model_output"]["reasoning"] == "Fast triage"


@pytest.mark.asyncio
async def test_upsert_metadata_conflicts_on_report_id(mock_db_session: AsyncMock) -> None:
    report_id = uuid4()

    await TriagePersistence(session=mock_db_session).upsert_metadata(
        report_id,
        AutomationOutput(category="wifi"),
        model="gpt-4.1-nano",
    )

    statement = mock_db_session.execute.await_args.args[0]
    sql = str(statement.compile(dialect=postgresql.dialect()))
    assert "INSERT INTO automation_metadata" in sql
    assert "ON CONFLICT (issue_report_id) DO UPDATE" in sql
    mock_db_session.flush.assert_awaited_once()


@pytest.mark.asyncio
async def test_mark_degraded_records_pipeline_error(mock_db_session: AsyncMock) -> None:
    metadata = SimpleNamespace(triage_status="completed", raw_model_output={"model": "x"})
    mock_db_session.scalar.return_value = metadata

    updated = await TriagePersistence(session=mock_db_session).mark_degraded(
        uuid4(), error="Category not found"
    )

    assert updated is True
    assert metadata.triage_status == "degraded"
    assert metadata.raw_model_output == {"model": "x", "pipeline_error": "Category not found"}


@pytest.mark.asyncio
async def test_mark_degraded_without_metadata_row(mock_db_session: AsyncMock) -> None:
    mock_db_session.scalar.return_value = None

    assert await TriagePersistence(session=mock_db_session).mark_degraded(uuid4(), error="x") is False


@pytest.mark.asyncio
async def test_patch_spam_fields_merges_trace(mock_db_session: AsyncMock) -> None:
    metadata = SimpleNamespace(id=uuid4(), raw_model_output={"reasoning": "r"})
    mock_db_session.scalar.return_value = metadata
    mock_db_session.refresh = AsyncMock()

    patched = await TriagePersistence(session=mock_db_session).patch_spam_fields(
        uuid4(),
        report_type=ReportType.GENERAL.value,
        spam_confidence=0.0,
        trace_updates={"admin_marked_not_spam": True},
    )

    assert patched is metadata
    statement = mock_db_session.execute.await_args.args[0]
    params = statement.compile().params
    assert params["report_type"] == "GENERAL"
    assert params["raw_model_output"] == {"reasoning": "r", "admin_marked_not_spam": True}
    mock_db_session.refresh.assert_awaited_once_with(metadata)


@pytest.mark.asyncio
async def test_store_priority_snapshot_writes_components(mock_db_session: AsyncMock) -> None:
    issue_id = uuid4()

    outcome = await TriagePersistence(session=mock_db_session).store_priority_snapshot(
        issue_id,
        total_score=71.25,
        components={"urgency": 20.0, "impact": 6.93, "frequency": 2.5, "environmental": 25.0},
    )

    assert outcome.status is PersistStatus.WRITTEN
    snapshot = mock_db_session.add.call_args.args[0]
    assert isinstance(snapshot, PrioritySnapshot)
    assert snapshot.aggregated_issue_id == issue_id
    assert snapshot.impact_component == 6.93
    assert snapshot.is_override is False


@pytest.mark.asyncio
async def test_store_priority_snapshot_failure_is_reported_not_raised(
    mock_db_session: AsyncMock,
) -> None:
    mock_db_session.flush.side_effect = OperationalError("insert", {}, Exception("db down"))

    outcome = await TriagePersistence(session=mock_db_session).store_priority_snapshot(
        uuid4(), total_score=50.0
    )

    assert outcome.written is False
    assert outcome.record == "priority_snapshot"
    assert outcome.error is not None
