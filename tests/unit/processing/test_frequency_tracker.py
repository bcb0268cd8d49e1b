from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from campus_pulse.processing.frequency_tracker import (
    WINDOW_MINUTES,
    FrequencyTracker,
    format_frequency,
    is_high_frequency,
)
from campus_pulse.processing.triage_persistence import PersistStatus
from campus_pulse.storage.models import FrequencyMetric

pytestmark = pytest.mark.unit


@pytest.mark.asyncio
async def test_track_counts_window_and_records_metric(mock_db_session: AsyncMock) -> None:
    issue_id = uuid4()
    now = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
    mock_db_session.scalar.return_value = 3

    result = await FrequencyTracker(session=mock_db_session).track(issue_id, now=now)

    assert result.count == 3
    assert result.persist.status is PersistStatus.WRITTEN
    metric = mock_db_session.add.call_args.args[0]
    assert isinstance(metric, FrequencyMetric)
    assert metric.aggregated_issue_id == issue_id
    assert metric.report_count == 3
    assert metric.time_window_minutes == WINDOW_MINUTES
    assert metric.calculated_at == now

    query = mock_db_session.scalar.await_args.args[0]
    assert now - timedelta(minutes=30) in query.compile().params.values()


@pytest.mark.asyncio
async def test_track_keeps_count_when_metric_write_fails(mock_db_session: AsyncMock) -> None:
    mock_db_session.scalar.return_value = 2
    mock_db_session.flush.side_effect = OperationalError("insert", {}, Exception("db down"))

    result = await FrequencyTracker(session=mock_db_session).track(uuid4())

    assert result.count == 2
    assert result.persist.written is False
    assert result.persist.record == "frequency_metric"


@pytest.mark.asyncio
async def test_history_rejects_non_positive_limit(mock_db_session: AsyncMock) -> None:
    with pytest.raises(ValueError, match="limit must be >= 1"):
        await FrequencyTracker(session=mock_db_session).history(uuid4(), limit=0)


def test_frequency_formatting() -> None:
    assert format_frequency(0) == "No recent reports"
    assert format_frequency(1) == "1 report in last 30 minutes"
    assert format_frequency(4) == "4 reports in last 30 minutes"
    assert is_high_frequency(5) is True
    assert is_high_frequency(4) is False
