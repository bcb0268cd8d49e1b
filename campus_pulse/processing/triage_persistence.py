"""
Writes for triage output and priority snapshots.

Metadata upserts are critical: errors propagate to the caller. Snapshot
and metric writes are best-effort and report a typed outcome instead.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from campus_pulse.core.observability import record_persist_failure
from campus_pulse.core.taxonomy import clamp_unit
from campus_pulse.processing.triage_types import AutomationOutput
from campus_pulse.storage.models import AutomationMetadata, PrioritySnapshot

logger = structlog.get_logger(__name__)


class PersistStatus(StrEnum):
    WRITTEN = "written"
    UNWRITTEN = "unwritten"


class TriageStatus(StrEnum):
    COMPLETED = "completed"
    DEGRADED = "degraded"
    PENDING = "pending"


@dataclass(slots=True, frozen=True)
class PersistOutcome:
    """Result of a best-effort write."""

    status: PersistStatus
    record: str
    error: str | None = None

    @property
    def written(self) -> bool:
        return self.status is PersistStatus.WRITTEN


async def best_effort_write(
    session: AsyncSession,
    *,
    record: str,
    write: Callable[[], Awaitable[None]],
) -> PersistOutcome:
    """Run ``write`` inside a savepoint; a database error rolls back only the savepoint."""
    try:
        async with session.begin_nested():
            await write()
            await session.flush()
    except SQLAlchemyError as exc:
        record_persist_failure(record=record)
        logger.warning("Best-effort write failed", record=record, error=str(exc)[:1000])
        return PersistOutcome(status=PersistStatus.UNWRITTEN, record=record, error=str(exc))
    return PersistOutcome(status=PersistStatus.WRITTEN, record=record)


def metadata_values(
    output: AutomationOutput,
    *,
    model: str | None,
    triage_status: TriageStatus,
    now: datetime | None = None,
) -> dict[str, Any]:
    timestamp = (now or datetime.now(tz=UTC)).isoformat()
    return {
        "extracted_category": output.category,
        "urgency_score": round(clamp_unit(output.urgency_score), 3),
        "impact_scope": output.impact_scope.value,
        "is_environmental": output.is_environmental,
        "confidence_score": round(clamp_unit(output.confidence), 3),
        "urgency_level": output.urgency_level.value,
        "report_type": output.report_type.value,
        "reporter_welfare_flag": output.reporter_welfare_flag,
        "requires_immediate_action": output.requires_immediate_action,
        "spam_confidence": round(clamp_unit(output.spam_confidence), 3),
        "triage_status": triage_status.value,
        "raw_model_output": output.to_trace(model=model, timestamp=timestamp),
    }


class TriagePersistence:
    """AutomationMetadata and PrioritySnapshot writes for one session."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def upsert_metadata(
        self,
        report_id: UUID,
        output: AutomationOutput,
        *,
        model: str | None = None,
        triage_status: TriageStatus = TriageStatus.COMPLETED,
    ) -> None:
        """Insert or replace the single metadata row for ``report_id``."""
        values = metadata_values(output, model=model, triage_status=triage_status)
        statement = pg_insert(AutomationMetadata).values(issue_report_id=report_id, **values)
        statement = statement.on_conflict_do_update(
            index_elements=[AutomationMetadata.issue_report_id],
            set_={**values, "updated_at": datetime.now(tz=UTC)},
        )
        await self.session.execute(statement)
        await self.session.flush()

    async def mark_degraded(self, report_id: UUID, *, error: str) -> bool:
        """Flag existing metadata as degraded; returns whether a row was updated."""
        metadata = await self.load_metadata(report_id)
        if metadata is None:
            return False
        trace = dict(metadata.raw_model_output or {})
        trace["pipeline_error"] = error[:1000]
        metadata.triage_status = TriageStatus.DEGRADED.value
        metadata.raw_model_output = trace
        await self.session.flush()
        return True

    async def load_metadata(self, report_id: UUID) -> AutomationMetadata | None:
        query = (
            select(AutomationMetadata)
            .where(AutomationMetadata.issue_report_id == report_id)
            .limit(1)
        )
        metadata: AutomationMetadata | None = await self.session.scalar(query)
        return metadata

    async def patch_spam_fields(
        self,
        report_id: UUID,
        *,
        report_type: str,
        spam_confidence: float,
        trace_updates: dict[str, Any],
    ) -> AutomationMetadata | None:
        """Change only the spam decision, leaving every other triage field intact."""
        metadata = await self.load_metadata(report_id)
        if metadata is None:
            return None
        trace = dict(metadata.raw_model_output or {})
        trace.update(trace_updates)
        await self.session.execute(
            update(AutomationMetadata)
            .where(AutomationMetadata.id == metadata.id)
            .values(
                report_type=report_type,
                spam_confidence=clamp_unit(spam_confidence),
                raw_model_output=trace,
            )
        )
        await self.session.flush()
        await self.session.refresh(metadata)
        return metadata

    async def store_priority_snapshot(
        self,
        issue_id: UUID,
        *,
        total_score: float,
        components: dict[str, float] | None = None,
        is_override: bool = False,
    ) -> PersistOutcome:
        parts = components or {}

        async def _write() -> None:
            self.session.add(
                PrioritySnapshot(
                    aggregated_issue_id=issue_id,
                    total_score=total_score,
                    urgency_component=parts.get("urgency"),
                    impact_component=parts.get("impact"),
                    frequency_component=parts.get("frequency"),
                    environmental_component=parts.get("environmental"),
                    is_override=is_override,
                )
            )

        return await best_effort_write(self.session, record="priority_snapshot", write=_write)
