"""
Audited admin operations on canonical issues and reports.

Every operation appends an AdminAction with the previous and new values.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from campus_pulse.core.taxonomy import IssueStatus, ReportType
from campus_pulse.processing.triage_persistence import TriagePersistence
from campus_pulse.storage.models import AdminAction, AggregatedIssue, Authority, PrioritySnapshot

if TYPE_CHECKING:
    from campus_pulse.processing.pipeline_coordinator import PipelineCoordinator, PipelineResult

logger = structlog.get_logger(__name__)


class AdminActionError(ValueError):
    """An admin operation cannot be applied to the current state."""


class AdminActionService:
    """Applies admin decisions and records them in the audit trail."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        persistence: TriagePersistence | None = None,
        coordinator: PipelineCoordinator | None = None,
    ) -> None:
        self.session = session
        self.persistence = persistence or TriagePersistence(session=session)
        self.coordinator = coordinator

    async def assign(self, issue_id: UUID, authority_id: UUID, *, admin_id: UUID) -> AdminAction:
        issue = await self._get_issue(issue_id)
        authority = await self.session.get(Authority, authority_id)
        if authority is None:
            msg = f"Authority not found: {authority_id}"
            raise AdminActionError(msg)
        previous = {"authority_id": _uuid_str(issue.authority_id)}
        issue.authority_id = authority_id
        return await self._record(
            admin_id=admin_id,
            action_type="assign",
            issue_id=issue_id,
            previous=previous,
            new={"authority_id": str(authority_id)},
        )

    async def change_status(
        self,
        issue_id: UUID,
        status: str,
        *,
        admin_id: UUID,
        action_type: str = "change_status",
        notes: str | None = None,
    ) -> AdminAction:
        try:
            target = IssueStatus(status)
        except ValueError as exc:
            msg = f"Unsupported issue status: {status}"
            raise AdminActionError(msg) from exc

        issue = await self._get_issue(issue_id)
        previous = {"status": issue.status}
        try:
            async with self.session.begin_nested():
                issue.status = target.value
                await self.session.flush()
        except IntegrityError as exc:
            msg = "Another open issue already exists for this category and location"
            raise AdminActionError(msg) from exc
        return await self._record(
            admin_id=admin_id,
            action_type=action_type,
            issue_id=issue_id,
            previous=previous,
            new={"status": target.value},
            notes=notes,
        )

    async def resolve(self, issue_id: UUID, *, admin_id: UUID, notes: str | None = None) -> AdminAction:
        return await self.change_status(
            issue_id,
            IssueStatus.RESOLVED.value,
            admin_id=admin_id,
            action_type="resolve",
            notes=notes,
        )

    async def reopen(self, issue_id: UUID, *, admin_id: UUID, notes: str | None = None) -> AdminAction:
        return await self.change_status(
            issue_id,
            IssueStatus.OPEN.value,
            admin_id=admin_id,
            action_type="reopen",
            notes=notes,
        )

    async def override_priority(
        self,
        issue_id: UUID,
        score: float,
        *,
        admin_id: UUID,
        notes: str | None = None,
    ) -> AdminAction:
        """Store a manual snapshot carrying only the total score."""
        if not 0.0 <= score <= 100.0:
            msg = "priority score must be between 0 and 100"
            raise AdminActionError(msg)
        await self._get_issue(issue_id)

        query = (
            select(PrioritySnapshot.total_score)
            .where(PrioritySnapshot.aggregated_issue_id == issue_id)
            .order_by(PrioritySnapshot.created_at.desc())
            .limit(1)
        )
        current = await self.session.scalar(query)
        outcome = await self.persistence.store_priority_snapshot(
            issue_id,
            total_score=round(score, 2),
            is_override=True,
        )
        if not outcome.written:
            msg = f"Failed to store priority override: {outcome.error}"
            raise AdminActionError(msg)
        return await self._record(
            admin_id=admin_id,
            action_type="override_priority",
            issue_id=issue_id,
            previous={"priority_score": float(current) if current is not None else 0.0},
            new={"priority_score": round(score, 2)},
            notes=notes,
        )

    async def add_note(self, issue_id: UUID, notes: str, *, admin_id: UUID) -> AdminAction:
        if not notes.strip():
            msg = "note must not be empty"
            raise AdminActionError(msg)
        await self._get_issue(issue_id)
        return await self._record(
            admin_id=admin_id,
            action_type="note",
            issue_id=issue_id,
            notes=notes.strip(),
        )

    async def mark_not_spam(
        self,
        report_id: UUID,
        *,
        admin_id: UUID,
        resume: bool = True,
    ) -> PipelineResult | None:
        """Clear the spam decision and, by default, let the report continue through the pipeline."""
        metadata = await self.persistence.load_metadata(report_id)
        if metadata is None:
            msg = f"Report or metadata not found: {report_id}"
            raise AdminActionError(msg)
        previous = {
            "report_type": metadata.report_type,
            "spam_confidence": float(metadata.spam_confidence),
        }
        await self.persistence.patch_spam_fields(
            report_id,
            report_type=ReportType.GENERAL.value,
            spam_confidence=0.0,
            trace_updates={
                "report_type": ReportType.GENERAL.value,
                "spam_confidence": 0,
                "admin_marked_not_spam": True,
                "admin_marked_not_spam_at": datetime.now(tz=UTC).isoformat(),
            },
        )
        await self._record(
            admin_id=admin_id,
            action_type="mark_not_spam",
            report_id=report_id,
            previous=previous,
            new={"report_type": ReportType.GENERAL.value, "spam_confidence": 0.0},
        )
        if not resume:
            return None

        coordinator = self.coordinator
        if coordinator is None:
            from campus_pulse.processing.pipeline_coordinator import PipelineCoordinator

            coordinator = PipelineCoordinator(session=self.session, persistence=self.persistence)
        return await coordinator.resume_after_spam_override(report_id)

    async def history(self, issue_id: UUID) -> list[AdminAction]:
        query = (
            select(AdminAction)
            .where(AdminAction.aggregated_issue_id == issue_id)
            .order_by(AdminAction.created_at.asc())
        )
        return list((await self.session.scalars(query)).all())

    async def _get_issue(self, issue_id: UUID) -> AggregatedIssue:
        issue = await self.session.get(AggregatedIssue, issue_id)
        if issue is None:
            msg = f"Issue not found: {issue_id}"
            raise AdminActionError(msg)
        return issue

    async def _record(
        self,
        *,
        admin_id: UUID,
        action_type: str,
        issue_id: UUID | None = None,
        report_id: UUID | None = None,
        previous: dict[str, Any] | None = None,
        new: dict[str, Any] | None = None,
        notes: str | None = None,
    ) -> AdminAction:
        action = AdminAction(
            admin_id=admin_id,
            aggregated_issue_id=issue_id,
            issue_report_id=report_id,
            action_type=action_type,
            previous_value=previous,
            new_value=new,
            notes=notes,
        )
        self.session.add(action)
        await self.session.flush()
        logger.info(
            "Admin action recorded",
            action_type=action_type,
            aggregated_issue_id=_uuid_str(issue_id),
            issue_report_id=_uuid_str(report_id),
        )
        return action


def _uuid_str(value: UUID | None) -> str | None:
    return str(value) if value is not None else None
