"""
Pipeline coordination for one submitted report.

Stages run strictly in sequence: triage, metadata upsert, aggregation,
frequency, priority, snapshot, routing. Spam verdicts stop after the
metadata upsert. Fatal failures return a conservative fallback result
instead of raising; best-effort writes surface as typed outcomes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from campus_pulse.core.config import settings
from campus_pulse.core.logging_setup import bind_report_context, clear_report_context
from campus_pulse.core.observability import record_pipeline_run
from campus_pulse.core.taxonomy import (
    DEFAULT_AUTHORITY,
    DEFAULT_CATEGORY,
    DEFAULT_LOCATION_TYPE,
    ImpactScope,
    ReportType,
    UrgencyLevel,
)
from campus_pulse.processing.aggregation_engine import AggregationEngine, AggregationResult
from campus_pulse.processing.frequency_tracker import FrequencyTracker
from campus_pulse.processing.full_analysis import FullAnalyzer
from campus_pulse.processing.priority_scorer import (
    PriorityBreakdown,
    PriorityInputs,
    calculate_priority,
)
from campus_pulse.processing.progress import ProgressCallback, ProgressReporter, ProgressStream
from campus_pulse.processing.reference_data import ReferenceDataService
from campus_pulse.processing.remote_classifier import build_remote_classifier
from campus_pulse.processing.routing_resolver import RoutingDecision, RoutingResolver
from campus_pulse.processing.triage_orchestrator import TriageOrchestrator
from campus_pulse.processing.triage_persistence import (
    PersistOutcome,
    TriagePersistence,
    TriageStatus,
)
from campus_pulse.processing.triage_types import AutomationOutput
from campus_pulse.storage.models import (
    AggregatedIssue,
    AutomationMetadata,
    IssueAggregationMap,
    IssueCategory,
    PrioritySnapshot,
)

logger = structlog.get_logger(__name__)


@dataclass(slots=True, frozen=True)
class PipelineRequest:
    report_id: UUID
    title: str
    description: str
    category_id: UUID
    location_id: UUID
    emergency: bool = False


@dataclass(slots=True)
class PipelineResult:
    """Outcome of one run; ``success`` is false only for fatal failures."""

    success: bool
    report_id: UUID
    automation: AutomationOutput
    aggregated_issue_id: UUID | None = None
    is_new: bool = False
    rejected: bool = False
    priority: PriorityBreakdown | None = None
    routing: RoutingDecision | None = None
    routing_authority_name: str | None = None
    error: str | None = None
    snapshot_outcome: PersistOutcome | None = None
    frequency_outcome: PersistOutcome | None = None

    @property
    def aggregation_status(self) -> str:
        return "new" if self.is_new else "linked"

    def to_dict(self) -> dict[str, Any]:
        automation = self.automation
        return {
            "success": self.success,
            "issue_report_id": str(self.report_id),
            "aggregated_issue_id": (
                str(self.aggregated_issue_id) if self.aggregated_issue_id else None
            ),
            "aggregation_status": self.aggregation_status,
            "rejected": self.rejected,
            "automation_metadata": {
                "extracted_category": automation.category,
                "urgency_score": automation.urgency_score,
                "urgency_level": automation.urgency_level.value,
                "impact_scope": automation.impact_scope.value,
                "is_environmental": automation.is_environmental,
                "confidence_score": automation.confidence,
                "report_type": automation.report_type.value,
                "spam_confidence": automation.spam_confidence,
                "requires_immediate_action": automation.requires_immediate_action,
            },
            "priority": self.priority.to_dict() if self.priority else None,
            "routing": {
                "authority_id": str(self.routing.authority_id) if self.routing else None,
                "authority_name": (
                    self.routing.authority_name if self.routing else self.routing_authority_name
                ),
                "reason": self.routing.reason if self.routing else None,
            },
            "error": self.error,
        }


def fallback_automation() -> AutomationOutput:
    return AutomationOutput(
        category=DEFAULT_CATEGORY,
        urgency_score=0.5,
        urgency_level=UrgencyLevel.MEDIUM,
        impact_scope=ImpactScope.SINGLE,
        confidence=0.0,
        reasoning="Pipeline failed - manual review required",
    )


def fallback_priority() -> PriorityBreakdown:
    return calculate_priority(
        PriorityInputs(
            urgency_score=0.5,
            impact_scope=ImpactScope.SINGLE,
            is_environmental=False,
            report_count=1,
            reports_last_30_min=1,
            confidence_score=0.0,
        )
    )


def output_from_metadata(metadata: AutomationMetadata) -> AutomationOutput:
    """Rebuild triage output from a stored metadata row."""
    trace = metadata.raw_model_output or {}
    try:
        level = UrgencyLevel(metadata.urgency_level)
    except ValueError:
        level = UrgencyLevel.MEDIUM
    report_type = ReportType(metadata.report_type)
    return AutomationOutput(
        category=metadata.extracted_category,
        location_name=str(trace.get("location_name") or ""),
        location_confidence=float(trace.get("location_confidence") or 0.0),
        urgency_score=float(metadata.urgency_score),
        urgency_level=level,
        impact_scope=ImpactScope(metadata.impact_scope),
        is_environmental=metadata.is_environmental,
        confidence=float(metadata.confidence_score),
        report_type=report_type,
        is_spam=report_type is ReportType.SPAM,
        spam_confidence=float(metadata.spam_confidence),
        spam_reason=str(trace.get("spam_reason") or ""),
        reporter_welfare_flag=metadata.reporter_welfare_flag,
        requires_immediate_action=metadata.requires_immediate_action,
        full_analysis_needed=bool(trace.get("full_analysis_needed")),
        reasoning=str(trace.get("reasoning") or ""),
    )


class PipelineCoordinator:
    """Runs the per-report pipeline against one database session."""

    def __init__(
        self,
        session: AsyncSession,
        orchestrator: TriageOrchestrator | None = None,
        aggregation: AggregationEngine | None = None,
        frequency: FrequencyTracker | None = None,
        persistence: TriagePersistence | None = None,
        reference: ReferenceDataService | None = None,
        routing: RoutingResolver | None = None,
        full_analyzer: FullAnalyzer | None = None,
        model_name: str | None = None,
    ) -> None:
        self.session = session
        self.orchestrator = orchestrator or TriageOrchestrator(remote=build_remote_classifier())
        self.aggregation = aggregation or AggregationEngine(session=session)
        self.frequency = frequency or FrequencyTracker(session=session)
        self.persistence = persistence or TriagePersistence(session=session)
        self.reference = reference or ReferenceDataService(session=session)
        self.routing = routing or RoutingResolver(session=session)
        self.full_analyzer = full_analyzer
        self.model_name = model_name or (
            settings.LLM_TRIAGE_MODEL if settings.remote_classifier_configured else "heuristic"
        )

    async def run(
        self,
        request: PipelineRequest,
        progress: ProgressCallback | None = None,
        *,
        stream: ProgressStream | None = None,
    ) -> PipelineResult:
        """Never raises; fatal failures come back as ``success=False``."""
        reporter = ProgressReporter(callback=progress, stream=stream)
        bind_report_context(report_id=request.report_id)
        output: AutomationOutput | None = None
        try:
            await reporter.emit("triage", 15, "Running safety checks...")
            output = await self._triage(request)
            await reporter.emit(
                "triage_complete",
                40,
                f"Analysis: {output.urgency_level.value} priority",
                {
                    "urgency_level": output.urgency_level.value,
                    "requires_immediate_action": output.requires_immediate_action,
                },
            )
            await self.persistence.upsert_metadata(
                request.report_id,
                output,
                model=self.model_name,
                triage_status=TriageStatus.COMPLETED,
            )

            if output.is_spam:
                logger.info(
                    "Report rejected as spam",
                    spam_reason=output.spam_reason,
                    spam_confidence=output.spam_confidence,
                )
                await reporter.emit(
                    "rejected",
                    100,
                    "This looks like a test or spam. "
                    "Please submit a real campus issue with a clear description.",
                    {"spam_reason": output.spam_reason},
                )
                record_pipeline_run(outcome="rejected")
                return PipelineResult(
                    success=True,
                    report_id=request.report_id,
                    automation=output,
                    rejected=True,
                )

            result = await self._after_triage(request, output, reporter)
            record_pipeline_run(outcome="success")
            return result
        except Exception as exc:
            logger.exception("Pipeline failed", error=str(exc)[:1000])
            await self._record_degraded(request.report_id, output, error=str(exc))
            await reporter.emit("failed", 100, "Report saved; automatic triage is pending review")
            record_pipeline_run(outcome="failed")
            return PipelineResult(
                success=False,
                report_id=request.report_id,
                automation=fallback_automation(),
                priority=fallback_priority(),
                routing_authority_name=DEFAULT_AUTHORITY,
                error=str(exc) or type(exc).__name__,
            )
        finally:
            reporter.close()
            clear_report_context()

    async def reprocess(self, report_id: UUID) -> PipelineResult:
        """Re-run the whole pipeline for a stored report."""
        report = await self.reference.get_report(report_id)
        return await self.run(
            PipelineRequest(
                report_id=report.id,
                title=report.title,
                description=report.description,
                category_id=report.category_id,
                location_id=report.location_id,
            )
        )

    async def resume_after_spam_override(self, report_id: UUID) -> PipelineResult:
        """Continue from aggregation using stored triage output, skipping reclassification."""
        report = await self.reference.get_report(report_id)
        metadata = await self.persistence.load_metadata(report_id)
        if metadata is None:
            return await self.reprocess(report_id)

        request = PipelineRequest(
            report_id=report.id,
            title=report.title,
            description=report.description,
            category_id=report.category_id,
            location_id=report.location_id,
        )
        output = output_from_metadata(metadata)
        if output.is_spam:
            msg = f"Report {report_id} is still marked as spam"
            raise ValueError(msg)

        reporter = ProgressReporter()
        bind_report_context(report_id=report_id)
        try:
            await reporter.emit("aggregating", 55, "Checking for similar issues...")
            result = await self._after_triage(request, output, reporter, announce=False)
            record_pipeline_run(outcome="resumed")
            return result
        finally:
            clear_report_context()

    async def recalculate_priority(self, issue_id: UUID) -> PriorityBreakdown:
        """Score an issue from the averaged triage output of all linked reports."""
        issue = await self.session.get(AggregatedIssue, issue_id)
        if issue is None:
            msg = f"Aggregated issue not found: {issue_id}"
            raise ValueError(msg)

        query = (
            select(AutomationMetadata)
            .join(
                IssueAggregationMap,
                IssueAggregationMap.issue_report_id == AutomationMetadata.issue_report_id,
            )
            .where(IssueAggregationMap.aggregated_issue_id == issue_id)
        )
        rows = list((await self.session.scalars(query)).all())
        category = await self.session.get(IssueCategory, issue.canonical_category_id)
        # Recount the window so reports that aged out lower the score.
        frequency = await self.frequency.track(issue_id)
        report_count = await self.aggregation.report_count(issue_id)

        if rows:
            urgency = sum(float(row.urgency_score) for row in rows) / len(rows)
            confidence = sum(float(row.confidence_score) for row in rows) / len(rows)
        else:
            urgency, confidence = 0.5, 0.0
        breakdown = calculate_priority(
            PriorityInputs(
                urgency_score=urgency,
                impact_scope=(
                    ImpactScope.MULTI
                    if any(row.impact_scope == ImpactScope.MULTI.value for row in rows)
                    else ImpactScope.SINGLE
                ),
                is_environmental=bool(category and category.is_environmental)
                or any(row.is_environmental for row in rows),
                report_count=report_count,
                reports_last_30_min=frequency.count,
                confidence_score=confidence,
                requires_immediate_action=any(row.requires_immediate_action for row in rows),
                reporter_welfare_flag=any(row.reporter_welfare_flag for row in rows),
            )
        )
        await self.persistence.store_priority_snapshot(
            issue_id,
            total_score=breakdown.total_score,
            components=breakdown.components(),
        )
        logger.info(
            "Priority recalculated",
            aggregated_issue_id=str(issue_id),
            total_score=breakdown.total_score,
            reports=len(rows),
        )
        return breakdown

    async def refine_with_full_analysis(self, report_id: UUID) -> AutomationOutput | None:
        """Replace fast triage with a holistic model analysis, keeping the spam decision."""
        report = await self.reference.get_report(report_id)
        metadata = await self.persistence.load_metadata(report_id)
        analyzer = self.full_analyzer or FullAnalyzer.from_settings()
        analysis = await analyzer.analyze(report.title, report.description)
        if analysis is None:
            return None

        if metadata is not None:
            current = output_from_metadata(metadata)
            analysis.report_type = (
                current.report_type
                if current.is_spam or analysis.report_type is ReportType.SPAM
                else analysis.report_type
            )
            analysis.is_spam = current.is_spam
            analysis.spam_confidence = current.spam_confidence
            analysis.spam_reason = current.spam_reason
            analysis.location_name = current.location_name
            analysis.location_confidence = current.location_confidence

        await self.persistence.upsert_metadata(
            report_id,
            analysis,
            model=settings.LLM_ANALYSIS_MODEL,
            triage_status=TriageStatus.COMPLETED,
        )
        issue_id = await self._linked_issue_id(report_id)
        if issue_id is not None:
            await self.recalculate_priority(issue_id)
        return analysis

    async def automation_status(self, report_id: UUID) -> dict[str, Any]:
        metadata = await self.persistence.load_metadata(report_id)
        issue_id = await self._linked_issue_id(report_id)
        status: dict[str, Any] = {
            "issue_report_id": str(report_id),
            "triage_status": metadata.triage_status if metadata else TriageStatus.PENDING.value,
            "report_type": metadata.report_type if metadata else None,
            "aggregated_issue_id": str(issue_id) if issue_id else None,
            "priority_score": None,
        }
        if issue_id is not None:
            query = (
                select(PrioritySnapshot.total_score)
                .where(PrioritySnapshot.aggregated_issue_id == issue_id)
                .order_by(PrioritySnapshot.created_at.desc())
                .limit(1)
            )
            score = await self.session.scalar(query)
            status["priority_score"] = float(score) if score is not None else None
        return status

    async def _triage(self, request: PipelineRequest) -> AutomationOutput:
        if request.emergency:
            return await self.orchestrator.triage_emergency(request.title, request.description)
        categories = await self.reference.list_category_names()
        locations = await self.reference.list_location_names()
        return await self.orchestrator.triage(
            request.title,
            request.description,
            categories,
            locations,
        )

    async def _after_triage(
        self,
        request: PipelineRequest,
        output: AutomationOutput,
        reporter: ProgressReporter,
        *,
        announce: bool = True,
    ) -> PipelineResult:
        if announce:
            await reporter.emit("aggregating", 55, "Checking for similar issues...")
        aggregation: AggregationResult = await self.aggregation.aggregate(
            request.report_id,
            request.category_id,
            request.location_id,
        )
        issue_id = aggregation.aggregated_issue_id
        frequency = await self.frequency.track(issue_id)

        category = await self.reference.get_category(request.category_id)
        location = await self.reference.get_location(request.location_id)

        await reporter.emit("priority", 70, "Calculating priority score...")
        report_count = await self.aggregation.report_count(issue_id)
        breakdown = calculate_priority(
            PriorityInputs(
                urgency_score=output.urgency_score,
                impact_scope=output.impact_scope,
                is_environmental=category.is_environmental or output.is_environmental,
                report_count=report_count,
                reports_last_30_min=frequency.count,
                confidence_score=output.confidence,
                requires_immediate_action=output.requires_immediate_action,
                reporter_welfare_flag=output.reporter_welfare_flag,
            )
        )
        if output.requires_immediate_action:
            logger.warning(
                "Immediate action required",
                urgency_level=output.urgency_level.value,
                reporter_welfare_flag=output.reporter_welfare_flag,
                total_score=breakdown.total_score,
            )
        snapshot = await self.persistence.store_priority_snapshot(
            issue_id,
            total_score=breakdown.total_score,
            components=breakdown.components(),
        )

        await reporter.emit("routing", 85, "Routing to the responsible authority...")
        routing = await self.routing.route(
            category.name or output.category,
            location.type or DEFAULT_LOCATION_TYPE,
        )
        if aggregation.is_new:
            await self.routing.apply_to_issue(issue_id, routing)

        await reporter.emit(
            "complete",
            100,
            "Report submitted successfully",
            {
                "aggregated_issue_id": str(issue_id),
                "aggregation_status": "new" if aggregation.is_new else "linked",
                "initial_priority": breakdown.total_score,
                "urgency_level": output.urgency_level.value,
                "requires_immediate_action": output.requires_immediate_action,
            },
        )
        logger.info(
            "Pipeline complete",
            aggregated_issue_id=str(issue_id),
            is_new=aggregation.is_new,
            total_score=breakdown.total_score,
            authority=routing.authority_name,
        )
        return PipelineResult(
            success=True,
            report_id=request.report_id,
            automation=output,
            aggregated_issue_id=issue_id,
            is_new=aggregation.is_new,
            priority=breakdown,
            routing=routing,
            snapshot_outcome=snapshot,
            frequency_outcome=frequency.persist,
        )

    async def _record_degraded(
        self,
        report_id: UUID,
        output: AutomationOutput | None,
        *,
        error: str,
    ) -> None:
        try:
            await self.session.rollback()
            await self.persistence.upsert_metadata(
                report_id,
                output or fallback_automation(),
                model=self.model_name,
                triage_status=TriageStatus.DEGRADED,
            )
            await self.persistence.mark_degraded(report_id, error=error)
        except SQLAlchemyError as exc:
            logger.warning("Could not mark triage as degraded", error=str(exc)[:1000])

    async def _linked_issue_id(self, report_id: UUID) -> UUID | None:
        query = (
            select(IssueAggregationMap.aggregated_issue_id)
            .where(IssueAggregationMap.issue_report_id == report_id)
            .limit(1)
        )
        issue_id: UUID | None = await self.session.scalar(query)
        return issue_id
