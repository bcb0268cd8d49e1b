"""
campus-pulse command-line interface.
"""

from __future__ import annotations

import argparse
import asyncio
import json
from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select

from campus_pulse.core.logging_setup import configure_logging
from campus_pulse.core.taxonomy import VALID_CATEGORIES
from campus_pulse.processing.admin_actions import AdminActionService
from campus_pulse.processing.aggregation_engine import AggregationEngine
from campus_pulse.processing.frequency_tracker import FrequencyTracker, format_frequency
from campus_pulse.processing.pipeline_coordinator import PipelineCoordinator, PipelineRequest
from campus_pulse.processing.priority_scorer import format_priority, needs_mandatory_review
from campus_pulse.processing.reference_data import ReferenceDataService
from campus_pulse.processing.remote_classifier import build_remote_classifier
from campus_pulse.processing.triage_orchestrator import TriageOrchestrator
from campus_pulse.processing.triage_types import AutomationOutput
from campus_pulse.storage.database import async_session_maker
from campus_pulse.storage.models import (
    AdminAction,
    AggregatedIssue,
    Authority,
    FrequencyMetric,
    PrioritySnapshot,
)


def _format_triage_lines(output: AutomationOutput) -> list[str]:
    verdict = "SPAM" if output.is_spam else output.report_type.value
    lines = [
        f"# {verdict} {output.urgency_level.value} "
        f"(urgency {output.urgency_score:.2f}, confidence {output.confidence:.2f})",
        f"  Category: {output.category}"
        + (" [environmental]" if output.is_environmental else ""),
        f"  Location: {output.location_name or 'unknown'} ({output.location_confidence:.2f})",
        f"  Tier: {output.triage_tier.value}",
    ]
    if output.is_spam:
        lines.append(f"  Spam reason: {output.spam_reason}")
    if output.requires_immediate_action:
        lines.append("  IMMEDIATE ACTION REQUIRED")
    elif output.reporter_welfare_flag:
        lines.append("  Reporter welfare flagged")
    if output.full_analysis_needed:
        lines.append("  Full analysis recommended")
    return lines


def _format_history_lines(
    metrics: Sequence[FrequencyMetric],
    actions: Sequence[AdminAction],
) -> list[str]:
    lines: list[str] = []
    if metrics:
        lines.append("  Frequency history:")
        lines.extend(
            f"    {metric.calculated_at:%Y-%m-%d %H:%M} {metric.report_count}" for metric in metrics
        )
    if actions:
        lines.append("  Admin actions:")
        for action in actions:
            notes = f": {action.notes}" if action.notes else ""
            lines.append(f"    {action.created_at:%Y-%m-%d %H:%M} {action.action_type}{notes}")
    return lines

async def _run_triage(
    *,
    title: str,
    description: str,
    emergency: bool,
    offline: bool,
) -> int:
    remote = None if offline else build_remote_classifier()
    orchestrator = TriageOrchestrator(remote=remote)
    if emergency:
        output = await orchestrator.triage_emergency(title, description)
    else:
        output = await orchestrator.triage(title, description, list(VALID_CATEGORIES), [])
    for line in _format_triage_lines(output):
        print(line)
    return 0


async def _run_pipeline(*, report_id: UUID, emergency: bool) -> int:
    async with async_session_maker() as session:
        report = await ReferenceDataService(session=session).get_report(report_id)
        coordinator = PipelineCoordinator(session=session)
        result = await coordinator.run(
            PipelineRequest(
                report_id=report.id,
                title=report.title,
                description=report.description,
                category_id=report.category_id,
                location_id=report.location_id,
                emergency=emergency,
            ),
            progress=lambda event: print(f"[{event.progress:3d}%] {event.message}"),
        )
        await session.commit()

    print(json.dumps(result.to_dict(), indent=2, sort_keys=True))
    return 0 if result.success else 2


async def _run_priority_recalculate(*, issue_id: UUID) -> int:
    async with async_session_maker() as session:
        coordinator = PipelineCoordinator(session=session)
        breakdown = await coordinator.recalculate_priority(issue_id)
        await session.commit()

    print(f"Priority: {format_priority(breakdown.total_score)}")
    print(
        "  urgency={urgency:.2f} impact={impact:.2f} "
        "frequency={frequency:.2f} environmental={environmental:.2f}".format(
            **breakdown.components()
        )
    )
    if breakdown.escalation_reason:
        print(f"  Escalated: {breakdown.escalation_reason}")
    return 0


async def _run_issues_show(*, issue_id: UUID) -> int:
    async with async_session_maker() as session:
        issue = await session.get(AggregatedIssue, issue_id)
        if issue is None:
            print(f"Issue not found: {issue_id}")
            return 1
        authority = (
            await session.get(Authority, issue.authority_id) if issue.authority_id else None
        )
        report_count = await AggregationEngine(session=session).report_count(issue_id)
        tracker = FrequencyTracker(session=session)
        metric = await tracker.latest(issue_id)
        metrics = await tracker.history(issue_id)
        actions = await AdminActionService(session=session).history(issue_id)
        score = await session.scalar(
            select(PrioritySnapshot.total_score)
            .where(PrioritySnapshot.aggregated_issue_id == issue_id)
            .order_by(PrioritySnapshot.created_at.desc())
            .limit(1)
        )

    print(f"# Issue {issue.id} [{issue.status}]")
    print(f"  Authority: {authority.name if authority else 'unassigned'}")
    print(f"  Reports: {report_count}")
    print(f"  Frequency: {format_frequency(metric.report_count if metric else 0)}")
    if score is None:
        print("  Priority: not calculated")
    else:
        review = " (mandatory review)" if needs_mandatory_review(float(score)) else ""
        print(f"  Priority: {format_priority(float(score))}{review}")
    for line in _format_history_lines(metrics, actions):
        print(line)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="campus-pulse")
    subparsers = parser.add_subparsers(dest="command")

    triage_parser = subparsers.add_parser(
        "triage",
        help="Classify a report without touching the database.",
    )
    triage_parser.add_argument("--title", required=True)
    triage_parser.add_argument("--description", default="")
    triage_parser.add_argument(
        "--emergency",
        action="store_true",
        help="Use the emergency fast path (spam check and keyword urgency only).",
    )
    triage_parser.add_argument(
        "--offline",
        action="store_true",
        help="Never call the remote classifier.",
    )

    pipeline_parser = subparsers.add_parser("pipeline")
    pipeline_subparsers = pipeline_parser.add_subparsers(dest="pipeline_command")
    pipeline_run_parser = pipeline_subparsers.add_parser(
        "run",
        help="Run the full pipeline for a stored report.",
    )
    pipeline_run_parser.add_argument("report_id", type=UUID)
    pipeline_run_parser.add_argument("--emergency", action="store_true")

    priority_parser = subparsers.add_parser("priority")
    priority_subparsers = priority_parser.add_subparsers(dest="priority_command")
    priority_recalculate_parser = priority_subparsers.add_parser(
        "recalculate",
        help="Recompute and store the priority of an aggregated issue.",
    )
    priority_recalculate_parser.add_argument("issue_id", type=UUID)

    issues_parser = subparsers.add_parser("issues")
    issues_subparsers = issues_parser.add_subparsers(dest="issues_command")
    issues_show_parser = issues_subparsers.add_parser(
        "show",
        help="Show status, routing, frequency and priority of an aggregated issue.",
    )
    issues_show_parser.add_argument("issue_id", type=UUID)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging()

    if args.command == "triage":
        return asyncio.run(
            _run_triage(
                title=args.title,
                description=args.description,
                emergency=args.emergency,
                offline=args.offline,
            )
        )
    if args.command == "pipeline" and args.pipeline_command == "run":
        return asyncio.run(_run_pipeline(report_id=args.report_id, emergency=args.emergency))
    if args.command == "priority" and args.priority_command == "recalculate":
        return asyncio.run(_run_priority_recalculate(issue_id=args.issue_id))
    if args.command == "issues" and args.issues_command == "show":
        return asyncio.run(_run_issues_show(issue_id=args.issue_id))

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
