"""
Celery tasks wrapping the async pipeline services.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable, Coroutine
from datetime import UTC, datetime
from typing import Any, TypeVar, cast
from uuid import UUID

import redis
import structlog
from celery import shared_task
from celery.signals import task_failure
from sqlalchemy import select

from campus_pulse.core.config import settings
from campus_pulse.core.observability import record_worker_error
from campus_pulse.core.taxonomy import OPEN_STATUSES
from campus_pulse.processing.pipeline_coordinator import PipelineCoordinator, PipelineRequest
from campus_pulse.processing.reference_data import ReferenceDataService
from campus_pulse.storage.database import async_session_maker
from campus_pulse.storage.models import AggregatedIssue

logger = structlog.get_logger(__name__)

TaskFunc = TypeVar("TaskFunc", bound=Callable[..., Any])
RETRYABLE_ERRORS = (ConnectionError, TimeoutError)


def typed_shared_task(*task_args: Any, **task_kwargs: Any) -> Callable[[TaskFunc], TaskFunc]:
    """
    Typed wrapper around Celery's shared_task decorator.

    Celery decorators are untyped, which conflicts with strict mypy settings.
    """
    decorator = shared_task(*task_args, **task_kwargs)
    return cast("Callable[[TaskFunc], TaskFunc]", decorator)


def _run_async(coro: Coroutine[Any, Any, dict[str, Any]]) -> dict[str, Any]:
    return asyncio.run(coro)


def _push_dead_letter(payload: dict[str, Any]) -> None:
    client: redis.Redis[str] | None = None
    try:
        client = redis.from_url(settings.REDIS_URL, decode_responses=True)
        client.lpush(settings.DEAD_LETTER_REDIS_KEY, json.dumps(payload, default=str))
        client.ltrim(settings.DEAD_LETTER_REDIS_KEY, 0, settings.DEAD_LETTER_MAX_ITEMS - 1)
    except Exception:
        logger.exception("Failed to push dead letter payload")
    finally:
        if client is not None:
            client.close()


def _record_worker_activity(
    *,
    task_name: str,
    status: str,
    error: str | None = None,
) -> None:
    client: redis.Redis[str] | None = None
    try:
        client = redis.from_url(settings.REDIS_URL, decode_responses=True)
        payload = {
            "task": task_name,
            "status": status,
            "timestamp": datetime.now(tz=UTC).isoformat(),
        }
        if error:
            payload["error"] = error[:500]
        client.set(
            settings.WORKER_HEARTBEAT_REDIS_KEY,
            json.dumps(payload),
            ex=settings.WORKER_HEARTBEAT_TTL_SECONDS,
        )
    except Exception:
        logger.exception("Failed to record worker heartbeat", task_name=task_name, status=status)
    finally:
        if client is not None:
            client.close()


def _run_task_with_heartbeat(
    *,
    task_name: str,
    runner: Callable[[], dict[str, Any]],
) -> dict[str, Any]:
    _record_worker_activity(task_name=task_name, status="started")
    try:
        result = runner()
    except Exception as exc:
        _record_worker_activity(task_name=task_name, status="failed", error=str(exc))
        raise
    _record_worker_activity(task_name=task_name, status="ok")
    return result


def _handle_task_failure(
    sender: Any = None,
    task_id: str | None = None,
    exception: BaseException | None = None,
    args: tuple[Any, ...] | None = None,
    kwargs: dict[str, Any] | None = None,
    **_extra: Any,
) -> None:
    request = getattr(sender, "request", None)
    current_retries = int(getattr(request, "retries", 0))

    max_retries_raw = getattr(sender, "max_retries", None)
    max_retries = max_retries_raw if isinstance(max_retries_raw, int) else None

    # Intermediate failures still within the retry budget are not dead letters.
    if max_retries is not None and current_retries < max_retries:
        return

    payload = {
        "task_name": getattr(sender, "name", "unknown"),
        "task_id": task_id,
        "exception_type": type(exception).__name__ if exception is not None else "unknown",
        "exception_message": str(exception) if exception is not None else "",
        "args": args or (),
        "kwargs": kwargs or {},
        "retries": current_retries,
        "failed_at": datetime.now(tz=UTC).isoformat(),
    }
    record_worker_error(task_name=str(payload["task_name"]))
    _push_dead_letter(payload)


task_failure.connect(_handle_task_failure)


def _queue_full_analysis(report_id: str) -> bool:
    if not settings.TRIAGE_FULL_ANALYSIS_ENABLED:
        return False
    if not settings.remote_classifier_configured:
        return False
    cast("Any", run_full_analysis).delay(report_id)
    logger.info("Queued full analysis task", report_id=report_id)
    return True


async def _run_triage_pipeline_async(report_id: UUID, *, emergency: bool) -> dict[str, Any]:
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
            )
        )
        await session.commit()

    return {
        "status": "ok" if result.success else "degraded",
        "task": "triage_pipeline",
        "full_analysis_needed": result.success
        and not result.rejected
        and result.automation.full_analysis_needed,
        **result.to_dict(),
    }


async def _run_full_analysis_async(report_id: UUID) -> dict[str, Any]:
    async with async_session_maker() as session:
        coordinator = PipelineCoordinator(session=session)
        analysis = await coordinator.refine_with_full_analysis(report_id)
        await session.commit()

    if analysis is None:
        return {"status": "skipped", "task": "full_analysis", "issue_report_id": str(report_id)}
    return {
        "status": "ok",
        "task": "full_analysis",
        "issue_report_id": str(report_id),
        "extracted_category": analysis.category,
        "urgency_level": analysis.urgency_level.value,
        "requires_immediate_action": analysis.requires_immediate_action,
    }


async def _recalculate_priority_async(issue_id: UUID) -> dict[str, Any]:
    async with async_session_maker() as session:
        coordinator = PipelineCoordinator(session=session)
        breakdown = await coordinator.recalculate_priority(issue_id)
        await session.commit()

    return {
        "status": "ok",
        "task": "recalculate_priority",
        "aggregated_issue_id": str(issue_id),
        **breakdown.to_dict(),
    }


async def _recalculate_open_priorities_async(limit: int) -> dict[str, Any]:
    recalculated = 0
    async with async_session_maker() as session:
        query = (
            select(AggregatedIssue.id)
            .where(AggregatedIssue.status.in_(OPEN_STATUSES))
            .order_by(AggregatedIssue.updated_at.desc())
            .limit(limit)
        )
        issue_ids = list((await session.scalars(query)).all())
        coordinator = PipelineCoordinator(session=session)
        for issue_id in issue_ids:
            await coordinator.recalculate_priority(issue_id)
            recalculated += 1
        await session.commit()

    return {"status": "ok", "task": "recalculate_open_priorities", "recalculated": recalculated}


@typed_shared_task(
    name="workers.run_triage_pipeline",
    autoretry_for=RETRYABLE_ERRORS,
    retry_backoff=True,
    retry_backoff_max=120,
    retry_jitter=True,
    retry_kwargs={"max_retries": 3},
)
def run_triage_pipeline(report_id: str, emergency: bool = False) -> dict[str, Any]:
    """Triage, aggregate, score and route one submitted report."""

    def _runner() -> dict[str, Any]:
        logger.info("Starting triage pipeline task", report_id=report_id, emergency=emergency)
        result = _run_async(_run_triage_pipeline_async(UUID(report_id), emergency=emergency))
        if result["full_analysis_needed"]:
            result["full_analysis_queued"] = _queue_full_analysis(report_id)
        logger.info(
            "Finished triage pipeline task",
            report_id=report_id,
            status=result["status"],
            rejected=result["rejected"],
            aggregated_issue_id=result["aggregated_issue_id"],
        )
        return result

    return _run_task_with_heartbeat(task_name="workers.run_triage_pipeline", runner=_runner)


@typed_shared_task(
    name="workers.run_full_analysis",
    autoretry_for=RETRYABLE_ERRORS,
    retry_backoff=True,
    retry_backoff_max=300,
    retry_jitter=True,
    retry_kwargs={"max_retries": 2},
)
def run_full_analysis(report_id: str) -> dict[str, Any]:
    """Refine fast triage with one holistic model analysis."""

    def _runner() -> dict[str, Any]:
        return _run_async(_run_full_analysis_async(UUID(report_id)))

    return _run_task_with_heartbeat(task_name="workers.run_full_analysis", runner=_runner)


@typed_shared_task(name="workers.recalculate_priority")
def recalculate_priority(issue_id: str) -> dict[str, Any]:
    def _runner() -> dict[str, Any]:
        return _run_async(_recalculate_priority_async(UUID(issue_id)))

    return _run_task_with_heartbeat(task_name="workers.recalculate_priority", runner=_runner)


@typed_shared_task(name="workers.recalculate_open_priorities")
def recalculate_open_priorities(limit: int | None = None) -> dict[str, Any]:
    """Refresh priority of open issues so aged-out frequency windows are reflected."""

    def _runner() -> dict[str, Any]:
        run_limit = max(1, limit or settings.PRIORITY_RECALC_BATCH_SIZE)
        result = _run_async(_recalculate_open_priorities_async(run_limit))
        logger.info("Recalculated open issue priorities", recalculated=result["recalculated"])
        return result

    return _run_task_with_heartbeat(
        task_name="workers.recalculate_open_priorities",
        runner=_runner,
    )


@typed_shared_task(name="workers.ping")
def ping() -> dict[str, Any]:
    """Simple task to verify worker is up and processing jobs."""

    def _runner() -> dict[str, str]:
        return {
            "status": "ok",
            "timestamp": datetime.now(tz=UTC).isoformat(),
        }

    return _run_task_with_heartbeat(task_name="workers.ping", runner=_runner)
