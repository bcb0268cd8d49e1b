"""
Celery application and periodic scheduling configuration.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from celery import Celery

from campus_pulse.core.config import settings
from campus_pulse.core.logging_setup import configure_logging


def _build_beat_schedule() -> dict[str, dict[str, Any]]:
    return {
        "recalculate-open-priorities": {
            "task": "workers.recalculate_open_priorities",
            "schedule": timedelta(minutes=max(1, settings.PRIORITY_RECALC_INTERVAL_MINUTES)),
        },
    }


celery_app = Celery("campus_pulse")
celery_app.conf.update(
    broker_url=settings.CELERY_BROKER_URL,
    result_backend=settings.CELERY_RESULT_BACKEND,
    timezone="UTC",
    enable_utc=True,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    task_track_started=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_default_queue="default",
    task_routes={
        "workers.run_triage_pipeline": {"queue": "triage"},
        "workers.run_full_analysis": {"queue": "analysis"},
        "workers.recalculate_priority": {"queue": "processing"},
        "workers.recalculate_open_priorities": {"queue": "processing"},
        "workers.ping": {"queue": "default"},
    },
    broker_connection_retry_on_startup=True,
    worker_prefetch_multiplier=1,
    beat_schedule=_build_beat_schedule(),
)

celery_app.autodiscover_tasks(["campus_pulse.workers"])
configure_logging()
