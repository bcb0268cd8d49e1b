"""
Prometheus metrics registry and helper recorders.
"""

from __future__ import annotations

from prometheus_client import Counter

TRIAGE_RUNS_TOTAL = Counter(
    "triage_runs_total",
    "Triage orchestrator runs by fallback tier that produced the output.",
    ["tier"],
)
REMOTE_CLASSIFIER_CALLS_TOTAL = Counter(
    "remote_classifier_calls_total",
    "Remote classifier calls by triage stage and outcome.",
    ["stage", "outcome"],
)
SPAM_VERDICTS_TOTAL = Counter(
    "spam_verdicts_total",
    "Spam classifier verdicts by deciding source.",
    ["source", "verdict"],
)
PIPELINE_RUNS_TOTAL = Counter(
    "pipeline_runs_total",
    "Pipeline coordinator runs by outcome.",
    ["outcome"],
)
PERSIST_FAILURES_TOTAL = Counter(
    "persist_failures_total",
    "Best-effort persistence writes that did not land, by record kind.",
    ["record"],
)
AGGREGATION_DECISIONS_TOTAL = Counter(
    "aggregation_decisions_total",
    "Aggregation engine outcomes (created, linked, existing link, race lost).",
    ["decision"],
)
PRIORITY_ESCALATIONS_TOTAL = Counter(
    "priority_escalations_total",
    "Priority scores raised to a review floor, by reason.",
    ["reason"],
)
WORKER_ERRORS_TOTAL = Counter(
    "worker_errors_total",
    "Worker task failures by task name.",
    ["task_name"],
)


def record_triage_run(*, tier: str) -> None:
    TRIAGE_RUNS_TOTAL.labels(tier=tier).inc()


def record_remote_classifier_call(*, stage: str, outcome: str) -> None:
    REMOTE_CLASSIFIER_CALLS_TOTAL.labels(stage=stage, outcome=outcome).inc()


def record_spam_verdict(*, source: str, is_spam: bool) -> None:
    SPAM_VERDICTS_TOTAL.labels(source=source, verdict="spam" if is_spam else "ham").inc()


def record_pipeline_run(*, outcome: str) -> None:
    PIPELINE_RUNS_TOTAL.labels(outcome=outcome).inc()


def record_persist_failure(*, record: str) -> None:
    PERSIST_FAILURES_TOTAL.labels(record=record).inc()


def record_aggregation_decision(*, decision: str) -> None:
    AGGREGATION_DECISIONS_TOTAL.labels(decision=decision).inc()


def record_priority_escalation(*, reason: str) -> None:
    PRIORITY_ESCALATIONS_TOTAL.labels(reason=reason).inc()


def record_worker_error(task_name: str) -> None:
    WORKER_ERRORS_TOTAL.labels(task_name=task_name).inc()
