from __future__ import annotations

import pytest
import structlog

from campus_pulse.core import observability
from campus_pulse.core.logging_setup import bind_report_context, clear_report_context

pytestmark = pytest.mark.unit


def _sample(counter, **labels: str) -> float:
    return counter.labels(**labels)._value.get()


def test_record_helpers_increment_labelled_counters() -> None:
    before_spam = _sample(observability.SPAM_VERDICTS_TOTAL, source="rules", verdict="spam")
    before_runs = _sample(observability.PIPELINE_RUNS_TOTAL, outcome="rejected")
    before_escalations = _sample(observability.PRIORITY_ESCALATIONS_TOTAL, reason="welfare")

    observability.record_spam_verdict(source="rules", is_spam=True)
    observability.record_pipeline_run(outcome="rejected")
    observability.record_priority_escalation(reason="welfare")

    assert _sample(observability.SPAM_VERDICTS_TOTAL, source="rules", verdict="spam") == before_spam + 1
    assert _sample(observability.PIPELINE_RUNS_TOTAL, outcome="rejected") == before_runs + 1
    assert (
        _sample(observability.PRIORITY_ESCALATIONS_TOTAL, reason="welfare")
        == before_escalations + 1
    )


def test_ham_verdicts_use_separate_label() -> None:
    before = _sample(observability.SPAM_VERDICTS_TOTAL, source="model", verdict="ham")

    observability.record_spam_verdict(source="model", is_spam=False)

    assert _sample(observability.SPAM_VERDICTS_TOTAL, source="model", verdict="ham") == before + 1


def test_report_context_binds_string_values_and_skips_none() -> None:
    clear_report_context()
    try:
        bind_report_context(report_id=123, stage="triage", issue_id=None)
        assert structlog.contextvars.get_contextvars() == {"report_id": "123", "stage": "triage"}
    finally:
        clear_report_context()

    assert structlog.contextvars.get_contextvars() == {}
