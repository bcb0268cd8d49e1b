from __future__ import annotations

from types import SimpleNamespace

import pytest

from campus_pulse.processing.llm_input_safety import (
    estimate_tokens,
    normalize_report_text,
    truncate_to_token_limit,
    wrap_untrusted_text,
)
from campus_pulse.processing.llm_output_parsing import (
    coerce_bool,
    coerce_float,
    extract_balanced_object,
    parse_json_object,
    response_text,
    scan_boolean_field,
)

pytestmark = pytest.mark.unit


def test_parse_json_object_accepts_direct_json() -> None:
    assert parse_json_object('{"is_spam": false, "urgency_score": 0.4}') == {
        "is_spam": False,
        "urgency_score": 0.4,
    }


def test_parse_json_object_reads_fenced_block() -> None:
    text = 'Here you go:\n```json\n{"category": "water"}\n```\nThanks'

    assert parse_json_object(text) == {"category": "water"}


def test_parse_json_object_extracts_balanced_object_from_prose() -> None:
    text = 'Result: {"reason": "mentions {braces}", "is_spam": true} and more text'

    assert parse_json_object(text) == {"reason": "mentions {braces}", "is_spam": True}


def test_parse_json_object_repairs_trailing_commas() -> None:
    assert parse_json_object('{"a": 1, "b": [1, 2,],}') == {"a": 1, "b": [1, 2]}


def test_parse_json_object_returns_none_for_unparseable_or_non_object() -> None:
    assert parse_json_object("") is None
    assert parse_json_object("no json here") is None
    assert parse_json_object("[1, 2, 3]") is None


def test_extract_balanced_object_handles_unclosed_input() -> None:
    assert extract_balanced_object('{"a": {"b": 1}') is None
    assert extract_balanced_object('x {"a": "}"} y') == '{"a": "}"}'


def test_scan_boolean_field_prefers_false_when_ambiguous() -> None:
    assert scan_boolean_field('garbage "is_spam": true garbage', "is_spam") is True
    assert scan_boolean_field('"is_spam": false', "is_spam") is False
    assert scan_boolean_field('"is_spam": true, "is_spam": false', "is_spam") is False
    assert scan_boolean_field('"other": true', "is_spam") is None


def test_coercion_helpers_reject_non_finite_and_non_numeric_values() -> None:
    assert coerce_float("0.7", default=0.5) == 0.7
    assert coerce_float(float("nan"), default=0.5) == 0.5
    assert coerce_float("high", default=0.5) == 0.5
    assert coerce_float(True, default=0.5) == 0.5
    assert coerce_bool("TRUE") is True
    assert coerce_bool(1) is False


def test_response_text_reads_first_choice_content() -> None:
    response = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="{}"))])

    assert response_text(response) == "{}"
    assert response_text(SimpleNamespace(choices=[])) == ""


def test_input_safety_helpers_bound_and_delimit_text() -> None:
    assert normalize_report_text("  pani\x00  nahi\t\taa  raha ") == "pani nahi aa raha"
    assert normalize_report_text(None) == ""
    assert estimate_tokens(text="abcdefgh") == 2
    truncated = truncate_to_token_limit(text="word " * 100, max_tokens=5)
    assert truncated.endswith("[TRUNCATED]")
    assert len(truncated) <= 20
    assert wrap_untrusted_text(text=" hi ", tag="report-text") == "<REPORT_TEXT>\nhi\n</REPORT_TEXT>"
