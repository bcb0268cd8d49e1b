from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace
from typing import Any

import pytest

import campus_pulse.processing.remote_classifier as remote_module
from campus_pulse.processing.remote_classifier import RemoteClassifier, build_remote_classifier

pytestmark = pytest.mark.unit


class _RecordingCompletions:
    def __init__(self, content: str, *, delay: float = 0.0) -> None:
        self.content = content
        self.delay = delay
        self.calls: list[dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> SimpleNamespace:
        self.calls.append(kwargs)
        if self.delay:
            await asyncio.sleep(self.delay)
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=self.content))],
            usage=SimpleNamespace(prompt_tokens=12, completion_tokens=4),
        )


def _classifier(completions: _RecordingCompletions, **kwargs: Any) -> RemoteClassifier:
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return RemoteClassifier(
        client=client,
        secondary_client=client,
        model="gpt-4.1-mini",
        primary_provider="openai",
        **kwargs,
    )


@pytest.mark.asyncio
async def test_complete_returns_reply_and_wraps_payload() -> None:
    completions = _RecordingCompletions(json.dumps({"is_spam": False}))

    reply = await _classifier(completions, timeout_seconds=5).complete(
        stage="spam",
        system_prompt="Decide whether this campus report is spam.",
        payload={"title": "No water", "description": "Hostel 2"},
    )

    assert json.loads(reply) == {"is_spam": False}
    messages = completions.calls[0]["messages"]
    assert messages[0] == {
        "role": "system",
        "content": "Decide whether this campus report is spam.",
    }
    assert messages[1]["role"] == "user"
    assert "<REPORT>" in messages[1]["content"]
    assert "No water" in messages[1]["content"]


@pytest.mark.asyncio
async def test_complete_raises_timeout_and_records_outcome(monkeypatch: pytest.MonkeyPatch) -> None:
    outcomes: list[tuple[str, str]] = []
    monkeypatch.setattr(
        remote_module,
        "record_remote_classifier_call",
        lambda *, stage, outcome: outcomes.append((stage, outcome)),
    )
    completions = _RecordingCompletions("{}", delay=1.0)

    with pytest.raises(TimeoutError):
        await _classifier(completions, timeout_seconds=0.01).complete(
            stage="urgency",
            system_prompt="Rate urgency.",
            payload={"title": "Fire"},
        )

    assert outcomes == [("urgency", "timeout")]


def test_build_remote_classifier_without_api_key_returns_none(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(remote_module.settings, "OPENAI_API_KEY", "")

    assert build_remote_classifier() is None


def test_create_client_requires_api_key() -> None:
    with pytest.raises(ValueError, match="OPENAI_API_KEY is required"):
        RemoteClassifier._create_client(api_key="   ")
