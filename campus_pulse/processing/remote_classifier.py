"""
Remote classifier collaborator used by every model-path escalation.

One request/response call: a system prompt plus an untrusted report payload
in, free text out. Each call carries its own timeout; callers treat a timeout
exactly like any other failure and fall back to their fast path.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog
from openai import AsyncOpenAI

from campus_pulse.core.config import settings
from campus_pulse.core.observability import record_remote_classifier_call
from campus_pulse.processing.llm_failover import LLMChatRoute
from campus_pulse.processing.llm_output_parsing import response_text
from campus_pulse.processing.llm_policy import build_safe_payload_content, invoke_with_policy

logger = structlog.get_logger(__name__)

JSON_OBJECT_FORMAT: dict[str, Any] = {"type": "json_object"}


class RemoteClassifier:
    """Timeout-bounded chat completion calls against the configured routes."""

    def __init__(
        self,
        *,
        client: AsyncOpenAI | Any | None = None,
        secondary_client: AsyncOpenAI | Any | None = None,
        model: str | None = None,
        secondary_model: str | None = None,
        primary_provider: str | None = None,
        secondary_provider: str | None = None,
        timeout_seconds: float | None = None,
        max_input_tokens: int | None = None,
    ) -> None:
        self.model = model or settings.LLM_TRIAGE_MODEL
        self.secondary_model = secondary_model or settings.LLM_TRIAGE_SECONDARY_MODEL
        self.primary_provider = primary_provider or settings.LLM_PRIMARY_PROVIDER
        self.secondary_provider = secondary_provider or settings.LLM_SECONDARY_PROVIDER
        self.timeout_seconds = timeout_seconds or settings.TRIAGE_LLM_TIMEOUT_SECONDS
        self.max_input_tokens = max_input_tokens or settings.TRIAGE_MAX_INPUT_TOKENS
        self.client = client or self._create_client(
            api_key=settings.OPENAI_API_KEY,
            base_url=settings.LLM_PRIMARY_BASE_URL,
        )
        self.secondary_client = self._build_secondary_client(secondary_client=secondary_client)

    @staticmethod
    def _create_client(*, api_key: str, base_url: str | None = None) -> AsyncOpenAI:
        if not api_key.strip():
            msg = "OPENAI_API_KEY is required for RemoteClassifier"
            raise ValueError(msg)
        if base_url:
            return AsyncOpenAI(api_key=api_key, base_url=base_url)
        return AsyncOpenAI(api_key=api_key)

    def _build_secondary_client(
        self,
        *,
        secondary_client: AsyncOpenAI | Any | None,
    ) -> AsyncOpenAI | Any | None:
        if self.secondary_model is None:
            return None
        if secondary_client is not None:
            return secondary_client
        secondary_api_key = settings.LLM_SECONDARY_API_KEY or settings.OPENAI_API_KEY
        return self._create_client(
            api_key=secondary_api_key,
            base_url=settings.LLM_SECONDARY_BASE_URL,
        )

    def _routes(self) -> tuple[LLMChatRoute, LLMChatRoute | None]:
        primary = LLMChatRoute(provider=self.primary_provider, model=self.model, client=self.client)
        secondary = None
        if self.secondary_client is not None and self.secondary_model is not None:
            secondary = LLMChatRoute(
                provider=self.secondary_provider or self.primary_provider,
                model=self.secondary_model,
                client=self.secondary_client,
            )
        return (primary, secondary)

    async def complete(
        self,
        *,
        stage: str,
        system_prompt: str,
        payload: dict[str, Any],
        tag: str = "REPORT",
        temperature: float = 0.0,
    ) -> str:
        """Return the raw reply text; raises on failure or timeout."""
        primary_route, secondary_route = self._routes()
        user_content = build_safe_payload_content(
            payload,
            tag=tag,
            max_tokens=self.max_input_tokens,
            warning_context={"stage": stage},
        )
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_content},
        ]
        try:
            invocation = await asyncio.wait_for(
                invoke_with_policy(
                    stage=stage,
                    messages=messages,
                    primary_route=primary_route,
                    secondary_route=secondary_route,
                    temperature=temperature,
                    fallback_response_format=JSON_OBJECT_FORMAT,
                ),
                timeout=self.timeout_seconds,
            )
        except TimeoutError:
            record_remote_classifier_call(stage=stage, outcome="timeout")
            logger.warning(
                "Remote classifier call timed out",
                stage=stage,
                timeout_seconds=self.timeout_seconds,
            )
            raise
        except Exception:
            record_remote_classifier_call(stage=stage, outcome="error")
            raise

        record_remote_classifier_call(stage=stage, outcome="ok")
        logger.debug(
            "Remote classifier call completed",
            stage=stage,
            provider=invocation.provider,
            model=invocation.active_model,
            prompt_tokens=invocation.prompt_tokens,
            completion_tokens=invocation.completion_tokens,
        )
        return response_text(invocation.response)


def build_remote_classifier(**kwargs: Any) -> RemoteClassifier | None:
    """Configured classifier, or ``None`` when no API key is set."""
    if kwargs.get("client") is None and not settings.remote_classifier_configured:
        return None
    return RemoteClassifier(**kwargs)
