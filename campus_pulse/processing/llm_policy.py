"""
Shared invocation policy for remote classifier calls.

Bundles payload safety (bounding and delimiting untrusted report text),
failover/retry invocation, strict-schema fallback and usage accounting.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

import structlog

from campus_pulse.core.config import settings
from campus_pulse.processing.llm_failover import (
    LLMChatFailoverInvoker,
    LLMChatRetryPolicy,
    LLMChatRoute,
    extract_status_code,
)
from campus_pulse.processing.llm_input_safety import (
    UNTRUSTED_NOTICE,
    estimate_tokens,
    normalize_report_text,
    truncate_to_token_limit,
    wrap_untrusted_text,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class LLMInvocationResult:
    response: Any
    provider: str
    active_model: str
    prompt_tokens: int
    completion_tokens: int


def build_safe_payload_content(
    payload: dict[str, Any],
    *,
    tag: str,
    max_tokens: int,
    warning_context: dict[str, Any] | None = None,
) -> str:
    """Serialize, bound and delimit an untrusted payload for a user message."""
    payload = {
        key: normalize_report_text(value) if isinstance(value, str) else value
        for key, value in payload.items()
    }
    # Escape angle brackets so report text cannot close the delimiter tag.
    raw_payload = (
        json.dumps(payload, ensure_ascii=False).replace("<", "\\u003c").replace(">", "\\u003e")
    )
    estimated = estimate_tokens(text=raw_payload)
    if estimated > max_tokens:
        logger.warning(
            "Report payload truncated for remote classifier",
            estimated_tokens=estimated,
            max_tokens=max_tokens,
            **(warning_context or {}),
        )
        raw_payload = truncate_to_token_limit(text=raw_payload, max_tokens=max_tokens)
    return f"{UNTRUSTED_NOTICE}\n{wrap_untrusted_text(text=raw_payload, tag=tag)}"


def extract_usage_tokens(response: Any) -> tuple[int, int]:
    usage = getattr(response, "usage", None)
    prompt_tokens = int(getattr(usage, "prompt_tokens", 0) or 0)
    completion_tokens = int(getattr(usage, "completion_tokens", 0) or 0)
    return (prompt_tokens, completion_tokens)


def is_strict_schema_unsupported_error(exc: Exception) -> bool:
    if extract_status_code(exc) != 400:
        return False
    message = str(exc).lower()
    return "json_schema" in message or "response_format" in message or "strict" in message


async def invoke_with_policy(
    *,
    stage: str,
    messages: list[dict[str, str]],
    primary_route: LLMChatRoute,
    secondary_route: LLMChatRoute | None,
    temperature: float,
    strict_response_format: dict[str, Any] | None = None,
    fallback_response_format: dict[str, Any] | None = None,
    retry_policy: LLMChatRetryPolicy | None = None,
) -> LLMInvocationResult:
    invoker = LLMChatFailoverInvoker(
        stage=stage,
        primary=primary_route,
        secondary=secondary_route,
        retry_policy=retry_policy
        or LLMChatRetryPolicy(
            max_attempts=settings.LLM_ROUTE_RETRY_ATTEMPTS,
            backoff_seconds=settings.LLM_ROUTE_RETRY_BACKOFF_SECONDS,
        ),
    )

    response_format = strict_response_format or fallback_response_format
    try:
        response, route = await invoker.create_chat_completion(
            messages=messages,
            temperature=temperature,
            response_format=response_format,
        )
    except Exception as exc:
        if (
            strict_response_format is None
            or fallback_response_format is None
            or not is_strict_schema_unsupported_error(exc)
        ):
            raise
        logger.warning(
            "Strict schema unsupported; falling back to compatibility response format",
            stage=stage,
            model=primary_route.model,
        )
        response, route = await invoker.create_chat_completion(
            messages=messages,
            temperature=temperature,
            response_format=fallback_response_format,
        )

    prompt_tokens, completion_tokens = extract_usage_tokens(response)
    return LLMInvocationResult(
        response=response,
        provider=route.provider,
        active_model=route.model,
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
    )
