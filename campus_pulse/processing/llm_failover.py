"""
Retry and failover for remote classifier chat completion calls.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import structlog
from openai import APIConnectionError, APIStatusError, APITimeoutError, RateLimitError

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class LLMChatRoute:
    """One provider/model pair reachable through an OpenAI-compatible client."""

    provider: str
    model: str
    client: Any
    request_overrides: dict[str, Any] | None = None


@dataclass(slots=True, frozen=True)
class LLMChatRetryPolicy:
    max_attempts: int = 2
    backoff_seconds: float = 0.25

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            msg = "LLM retry policy requires max_attempts >= 1"
            raise ValueError(msg)
        if self.backoff_seconds < 0:
            msg = "LLM retry policy requires backoff_seconds >= 0"
            raise ValueError(msg)


class LLMInvocationErrorCode(StrEnum):
    RATE_LIMIT = "rate_limit"
    PROVIDER_HTTP_5XX = "http_5xx"
    TIMEOUT = "timeout"
    CONNECTION = "connection_error"
    NON_RETRYABLE = "non_retryable"


@dataclass(slots=True, frozen=True)
class LLMInvocationError:
    code: LLMInvocationErrorCode
    retryable: bool
    status_code: int | None = None


def extract_status_code(exc: Exception) -> int | None:
    for candidate in (exc, getattr(exc, "response", None)):
        status = getattr(candidate, "status_code", None)
        if isinstance(status, int):
            return status
    return None


def classify_error(exc: Exception) -> LLMInvocationError:
    """Bucket an invocation failure into a retryable or terminal error code."""
    if isinstance(exc, RateLimitError):
        return LLMInvocationError(LLMInvocationErrorCode.RATE_LIMIT, True, 429)
    if isinstance(exc, APITimeoutError | TimeoutError):
        return LLMInvocationError(LLMInvocationErrorCode.TIMEOUT, True)
    if isinstance(exc, APIConnectionError | ConnectionError):
        return LLMInvocationError(LLMInvocationErrorCode.CONNECTION, True)

    status_code = extract_status_code(exc)
    if isinstance(exc, APIStatusError) and status_code is None:
        status_code = 0
    if status_code == 429:
        return LLMInvocationError(LLMInvocationErrorCode.RATE_LIMIT, True, status_code)
    if status_code is not None and status_code >= 500:
        return LLMInvocationError(LLMInvocationErrorCode.PROVIDER_HTTP_5XX, True, status_code)
    return LLMInvocationError(LLMInvocationErrorCode.NON_RETRYABLE, False, status_code)


class LLMChatFailoverInvoker:
    """Call the primary route with bounded retries, then the secondary route if any."""

    def __init__(
        self,
        *,
        stage: str,
        primary: LLMChatRoute,
        secondary: LLMChatRoute | None = None,
        retry_policy: LLMChatRetryPolicy | None = None,
    ) -> None:
        self.stage = stage
        self.primary = primary
        self.secondary = secondary
        self.retry_policy = retry_policy or LLMChatRetryPolicy()

    async def create_chat_completion(
        self,
        *,
        messages: list[dict[str, str]],
        temperature: float,
        response_format: dict[str, Any] | None = None,
    ) -> tuple[Any, LLMChatRoute]:
        try:
            response = await self._call_with_retries(
                self.primary, messages, temperature, response_format
            )
            return (response, self.primary)
        except Exception as primary_exc:
            if self.secondary is None or not classify_error(primary_exc).retryable:
                raise
            logger.warning(
                "LLM failover activated",
                stage=self.stage,
                reason=str(classify_error(primary_exc).code),
                primary_model=self.primary.model,
                secondary_provider=self.secondary.provider,
                secondary_model=self.secondary.model,
            )

        response = await self._call_with_retries(
            self.secondary, messages, temperature, response_format
        )
        return (response, self.secondary)

    async def _call_with_retries(
        self,
        route: LLMChatRoute,
        messages: list[dict[str, str]],
        temperature: float,
        response_format: dict[str, Any] | None,
    ) -> Any:
        attempt = 1
        while True:
            try:
                return await self._create_for_route(route, messages, temperature, response_format)
            except Exception as exc:
                error = classify_error(exc)
                if not error.retryable or attempt >= self.retry_policy.max_attempts:
                    raise
                backoff_seconds = round(self.retry_policy.backoff_seconds * attempt, 4)
                logger.warning(
                    "LLM route retry scheduled",
                    stage=self.stage,
                    provider=route.provider,
                    model=route.model,
                    reason=str(error.code),
                    attempt=attempt,
                    backoff_seconds=backoff_seconds,
                )
                if backoff_seconds > 0:
                    await asyncio.sleep(backoff_seconds)
                attempt += 1

    @staticmethod
    async def _create_for_route(
        route: LLMChatRoute,
        messages: list[dict[str, str]],
        temperature: float,
        response_format: dict[str, Any] | None,
    ) -> Any:
        create_kwargs: dict[str, Any] = {
            "model": route.model,
            "temperature": temperature,
            "messages": messages,
        }
        if response_format is not None:
            create_kwargs["response_format"] = response_format
        if route.request_overrides:
            create_kwargs.update(route.request_overrides)
        return await route.client.chat.completions.create(**create_kwargs)
