"""
Progress events for multi-stage pipeline runs.

The coordinator writes through a ProgressReporter; callers either pass a
plain callback or subscribe to a ProgressStream and iterate it.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[["ProgressEvent"], Awaitable[None] | None]


@dataclass(slots=True, frozen=True)
class ProgressEvent:
    stage: str
    progress: int
    message: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "stage": self.stage,
            "progress": self.progress,
            "message": self.message,
        }
        if self.data:
            payload["data"] = dict(self.data)
        return payload


_CLOSED = object()


class ProgressStream:
    """Queue-backed event channel; iteration ends on close or cancel."""

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._cancelled = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def emit(self, event: ProgressEvent) -> None:
        if self._closed:
            return
        await self._queue.put(event)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    def cancel(self) -> None:
        """Stop delivering events; pending ones are dropped."""
        self._cancelled = True
        while not self._queue.empty():
            self._queue.get_nowait()
        self.close()

    def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ProgressEvent]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item


class ProgressReporter:
    """Forwards events to a callback and/or stream, dropping non-increasing percentages."""

    def __init__(
        self,
        *,
        callback: ProgressCallback | None = None,
        stream: ProgressStream | None = None,
    ) -> None:
        self.callback = callback
        self.stream = stream
        self.last_progress = -1
        self.events: list[ProgressEvent] = []

    async def emit(
        self,
        stage: str,
        progress: int,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> bool:
        bounded = max(0, min(100, int(progress)))
        if bounded <= self.last_progress:
            logger.debug(
                "Dropping non-monotonic progress event",
                stage=stage,
                progress=bounded,
                last_progress=self.last_progress,
            )
            return False
        self.last_progress = bounded
        event = ProgressEvent(stage=stage, progress=bounded, message=message, data=dict(data or {}))
        self.events.append(event)

        if self.callback is not None:
            try:
                result = self.callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                # A broken subscriber must not fail the pipeline.
                logger.warning("Progress callback failed", stage=stage, error=str(exc)[:1000])
        if self.stream is not None and not self.stream.cancelled:
            await self.stream.emit(event)
        return True

    def close(self) -> None:
        if self.stream is not None:
            self.stream.close()
