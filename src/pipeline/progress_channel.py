"""Outbound progress event channel for an ingestion job.

The job controller owns exactly one :class:`ProgressChannel` per job and
pushes a :class:`~src.models.ingestion.ProgressEvent` for every state
transition.  Consumers either iterate the channel (the SSE endpoint) or
register listener callbacks (the CLI progress printer, tests).

    JobController --emit()--> ProgressChannel --queue--> SSE response
                                              --callback()--> listeners

Guarantees:
    - progress never decreases across non-error events; a lower value is
      raised to the last one emitted.
    - error events carry progress 0, the value clients use to reset.
    - after a terminal event the channel closes and further emits are
      ignored.
    - listener errors are logged and skipped, never propagated.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable

import structlog

from src.models.ingestion import EventStatus, ProgressEvent
from src.utils.logging import get_logger

_CLOSED = object()


class ProgressChannel:
    """Single-producer event channel with history and listener fan-out."""

    def __init__(self, job_id: str = "") -> None:
        self._job_id = job_id
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._history: list[ProgressEvent] = []
        self._listeners: list[Callable] = []
        self._last_progress = 0
        self._closed = False
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    async def emit(self, event: ProgressEvent) -> ProgressEvent | None:
        """Record *event*, queue it for the consumer and notify listeners.

        Returns the event as actually emitted (progress possibly raised to
        keep the sequence monotonic), or ``None`` if the channel is closed.
        """
        if self._closed:
            self._logger.debug("progress_after_close", job_id=self._job_id, status=event.status.value)
            return None

        if event.status is not EventStatus.ERROR and event.progress < self._last_progress:
            event = event.model_copy(update={"progress": self._last_progress})
        if event.status is not EventStatus.ERROR:
            self._last_progress = event.progress

        self._history.append(event)
        await self._queue.put(event)

        self._logger.debug(
            "progress_event",
            job_id=self._job_id,
            status=event.status.value,
            progress=event.progress,
            message=event.message,
        )

        await self._notify_listeners(event)

        if event.status.is_terminal:
            self.close()
        return event

    def close(self) -> None:
        """Mark the stream finished.  Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    async def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item  # type: ignore[misc]

    def register_listener(self, callback: Callable) -> None:
        """Register a sync or async callable accepting ``(event)``."""
        if callback not in self._listeners:
            self._listeners.append(callback)

    def unregister_listener(self, callback: Callable) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    @property
    def events(self) -> list[ProgressEvent]:
        """Every event emitted so far, in order."""
        return list(self._history)

    @property
    def last_progress(self) -> int:
        return self._last_progress

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _notify_listeners(self, event: ProgressEvent) -> None:
        for callback in list(self._listeners):
            try:
                result = callback(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "listener_callback_error",
                    job_id=self._job_id,
                    error=str(exc),
                    callback=getattr(callback, "__name__", repr(callback)),
                )
