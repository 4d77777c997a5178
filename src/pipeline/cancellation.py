"""Cooperative cancellation for long-running ingestion and retrieval work.

A :class:`CancellationToken` is created per request and passed explicitly
into every component that makes remote calls.  Components check it between
sub-batches (:meth:`CancellationToken.raise_if_cancelled`) and race
in-flight calls against it (:meth:`CancellationToken.guard`), so a client
disconnect stops work without waiting for the current embedding call to
finish.

Work that completed before the token fired is never rolled back.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

import structlog

from src.utils.logging import get_logger

_T = TypeVar("_T")

logger: structlog.BoundLogger = get_logger(__name__)


class OperationCancelled(Exception):
    """Raised inside a component when its cancellation token has fired."""

    def __init__(self, reason: str = "Upload cancelled") -> None:
        super().__init__(reason)
        self.reason = reason


class CancellationToken:
    """One-shot cancellation signal shared by all stages of a request."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason = ""

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "Upload cancelled") -> None:
        """Fire the token.  Later calls keep the first reason."""
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        logger.info("cancellation_requested", reason=reason)

    async def wait(self) -> None:
        """Block until the token fires."""
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled(self._reason)

    async def guard(self, awaitable: Awaitable[_T]) -> _T:
        """Await *awaitable*, abandoning it if the token fires first.

        If the call finishes in the same tick the token fires, its result
        is kept and the next :meth:`raise_if_cancelled` check stops the
        caller instead.

        Raises
        ------
        OperationCancelled
            If the token fired before *awaitable* completed.
        """
        self.raise_if_cancelled()

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise OperationCancelled(self._reason)


def never_cancelled() -> CancellationToken:
    """Return a fresh token for callers with nothing to cancel them (CLI, tests)."""
    return CancellationToken()
