"""Cooperative cancellation for extraction runs.

A ``CancellationToken`` is created by the caller and threaded through every
suspending call of an extraction. Cancelling it aborts all guarded awaits.

Usage:
    token = CancellationToken()
    task = asyncio.create_task(engine.extract(cancel_token=token))
    ...
    token.cancel()  # task raises ExtractionCancelledError
"""

import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

from jobtracker_ai.exceptions import ExtractionCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """One-shot cancellation signal backed by ``asyncio.Event``."""

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled by caller") -> None:
        """Signal cancellation. Repeated calls keep the first reason."""
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()
        logger.debug(f"Cancellation requested: {reason}")

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ExtractionCancelledError(self.reason or "cancelled")

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        await self._event.wait()

    async def guard(self, aw: Awaitable[T]) -> T:
        """
        Await ``aw`` unless the token fires first.

        The awaitable is wrapped in a task; when the token is cancelled the
        task is cancelled too and ``ExtractionCancelledError`` is raised.

        Args:
            aw: Coroutine or future to run

        Returns:
            Result of ``aw``

        Raises:
            ExtractionCancelledError: If the token fired before ``aw`` finished
        """
        task = asyncio.ensure_future(aw)
        if self.is_cancelled:
            await _cancel_and_drain(task)
            self.raise_if_cancelled()

        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            await _cancel_and_drain(task)
            raise
        finally:
            waiter.cancel()

        if self.is_cancelled:
            await _cancel_and_drain(task)
            self.raise_if_cancelled()

        return task.result()


async def _cancel_and_drain(task: asyncio.Future) -> None:
    """Cancel a task and wait for it to settle, discarding its outcome."""
    if not task.done():
        task.cancel()
    await asyncio.gather(task, return_exceptions=True)
