"""Tests for the cancellation token.

Run after changes to: jobtracker_ai/cancellation.py
"""

import asyncio

import pytest

from jobtracker_ai.cancellation import CancellationToken
from jobtracker_ai.exceptions import ExtractionCancelledError


class TestCancellationToken:
    """Token state."""

    def test_starts_active(self):
        token = CancellationToken()
        assert not token.is_cancelled
        token.raise_if_cancelled()

    def test_cancel_keeps_first_reason(self):
        token = CancellationToken()
        token.cancel("user closed popup")
        token.cancel("second")

        assert token.is_cancelled
        assert token.reason == "user closed popup"
        with pytest.raises(ExtractionCancelledError, match="user closed popup"):
            token.raise_if_cancelled()


class TestGuard:
    """Racing awaitables against the token."""

    @pytest.mark.asyncio
    async def test_returns_result(self):
        token = CancellationToken()

        async def work():
            return 42

        assert await token.guard(work()) == 42

    @pytest.mark.asyncio
    async def test_propagates_errors(self):
        token = CancellationToken()

        async def work():
            raise ValueError("bad output")

        with pytest.raises(ValueError):
            await token.guard(work())

    @pytest.mark.asyncio
    async def test_cancel_aborts_pending_work(self):
        token = CancellationToken()
        finished = []

        async def work():
            await asyncio.sleep(10)
            finished.append(True)

        guarded = asyncio.create_task(token.guard(work()))
        await asyncio.sleep(0.01)
        token.cancel()

        with pytest.raises(ExtractionCancelledError):
            await guarded
        assert finished == []

    @pytest.mark.asyncio
    async def test_already_cancelled_token(self):
        token = CancellationToken()
        token.cancel()
        started = []

        async def work():
            started.append(True)

        with pytest.raises(ExtractionCancelledError):
            await token.guard(work())
        assert started == []

    @pytest.mark.asyncio
    async def test_task_cancellation_cancels_inner_work(self):
        token = CancellationToken()
        inner_cancelled = asyncio.Event()

        async def work():
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                inner_cancelled.set()
                raise

        guarded = asyncio.create_task(token.guard(work()))
        await asyncio.sleep(0.01)
        guarded.cancel()

        with pytest.raises(asyncio.CancelledError):
            await guarded
        assert inner_cancelled.is_set()

    @pytest.mark.asyncio
    async def test_wait(self):
        token = CancellationToken()
        waiter = asyncio.create_task(token.wait())
        await asyncio.sleep(0)

        token.cancel()
        await asyncio.wait_for(waiter, 1)
