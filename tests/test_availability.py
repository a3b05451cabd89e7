"""Tests for the availability probe.

Run after changes to: jobtracker_ai/engine/availability.py
"""

import asyncio

import pytest
from unittest.mock import AsyncMock

from jobtracker_ai.engine.availability import AvailabilityProbe
from jobtracker_ai.models import AvailabilityStatus


def make_probe(capability, clock, **kwargs) -> AvailabilityProbe:
    kwargs.setdefault("recheck_delay", 0)
    return AvailabilityProbe(capability, clock=clock, **kwargs)


class TestAvailabilityCache:
    """Short-lived caching of the status."""

    @pytest.mark.asyncio
    async def test_available(self, capability, clock):
        probe = make_probe(capability, clock)

        result = await probe.check_availability()

        assert result.available is True
        assert result.status == AvailabilityStatus.AVAILABLE

    @pytest.mark.asyncio
    async def test_fresh_result_is_reused(self, capability, clock):
        probe = make_probe(capability, clock)

        await probe.check_availability()
        clock.advance(29)
        await probe.check_availability()

        assert capability.availability_calls == 1

    @pytest.mark.asyncio
    async def test_expired_result_is_probed_again(self, capability, clock):
        probe = make_probe(capability, clock)

        await probe.check_availability()
        clock.advance(30)
        await probe.check_availability()

        assert capability.availability_calls == 2

    @pytest.mark.asyncio
    async def test_unavailable_is_cached(self, capability, clock):
        capability.status = AvailabilityStatus.UNAVAILABLE
        probe = make_probe(capability, clock)

        first = await probe.check_availability()
        capability.status = AvailabilityStatus.AVAILABLE
        second = await probe.check_availability()

        assert first.available is False
        assert second.available is False
        assert capability.availability_calls == 1

    @pytest.mark.asyncio
    async def test_clear_forces_new_probe(self, capability, clock):
        probe = make_probe(capability, clock)

        await probe.check_availability()
        probe.clear()
        await probe.check_availability()

        assert capability.availability_calls == 2


class TestProbeFailure:
    """A probe that raises."""

    @pytest.mark.asyncio
    async def test_error_reports_unavailable(self, capability, clock):
        capability.availability_error = RuntimeError("host crashed")
        probe = make_probe(capability, clock)

        result = await probe.check_availability()

        assert result.available is False
        assert result.status == AvailabilityStatus.UNAVAILABLE

    @pytest.mark.asyncio
    async def test_error_is_not_cached(self, capability, clock):
        capability.availability_error = RuntimeError("host crashed")
        probe = make_probe(capability, clock)
        await probe.check_availability()

        capability.availability_error = None
        result = await probe.check_availability()

        assert result.available is True
        assert capability.availability_calls == 2


class TestDownloadable:
    """Model that can be downloaded."""

    @pytest.mark.asyncio
    async def test_reports_available_and_starts_acquisition(self, capability, clock):
        capability.status = AvailabilityStatus.DOWNLOADABLE
        acquire = AsyncMock()
        probe = make_probe(capability, clock, acquire=acquire)

        result = await probe.check_availability()
        await asyncio.sleep(0)

        assert result.available is True
        assert result.status == AvailabilityStatus.DOWNLOADABLE
        acquire.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_default_acquisition_creates_and_releases_session(self, capability, clock):
        capability.status = AvailabilityStatus.DOWNLOADABLE
        probe = make_probe(capability, clock)

        await probe.check_availability()
        await asyncio.sleep(0.01)

        assert capability.create_calls == 1
        assert capability.live_sessions == []

    @pytest.mark.asyncio
    async def test_failed_acquisition_clears_cache(self, capability, clock):
        capability.status = AvailabilityStatus.DOWNLOADABLE
        acquire = AsyncMock(side_effect=RuntimeError("no disk space"))
        probe = make_probe(capability, clock, acquire=acquire)

        await probe.check_availability()
        await asyncio.sleep(0.01)

        assert probe.cached is None

    @pytest.mark.asyncio
    async def test_close_cancels_acquisition(self, capability, clock):
        capability.status = AvailabilityStatus.DOWNLOADABLE
        started = asyncio.Event()

        async def slow_acquire():
            started.set()
            await asyncio.sleep(10)

        probe = make_probe(capability, clock, acquire=slow_acquire)
        await probe.check_availability()
        await started.wait()

        await probe.close()


class TestDownloading:
    """Model download in progress."""

    @pytest.mark.asyncio
    async def test_rechecks_once(self, capability, clock):
        capability.status_sequence = [
            AvailabilityStatus.DOWNLOADING,
            AvailabilityStatus.AVAILABLE,
        ]
        probe = make_probe(capability, clock)

        result = await probe.check_availability()

        assert result.status == AvailabilityStatus.AVAILABLE
        assert capability.availability_calls == 2

    @pytest.mark.asyncio
    async def test_still_downloading_is_optimistic(self, capability, clock):
        capability.status = AvailabilityStatus.DOWNLOADING
        probe = make_probe(capability, clock)

        result = await probe.check_availability()

        assert result.available is True
        assert result.status == AvailabilityStatus.DOWNLOADING
        assert capability.availability_calls == 2
