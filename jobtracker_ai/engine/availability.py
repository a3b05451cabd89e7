"""Availability probe for the host inference capability."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from jobtracker_ai.constants import AVAILABILITY_CACHE_TTL, DOWNLOAD_RECHECK_DELAY
from jobtracker_ai.llm.base import BaseInferenceCapability
from jobtracker_ai.models import AvailabilityResult, AvailabilityStatus

logger = logging.getLogger(__name__)


@dataclass
class AvailabilityCache:
    """Last observed status with its observation time."""
    status: AvailabilityStatus
    observed_at: float


class AvailabilityProbe:
    """
    Проверка готовности модели с коротким кэшем.

    ``downloadable`` starts acquisition in the background and is reported as
    available; ``downloading`` is re-checked once after a short pause.
    A probe that raises counts as ``unavailable`` and is not cached.
    """

    def __init__(
        self,
        capability: BaseInferenceCapability,
        acquire: Optional[Callable[[], Awaitable[Any]]] = None,
        cache_ttl: float = AVAILABILITY_CACHE_TTL,
        recheck_delay: float = DOWNLOAD_RECHECK_DELAY,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            capability: Host inference capability
            acquire: Coroutine function that starts acquisition of a
                downloadable model; by default a session is created and
                released right away
            cache_ttl: Seconds a result is reused
            recheck_delay: Pause before re-checking a downloading model
            clock: Monotonic time source
        """
        self.capability = capability
        self._acquire = acquire or self._create_and_release
        self.cache_ttl = cache_ttl
        self.recheck_delay = recheck_delay
        self._clock = clock

        self._cache: Optional[AvailabilityCache] = None
        self._acquire_task: Optional[asyncio.Task] = None

    async def _create_and_release(self) -> None:
        session = await self.capability.create()
        await session.destroy()

    @property
    def cached(self) -> Optional[AvailabilityCache]:
        return self._cache

    def _fresh_cache(self) -> Optional[AvailabilityCache]:
        if self._cache and self._clock() - self._cache.observed_at < self.cache_ttl:
            return self._cache
        return None

    async def _probe(self) -> Optional[AvailabilityStatus]:
        try:
            return AvailabilityStatus(await self.capability.availability())
        except Exception as e:
            logger.warning(f"Availability probe failed: {e}")
            return None

    def _on_acquire_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        if task.exception() is not None:
            logger.warning(f"Background model acquisition failed: {task.exception()}")
            # Next check must probe again instead of trusting the optimistic answer
            self._cache = None

    def _start_acquisition(self) -> None:
        if self._acquire_task is not None and not self._acquire_task.done():
            return
        logger.info("Model is downloadable, starting acquisition in background")
        self._acquire_task = asyncio.ensure_future(self._acquire())
        self._acquire_task.add_done_callback(self._on_acquire_done)

    async def check_availability(self) -> AvailabilityResult:
        """
        Check whether extraction can use the model.

        Returns:
            AvailabilityResult with ``available`` flag and raw status
        """
        cached = self._fresh_cache()
        if cached is not None:
            return AvailabilityResult(
                available=cached.status != AvailabilityStatus.UNAVAILABLE,
                status=cached.status,
            )

        status = await self._probe()
        if status is None:
            return AvailabilityResult(available=False, status=AvailabilityStatus.UNAVAILABLE)

        if status == AvailabilityStatus.DOWNLOADABLE:
            self._start_acquisition()
        elif status == AvailabilityStatus.DOWNLOADING:
            logger.debug(f"Model is downloading, re-checking in {self.recheck_delay}s")
            await asyncio.sleep(self.recheck_delay)
            rechecked = await self._probe()
            if rechecked is None:
                return AvailabilityResult(
                    available=False, status=AvailabilityStatus.UNAVAILABLE
                )
            status = rechecked
            if status == AvailabilityStatus.DOWNLOADABLE:
                self._start_acquisition()

        self._cache = AvailabilityCache(status=status, observed_at=self._clock())
        available = status != AvailabilityStatus.UNAVAILABLE
        logger.debug(f"Availability: {status.value} (available={available})")
        return AvailabilityResult(available=available, status=status)

    def clear(self) -> None:
        self._cache = None

    async def close(self) -> None:
        """Cancel a background acquisition that is still running."""
        if self._acquire_task is not None and not self._acquire_task.done():
            self._acquire_task.cancel()
            await asyncio.gather(self._acquire_task, return_exceptions=True)
        self._acquire_task = None
