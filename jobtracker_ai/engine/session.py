"""Lifecycle of the single shared inference session.

State machine::

    ABSENT -> CREATING -> HEALTHY -> (probe ok) HEALTHY
                                  -> (probe failed) RECREATING -> CREATING
    HEALTHY -> (idle / heartbeat failure / invalidate) ABSENT

At most one session is handed out at a time. Concurrent callers that arrive
while a session is being created share the same creation task.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Callable, Optional

from jobtracker_ai.constants import (
    HEALTH_CHECK_PROMPT,
    HEALTH_CHECK_TIMEOUT,
    HEARTBEAT_INTERVAL,
    HEARTBEAT_TIMEOUT,
    SESSION_IDLE_TIMEOUT,
)
from jobtracker_ai.exceptions import SessionError
from jobtracker_ai.llm.base import BaseInferenceCapability, BaseInferenceSession

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Состояние менеджера сессии."""

    ABSENT = "absent"
    CREATING = "creating"
    HEALTHY = "healthy"
    RECREATING = "recreating"


class SessionManager:
    """Owns one long-lived inference session.

    Usage:
        manager = SessionManager(capability)
        session = await manager.ensure_session()
        text = await session.prompt("...")
        await manager.close()
    """

    def __init__(
        self,
        capability: BaseInferenceCapability,
        health_check_timeout: float = HEALTH_CHECK_TIMEOUT,
        heartbeat_interval: float = HEARTBEAT_INTERVAL,
        heartbeat_timeout: float = HEARTBEAT_TIMEOUT,
        idle_timeout: float = SESSION_IDLE_TIMEOUT,
        session_options: Optional[dict[str, Any]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize session manager.

        Args:
            capability: Host inference capability used to create sessions
            health_check_timeout: Probe timeout before handing out a session
            heartbeat_interval: Background probe period; 0 disables the heartbeat
            heartbeat_timeout: Background probe timeout
            idle_timeout: Inactivity after which the session is released
            session_options: Keyword arguments for ``capability.create``
            clock: Monotonic time source
        """
        self.capability = capability
        self.health_check_timeout = health_check_timeout
        self.heartbeat_interval = heartbeat_interval
        self.heartbeat_timeout = heartbeat_timeout
        self.idle_timeout = idle_timeout
        self.session_options = session_options or {}
        self._clock = clock

        self._session: Optional[BaseInferenceSession] = None
        self._state = SessionState.ABSENT
        self._creating: Optional[asyncio.Task] = None
        self._generation = 0
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._last_activity: Optional[float] = None

        self.stats = {
            "created": 0,
            "recreated": 0,
            "creation_failures": 0,
            "health_check_failures": 0,
            "idle_evictions": 0,
        }

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> Optional[BaseInferenceSession]:
        return self._session

    @property
    def is_healthy(self) -> bool:
        return self._state == SessionState.HEALTHY and self._session is not None

    @property
    def last_activity(self) -> Optional[float]:
        return self._last_activity

    def record_activity(self) -> None:
        """Mark the session as used; postpones idle eviction."""
        self._last_activity = self._clock()

    async def _probe(self, session: BaseInferenceSession, timeout: float) -> bool:
        """Send the cheap health prompt, raced against ``timeout``."""
        try:
            await asyncio.wait_for(session.health_check(HEALTH_CHECK_PROMPT), timeout)
            return True
        except asyncio.TimeoutError:
            logger.debug(f"Session health check timed out after {timeout}s")
            return False
        except Exception as e:
            logger.debug(f"Session health check failed: {e}")
            return False

    async def ensure_session(self) -> BaseInferenceSession:
        """
        Return a healthy session, creating one if needed.

        A healthy session is probed first; a failed probe destroys it and a
        new one is created.

        Raises:
            SessionError: If the session cannot be created
        """
        session = self._session
        if session is not None and self._state == SessionState.HEALTHY:
            healthy = await self._probe(session, self.health_check_timeout)
            if healthy and self._session is session:
                self.record_activity()
                return session

            if not healthy and self._session is session:
                logger.info("Inference session failed health check, recreating")
                self.stats["health_check_failures"] += 1
                self.stats["recreated"] += 1
                self._state = SessionState.RECREATING
                await self._discard(session)

        return await self._join_creation()

    async def _join_creation(self) -> BaseInferenceSession:
        if self._creating is None:
            self._creating = asyncio.create_task(self._create(self._generation))
            self._creating.add_done_callback(self._on_creation_done)
        task = self._creating
        # One waiter being cancelled must not abort the shared creation
        return await asyncio.shield(task)

    def _on_creation_done(self, task: asyncio.Task) -> None:
        if self._creating is task:
            self._creating = None
        if not task.cancelled():
            # Retrieve the exception so an unawaited failure is not reported twice
            task.exception()

    async def _create(self, generation: int) -> BaseInferenceSession:
        self._state = SessionState.CREATING
        start_time = time.perf_counter()
        try:
            session = await self.capability.create(**self.session_options)
        except Exception as e:
            self.stats["creation_failures"] += 1
            if generation == self._generation:
                self._state = SessionState.ABSENT
            raise SessionError(f"Failed to create inference session: {e}") from e

        if generation != self._generation:
            logger.debug("Session arrived after invalidation, destroying it")
            await self._destroy_quietly(session)
            raise SessionError("Inference session was invalidated while being created")

        self._session = session
        self._state = SessionState.HEALTHY
        self.stats["created"] += 1
        self.record_activity()
        self._ensure_heartbeat()
        logger.debug(f"Inference session created in {time.perf_counter() - start_time:.2f}s")
        return session

    async def _destroy_quietly(self, session: BaseInferenceSession) -> None:
        try:
            await session.destroy()
        except Exception as e:
            logger.warning(f"Failed to destroy inference session: {e}")

    async def _discard(self, session: BaseInferenceSession) -> None:
        """Drop ``session`` if it is still the current one."""
        if self._session is not session:
            return
        self._session = None
        if self._state != SessionState.RECREATING:
            self._state = SessionState.ABSENT
        await self._destroy_quietly(session)

    def _ensure_heartbeat(self) -> None:
        if self.heartbeat_interval <= 0:
            return
        if self._heartbeat_task is None or self._heartbeat_task.done():
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            if not await self.heartbeat():
                return

    async def heartbeat(self) -> bool:
        """
        One heartbeat tick: evict an idle or unresponsive session.

        Returns:
            True while there is a healthy session left to watch
        """
        session = self._session
        if session is None or self._state != SessionState.HEALTHY:
            return False

        idle = self._clock() - (self._last_activity or 0.0)
        if idle >= self.idle_timeout:
            logger.info(f"Inference session idle for {idle:.0f}s, releasing it")
            self.stats["idle_evictions"] += 1
            await self._discard(session)
            return False

        if not await self._probe(session, self.heartbeat_timeout):
            logger.warning("Inference session failed heartbeat, releasing it")
            self.stats["health_check_failures"] += 1
            await self._discard(session)
            return False

        return True

    async def prewarm(self) -> bool:
        """Create the session ahead of the first extraction. Never raises."""
        try:
            await self.ensure_session()
            return True
        except SessionError as e:
            logger.info(f"Session pre-warm failed: {e}")
            return False

    def _stop_heartbeat(self) -> None:
        task = self._heartbeat_task
        self._heartbeat_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def invalidate(self) -> None:
        """
        Force ABSENT from any state.

        A creation still in flight finishes in the background; its session is
        destroyed on arrival and its waiters get ``SessionError``.
        """
        self._generation += 1
        self._creating = None
        self._stop_heartbeat()

        session = self._session
        self._session = None
        self._state = SessionState.ABSENT
        if session is not None:
            logger.debug("Inference session invalidated")
            await self._destroy_quietly(session)

    async def close(self) -> None:
        """Invalidate and stop all background work."""
        creating = self._creating
        heartbeat = self._heartbeat_task
        await self.invalidate()
        for task in (creating, heartbeat):
            if task is not None and not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)

    def get_stats(self) -> dict:
        idle = None
        if self._last_activity is not None and self._session is not None:
            idle = self._clock() - self._last_activity
        return {
            "state": self._state.value,
            "idle_seconds": idle,
            **self.stats,
        }
