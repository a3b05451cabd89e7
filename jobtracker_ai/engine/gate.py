"""Duplicate suppression and rate limiting for extractions.

Policy, evaluated in order:
1. ``force`` always passes (explicit user re-extraction)
2. An extraction in flight blocks everything else
3. The same page is blocked for ``cooldown`` seconds after its last start
4. A different page always passes
5. The same page is blocked once ``max_extractions`` starts fall inside
   the rolling ``window``
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Optional

from jobtracker_ai.constants import (
    EXTRACTION_COOLDOWN,
    EXTRACTION_WINDOW,
    MAX_EXTRACTIONS_PER_WINDOW,
    STUCK_RESET_TIMEOUT,
)

logger = logging.getLogger(__name__)


@dataclass
class ExtractionState:
    """Mutable gate record for the current page."""
    is_extracting: bool = False
    last_extraction_url: Optional[str] = None
    last_extraction_time: Optional[float] = None
    extraction_count: int = 0
    started_at: Optional[float] = None
    recent_starts: deque = field(default_factory=deque)


class ExtractionGate:
    """Rate limiter over a single ``ExtractionState``.

    Usage:
        if not gate.should_proceed(identity.key, force=force):
            raise ExtractionRateLimitedError(identity.key)
        run_id = gate.mark_started(identity.key)
        try:
            ...
        finally:
            gate.mark_completed(run_id)
    """

    def __init__(
        self,
        cooldown: float = EXTRACTION_COOLDOWN,
        max_extractions: int = MAX_EXTRACTIONS_PER_WINDOW,
        window: float = EXTRACTION_WINDOW,
        stuck_reset_timeout: float = STUCK_RESET_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize gate.

        Args:
            cooldown: Seconds before the same page may be extracted again
            max_extractions: Starts allowed inside ``window``
            window: Rolling window length in seconds
            stuck_reset_timeout: Seconds after which an unfinished run is
                considered crashed and the gate reopens
            clock: Monotonic time source
        """
        self.cooldown = cooldown
        self.max_extractions = max_extractions
        self.window = window
        self.stuck_reset_timeout = stuck_reset_timeout
        self._clock = clock

        self.state = ExtractionState()
        self._safety_handle: Optional[asyncio.TimerHandle] = None
        self._run_id = 0

    def _prune(self, now: float) -> None:
        starts = self.state.recent_starts
        while starts and now - starts[0] >= self.window:
            starts.popleft()

    def _reset_if_stuck(self, now: float) -> None:
        state = self.state
        if (
            state.is_extracting
            and state.started_at is not None
            and now - state.started_at >= self.stuck_reset_timeout
        ):
            logger.warning(
                f"Extraction state was stuck for {now - state.started_at:.0f}s, resetting"
            )
            state.is_extracting = False

    def check(self, page_key: str, force: bool = False) -> Optional[str]:
        """
        Evaluate the policy.

        Returns:
            None when the extraction may proceed, otherwise the denial reason
        """
        now = self._clock()
        self._reset_if_stuck(now)

        if force:
            return None

        state = self.state
        if state.is_extracting:
            return "extraction already in progress"

        if page_key != state.last_extraction_url:
            return None

        if state.last_extraction_time is not None:
            elapsed = now - state.last_extraction_time
            if elapsed < self.cooldown:
                return f"same page extracted {elapsed:.1f}s ago"

        self._prune(now)
        if len(state.recent_starts) >= self.max_extractions:
            return (
                f"{len(state.recent_starts)} extractions in the last "
                f"{self.window:.0f}s"
            )
        return None

    def should_proceed(self, page_key: str, force: bool = False) -> bool:
        reason = self.check(page_key, force)
        if reason:
            logger.debug(f"Extraction denied for {page_key}: {reason}")
        return reason is None

    def mark_started(self, page_key: str) -> int:
        """
        Record a run start and arm the safety reset.

        Returns:
            Run id to pass to ``mark_completed`` / ``mark_cancelled``
        """
        now = self._clock()
        state = self.state
        state.is_extracting = True
        state.last_extraction_url = page_key
        state.last_extraction_time = now
        state.started_at = now
        state.extraction_count += 1
        self._prune(now)
        state.recent_starts.append(now)

        self._run_id += 1
        self._arm_safety_reset(self._run_id)
        return self._run_id

    def _arm_safety_reset(self, run_id: int) -> None:
        self._cancel_safety_reset()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop (sync caller): the lazy check in check() still applies
            return
        self._safety_handle = loop.call_later(
            self.stuck_reset_timeout, self._safety_reset, run_id
        )

    def _cancel_safety_reset(self) -> None:
        if self._safety_handle is not None:
            self._safety_handle.cancel()
            self._safety_handle = None

    def _safety_reset(self, run_id: int) -> None:
        self._safety_handle = None
        if run_id == self._run_id and self.state.is_extracting:
            logger.warning("Extraction state was stuck, resetting")
            self.state.is_extracting = False

    def _is_stale_run(self, run_id: Optional[int]) -> bool:
        # A run started before reset() or before a newer run must not touch the state
        return run_id is not None and run_id != self._run_id

    def mark_completed(self, run_id: Optional[int] = None) -> None:
        """Clear the in-flight flag after a run (successful or not)."""
        if self._is_stale_run(run_id):
            return
        self.state.is_extracting = False
        self.state.started_at = None
        self._cancel_safety_reset()

    def mark_cancelled(self, run_id: Optional[int] = None) -> None:
        """
        Clear the in-flight flag after a cancelled run.

        A cancelled run does not count against the cooldown or the window,
        so the user can retry right away. ``extraction_count`` keeps it.
        """
        if self._is_stale_run(run_id):
            return
        state = self.state
        started_at = state.started_at
        self.mark_completed()
        state.last_extraction_time = None
        if started_at is not None and started_at in state.recent_starts:
            state.recent_starts.remove(started_at)

    def reset(self) -> None:
        """Forget everything; used when the page identity changes."""
        self._cancel_safety_reset()
        self._run_id += 1
        self.state = ExtractionState()

    def get_stats(self) -> dict:
        self._prune(self._clock())
        return {
            "is_extracting": self.state.is_extracting,
            "last_extraction_url": self.state.last_extraction_url,
            "extraction_count": self.state.extraction_count,
            "recent_extractions": len(self.state.recent_starts),
        }
