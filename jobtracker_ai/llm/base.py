"""Base classes for host inference capabilities."""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from jobtracker_ai.models import AvailabilityStatus

if TYPE_CHECKING:
    from jobtracker_ai.cancellation import CancellationToken

logger = logging.getLogger(__name__)


@dataclass
class LLMUsageStats:
    """Statistics for LLM usage tracking."""
    total_calls: int = 0
    total_prompt_tokens: int = 0
    total_completion_tokens: int = 0
    total_time_seconds: float = 0.0

    def add_call(self, prompt_tokens: int, completion_tokens: int, time_seconds: float):
        """Record a single LLM call."""
        self.total_calls += 1
        self.total_prompt_tokens += prompt_tokens
        self.total_completion_tokens += completion_tokens
        self.total_time_seconds += time_seconds

    @property
    def total_tokens(self) -> int:
        return self.total_prompt_tokens + self.total_completion_tokens

    def summary(self) -> str:
        """Human-readable summary."""
        return (
            f"LLM Stats: {self.total_calls} calls, "
            f"{self.total_tokens:,} tokens ({self.total_prompt_tokens:,}+{self.total_completion_tokens:,}), "
            f"{self.total_time_seconds:.1f}s total"
        )


class BaseInferenceSession(ABC):
    """A live handle to a loaded model.

    Subclasses implement ``_generate``; callers use ``prompt``, which applies
    the caller's cancellation token and records activity.
    """

    def __init__(self):
        self.created_at = time.monotonic()
        self.last_activity = self.created_at
        self.destroyed = False

    @abstractmethod
    async def _generate(self, text: str) -> str:
        """Run one completion against the model."""
        pass

    async def prompt(self, text: str, cancel_token: Optional["CancellationToken"] = None) -> str:
        """
        Send a prompt to the model.

        Args:
            text: Prompt text
            cancel_token: Optional token; cancelling it aborts the request

        Returns:
            Raw model output
        """
        self.last_activity = time.monotonic()
        if cancel_token is None:
            return await self._generate(text)
        return await cancel_token.guard(self._generate(text))

    async def health_check(self, text: str) -> str:
        """Send a cheap probe prompt. Sessions may cap the reply length."""
        return await self.prompt(text)

    async def destroy(self) -> None:
        """Release host resources held by the session."""
        self.destroyed = True


class BaseInferenceCapability(ABC):
    """Abstract host inference capability (``availability`` + ``create``)."""

    @abstractmethod
    async def availability(self) -> AvailabilityStatus:
        """Report whether the model can be used right now."""
        pass

    @abstractmethod
    async def create(self, **options) -> BaseInferenceSession:
        """Create a new session, downloading the model first if needed."""
        pass

    async def close(self) -> None:
        """Release client resources."""
        pass
