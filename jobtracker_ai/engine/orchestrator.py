"""Extraction orchestrator: the public API of the engine.

One ``extract`` call:
1. resolves the page identity and serves the extraction cache
2. asks the gate for permission and marks the run as started
3. takes the page snapshot from the content cache or the extractor
4. obtains the shared session (probing availability when there is none)
5. runs the company/position and description prompts concurrently,
   delivering each field through ``on_partial`` as soon as it is parsed
6. assembles the result, writes it to the extraction cache and closes the run
"""

import asyncio
import inspect
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Union

from jobtracker_ai.cancellation import CancellationToken
from jobtracker_ai.constants import MAX_CONTENT_LENGTH, SLOW_EXTRACTION_WARNING, UNKNOWN_VALUE
from jobtracker_ai.content.extractor import ContentExtractor
from jobtracker_ai.content.heuristics import extract_optional_fields, optimize_content
from jobtracker_ai.exceptions import (
    ExtractionCancelledError,
    ExtractionRateLimitedError,
    InferenceUnavailableError,
    SessionError,
)
from jobtracker_ai.llm.base import BaseInferenceCapability, BaseInferenceSession
from jobtracker_ai.llm.json_utils import clean_job_fields, parse_ai_response
from jobtracker_ai.llm.prompts import build_extraction_prompts
from jobtracker_ai.models import AvailabilityResult, ExtractedJobData, PageContentSnapshot
from jobtracker_ai.storage import KeyValueStorage, MemoryStorage
from .availability import AvailabilityProbe
from .cache import ContentCache, ExtractionCache
from .gate import ExtractionGate
from .identity import SPA_JOB_PATTERNS, PageIdentity, SpaJobPattern, resolve_page_identity
from .session import SessionManager

logger = logging.getLogger(__name__)

PartialCallback = Callable[[str, str], Union[None, Awaitable[None]]]

# Fields each prompt is responsible for
PROMPT_FIELDS = {
    "company_and_position": ("company", "position"),
    "job_description": ("job_description",),
}


@dataclass
class ExtractionMetrics:
    """Run counters for the current engine instance."""
    total_runs: int = 0
    completed: int = 0
    cache_hits: int = 0
    rate_limited: int = 0
    cancelled: int = 0
    unavailable: int = 0
    partial_failures: int = 0
    total_time_seconds: float = 0.0
    last_run: dict = field(default_factory=dict)

    @property
    def average_time(self) -> float:
        return self.total_time_seconds / self.completed if self.completed else 0.0

    def to_dict(self) -> dict:
        return {
            "total_runs": self.total_runs,
            "completed": self.completed,
            "cache_hits": self.cache_hits,
            "rate_limited": self.rate_limited,
            "cancelled": self.cancelled,
            "unavailable": self.unavailable,
            "partial_failures": self.partial_failures,
            "average_time_seconds": self.average_time,
            "last_run": dict(self.last_run),
        }


class ExtractionOrchestrator:
    """
    Движок извлечения данных вакансии с локальной моделью.

    All state (caches, gate, session) belongs to one instance; build a fresh
    instance per page context or per test.

    Usage:
        async with ExtractionOrchestrator(extractor, capability) as engine:
            result = await engine.extract(on_partial=lambda f, v: print(f, v))
    """

    def __init__(
        self,
        content_extractor: ContentExtractor,
        capability: BaseInferenceCapability,
        storage: Optional[KeyValueStorage] = None,
        *,
        sessions: Optional[SessionManager] = None,
        availability: Optional[AvailabilityProbe] = None,
        gate: Optional[ExtractionGate] = None,
        spa_patterns: tuple[SpaJobPattern, ...] = SPA_JOB_PATTERNS,
        max_content_length: int = MAX_CONTENT_LENGTH,
        fill_optional_fields: bool = True,
    ):
        """
        Initialize the engine.

        Args:
            content_extractor: Page collaborator (``current_url`` / ``extract_content``)
            capability: Host inference capability
            storage: Key/value storage for the caches (in-memory by default)
            sessions: Session manager (built from ``capability`` by default)
            availability: Availability probe (built from ``capability`` by default)
            gate: Extraction gate with default limits by default
            spa_patterns: SPA views whose job id is part of the page identity
            max_content_length: Page text limit for prompts
            fill_optional_fields: Fill salary/location/job type from page text
        """
        self.content_extractor = content_extractor
        self.capability = capability
        self.storage = storage if storage is not None else MemoryStorage()
        self.sessions = sessions if sessions is not None else SessionManager(capability)
        if availability is None:
            availability = AvailabilityProbe(capability, acquire=self.sessions.ensure_session)
        self.availability = availability
        self.gate = gate if gate is not None else ExtractionGate()
        self.content_cache = ContentCache(self.storage)
        self.extraction_cache = ExtractionCache(self.storage)
        self.spa_patterns = spa_patterns
        self.max_content_length = max_content_length
        self.fill_optional_fields = fill_optional_fields

        self.metrics = ExtractionMetrics()
        self._active: dict[str, CancellationToken] = {}
        self._current_identity: Optional[PageIdentity] = None

    # ==================== Public API ====================

    async def check_availability(self) -> AvailabilityResult:
        """Проверить, доступна ли локальная модель."""
        return await self.availability.check_availability()

    def current_identity(self) -> PageIdentity:
        return resolve_page_identity(self.content_extractor.current_url(), self.spa_patterns)

    async def extract(
        self,
        *,
        force: bool = False,
        cancel_token: Optional[CancellationToken] = None,
        on_partial: Optional[PartialCallback] = None,
        source: str = "api",
        request_id: Optional[str] = None,
    ) -> ExtractedJobData:
        """
        Extract job data from the current page.

        Args:
            force: Skip the extraction cache and every gate rule
            cancel_token: Token that aborts the run when cancelled
            on_partial: Called with ``(field, value)`` for every known field,
                in whatever order the prompts finish; may be a coroutine function
            source: Caller label for logs
            request_id: Id for ``cancel(request_id)``; generated when omitted

        Returns:
            ExtractedJobData; fields that could not be extracted are ``"unknown"``

        Raises:
            ExtractionCancelledError: The token was cancelled before completion
            ExtractionRateLimitedError: The gate denied the run
            InferenceUnavailableError: No usable inference capability
        """
        token = cancel_token if cancel_token is not None else CancellationToken()
        request_id = request_id or uuid.uuid4().hex[:8]
        token.raise_if_cancelled()

        identity = self.current_identity()
        self._observe_identity(identity)
        self.metrics.total_runs += 1

        if not force:
            cached = await self.extraction_cache.get(identity)
            if cached is not None:
                self.metrics.cache_hits += 1
                logger.debug(f"[{request_id}] Serving cached extraction for {identity}")
                for name, value in cached.known_fields().items():
                    await self._emit(on_partial, name, value)
                return cached

        reason = self.gate.check(identity.key, force=force)
        if reason:
            self.metrics.rate_limited += 1
            logger.info(f"[{request_id}] Extraction denied for {identity}: {reason}")
            raise ExtractionRateLimitedError(identity.key, reason)

        run_id = self.gate.mark_started(identity.key)
        self._active[request_id] = token
        cancelled = False
        logger.debug(f"[{request_id}] Extraction started for {identity} (source={source}, force={force})")
        try:
            return await self._run(identity, token, on_partial, source, request_id)
        except (ExtractionCancelledError, asyncio.CancelledError):
            cancelled = True
            self.metrics.cancelled += 1
            logger.info(f"[{request_id}] Extraction cancelled for {identity}")
            raise
        except InferenceUnavailableError:
            self.metrics.unavailable += 1
            raise
        finally:
            self._active.pop(request_id, None)
            if cancelled:
                self.gate.mark_cancelled(run_id)
            else:
                self.gate.mark_completed(run_id)

    def cancel(self, request_id: Optional[str] = None) -> bool:
        """
        Cancel running extractions.

        Args:
            request_id: Cancel only this run; None cancels all of them

        Returns:
            True if at least one run was signalled
        """
        if request_id is not None:
            token = self._active.get(request_id)
            if token is None:
                return False
            token.cancel(f"request {request_id} cancelled")
            return True

        for token in list(self._active.values()):
            token.cancel("all requests cancelled")
        return bool(self._active)

    async def clear_caches_for_navigation(self) -> None:
        """Forget everything tied to the previous page."""
        self.cancel()
        await self.content_cache.clear()
        await self.extraction_cache.clear()
        self.availability.clear()
        self.gate.reset()
        self._current_identity = None
        logger.debug("All caches cleared for new page")

    async def prewarm_session(self) -> bool:
        """Create the session before the first extraction. Never raises."""
        availability = await self.check_availability()
        if not availability.available:
            logger.debug(f"Skipping pre-warm, model {availability.status.value}")
            return False
        return await self.sessions.prewarm()

    async def get_performance_metrics(self) -> dict:
        """Снимок метрик движка для отладки."""
        identity = self.current_identity()
        snapshot = await self.content_cache.get(identity)
        cached_status = self.availability.cached
        return {
            "is_initialized": self.sessions.is_healthy,
            "has_cached_content": snapshot is not None,
            "cache_age_seconds": time.time() - snapshot.captured_at if snapshot else None,
            "availability": cached_status.status.value if cached_status else None,
            "active_requests": sorted(self._active),
            "session": self.sessions.get_stats(),
            "gate": self.gate.get_stats(),
            "content_cache": self.content_cache.get_session_stats(),
            "extraction_cache": self.extraction_cache.get_session_stats(),
            "runs": self.metrics.to_dict(),
        }

    async def close(self) -> None:
        """Cancel running work and release the session and clients."""
        self.cancel()
        await self.availability.close()
        await self.sessions.close()
        await self.capability.close()
        await self.storage.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # ==================== Internals ====================

    def _observe_identity(self, identity: PageIdentity) -> None:
        """Reset the gate when the page identity changes (SPA navigation included)."""
        if self._current_identity is not None and identity != self._current_identity:
            logger.debug(f"Page identity changed: {self._current_identity} -> {identity}")
            self.gate.reset()
        self._current_identity = identity

    async def _emit(self, on_partial: Optional[PartialCallback], name: str, value: str) -> None:
        if on_partial is None:
            return
        try:
            outcome = on_partial(name, value)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning(f"Partial result callback failed for '{name}': {e}")

    async def _get_snapshot(
        self, identity: PageIdentity, token: CancellationToken
    ) -> PageContentSnapshot:
        snapshot = await self.content_cache.get(identity)
        if snapshot is not None:
            return snapshot

        try:
            content = self.content_extractor.extract_content()
            if inspect.isawaitable(content):
                content = await token.guard(content)
        except ExtractionCancelledError:
            raise
        except Exception as e:
            logger.warning(f"Content extraction failed for {identity}: {e}")
            return PageContentSnapshot(url=identity.url)

        snapshot = PageContentSnapshot.from_content(content)
        await self.content_cache.set(identity, snapshot)
        logger.debug(f"Page content captured: {snapshot.length} chars")
        return snapshot

    async def _obtain_session(self, token: CancellationToken) -> BaseInferenceSession:
        if not self.sessions.is_healthy:
            availability = await token.guard(self.availability.check_availability())
            if not availability.available:
                raise InferenceUnavailableError(
                    f"On-device model is {availability.status.value}"
                )
        try:
            return await token.guard(self.sessions.ensure_session())
        except SessionError as e:
            raise InferenceUnavailableError(str(e)) from e

    async def _extract_field_group(
        self,
        group: str,
        prompt: str,
        session: BaseInferenceSession,
        token: CancellationToken,
        on_partial: Optional[PartialCallback],
        request_id: str,
        timings: dict[str, float],
    ) -> Optional[dict[str, str]]:
        """Run one prompt; None means the prompt itself failed."""
        start_time = time.perf_counter()
        try:
            raw = await session.prompt(prompt, cancel_token=token)
        except ExtractionCancelledError:
            raise
        except Exception as e:
            logger.warning(f"[{request_id}] Prompt '{group}' failed: {e}")
            self.metrics.partial_failures += 1
            return None
        finally:
            timings[group] = time.perf_counter() - start_time

        token.raise_if_cancelled()
        parsed = clean_job_fields(parse_ai_response(raw))
        fields = {name: parsed.get(name, UNKNOWN_VALUE) for name in PROMPT_FIELDS[group]}
        for name, value in fields.items():
            if value != UNKNOWN_VALUE:
                await self._emit(on_partial, name, value)
        return fields

    async def _run_prompts(
        self,
        session: BaseInferenceSession,
        prompts: dict[str, str],
        token: CancellationToken,
        on_partial: Optional[PartialCallback],
        request_id: str,
        timings: dict[str, float],
    ) -> list[Optional[dict[str, str]]]:
        tasks = [
            asyncio.create_task(
                self._extract_field_group(
                    group, prompt, session, token, on_partial, request_id, timings
                )
            )
            for group, prompt in prompts.items()
        ]
        try:
            return await asyncio.gather(*tasks)
        except BaseException:
            # Cancellation of one prompt cancels its sibling
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _run(
        self,
        identity: PageIdentity,
        token: CancellationToken,
        on_partial: Optional[PartialCallback],
        source: str,
        request_id: str,
    ) -> ExtractedJobData:
        start_time = time.perf_counter()

        snapshot = await self._get_snapshot(identity, token)
        token.raise_if_cancelled()
        session = await self._obtain_session(token)

        optimized = optimize_content(snapshot.raw_text, self.max_content_length)
        prompts = build_extraction_prompts(snapshot.title, snapshot.url or identity.url, optimized)

        timings: dict[str, float] = {}
        results = await self._run_prompts(session, prompts, token, on_partial, request_id, timings)
        token.raise_if_cancelled()
        self.sessions.record_activity()

        data: dict[str, Any] = {}
        for fields in results:
            data.update(fields or {})
        if self.fill_optional_fields:
            for name, value in extract_optional_fields(snapshot.raw_text).items():
                data.setdefault(name, value)
        result = ExtractedJobData(**data)

        if all(fields is None for fields in results):
            # Every prompt failed: the session is suspect and the result is not worth caching
            logger.warning(f"[{request_id}] All prompts failed, dropping the session")
            await self.sessions.invalidate()
        elif identity == self._current_identity:
            await self.extraction_cache.set(identity, result)

        elapsed = time.perf_counter() - start_time
        self.metrics.completed += 1
        self.metrics.total_time_seconds += elapsed
        self.metrics.last_run = {
            "request_id": request_id,
            "identity": identity.key,
            "source": source,
            "duration_seconds": elapsed,
            "prompt_seconds": dict(timings),
            "content_length": snapshot.length,
            "optimized_length": len(optimized),
            "known_fields": sorted(result.known_fields()),
        }
        if elapsed > SLOW_EXTRACTION_WARNING:
            logger.warning(f"[{request_id}] Slow extraction: {elapsed:.1f}s for {identity}")
        else:
            logger.debug(f"[{request_id}] Extraction finished in {elapsed:.2f}s")
        return result
