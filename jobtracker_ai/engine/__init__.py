"""Движок извлечения: кэши, сессия, ограничение частоты, оркестратор."""

from typing import Optional

from jobtracker_ai.config import Settings, settings as default_settings
from jobtracker_ai.content.extractor import ContentExtractor
from jobtracker_ai.llm import BaseInferenceCapability, get_inference_capability
from jobtracker_ai.storage import KeyValueStorage, get_storage

from .availability import AvailabilityProbe, AvailabilityCache
from .cache import ContentCache, ExtractionCache
from .gate import ExtractionGate, ExtractionState
from .identity import PageIdentity, resolve_page_identity, SPA_JOB_PATTERNS
from .orchestrator import ExtractionOrchestrator, ExtractionMetrics
from .session import SessionManager, SessionState


def create_orchestrator(
    content_extractor: ContentExtractor,
    settings: Optional[Settings] = None,
    capability: Optional[BaseInferenceCapability] = None,
    storage: Optional[KeyValueStorage] = None,
) -> ExtractionOrchestrator:
    """
    Собрать оркестратор по настройкам.

    Args:
        content_extractor: Page collaborator
        settings: Settings to use (module settings by default)
        capability: Inference capability (built from settings by default)
        storage: Cache storage (built from settings by default)

    Returns:
        Configured ExtractionOrchestrator
    """
    settings = settings if settings is not None else default_settings
    if capability is None:
        capability = get_inference_capability(settings.llm_provider)
    if storage is None:
        kwargs = {"scope": settings.storage_scope} if settings.storage_backend == "sqlite" else {}
        storage = get_storage(settings.storage_backend, **kwargs)

    sessions = SessionManager(
        capability,
        health_check_timeout=settings.health_check_timeout,
        heartbeat_interval=settings.heartbeat_interval,
        heartbeat_timeout=settings.heartbeat_timeout,
        idle_timeout=settings.session_idle_timeout,
    )
    availability = AvailabilityProbe(
        capability,
        acquire=sessions.ensure_session,
        cache_ttl=settings.availability_cache_ttl,
        recheck_delay=settings.download_recheck_delay,
    )
    gate = ExtractionGate(
        cooldown=settings.extraction_cooldown,
        max_extractions=settings.max_extractions_per_window,
        window=settings.extraction_window,
        stuck_reset_timeout=settings.stuck_reset_timeout,
    )
    return ExtractionOrchestrator(
        content_extractor,
        capability,
        storage,
        sessions=sessions,
        availability=availability,
        gate=gate,
        max_content_length=settings.max_content_length,
    )


__all__ = [
    "AvailabilityProbe",
    "AvailabilityCache",
    "ContentCache",
    "ExtractionCache",
    "ExtractionGate",
    "ExtractionState",
    "ExtractionMetrics",
    "ExtractionOrchestrator",
    "PageIdentity",
    "SPA_JOB_PATTERNS",
    "SessionManager",
    "SessionState",
    "create_orchestrator",
    "resolve_page_identity",
]
