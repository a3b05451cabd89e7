"""Page-scoped caches for page content and extraction results.

Each cache owns one storage slot holding ``{"identity": ..., "value": ...}``.
Only the current page is cached: reading the slot for another page discards
it and reports a miss.

Usage:
    cache = ExtractionCache(storage)
    result = await cache.get(identity)
    if result is None:
        result = await run_extraction()
        await cache.set(identity, result)
"""

import logging
from typing import Generic, Optional, TypeVar, Union

from pydantic import BaseModel, ValidationError

from jobtracker_ai.constants import EXTRACTED_DATA_STORAGE_KEY, PAGE_CONTENT_STORAGE_KEY
from jobtracker_ai.models import ExtractedJobData, PageContentSnapshot
from jobtracker_ai.storage import KeyValueStorage
from .identity import PageIdentity

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def _identity_key(identity: Union[PageIdentity, str]) -> str:
    return identity.key if isinstance(identity, PageIdentity) else identity


class PageScopedCache(Generic[M]):
    """Single-slot cache keyed by page identity, with lazy staleness."""

    storage_key: str = ""
    model: type[BaseModel] = BaseModel
    name: str = "cache"

    def __init__(self, storage: KeyValueStorage):
        self._storage = storage

        # Runtime statistics (session-based)
        self._session_hits = 0
        self._session_misses = 0
        self._session_stale = 0

    async def _read_slot(self) -> Optional[dict]:
        try:
            return await self._storage.get(self.storage_key)
        except Exception as e:
            logger.warning(f"{self.name} get error: {e}")
            return None

    async def _remove_slot(self) -> None:
        try:
            await self._storage.remove(self.storage_key)
        except Exception as e:
            logger.warning(f"{self.name} remove error: {e}")

    async def get(self, identity: Union[PageIdentity, str]) -> Optional[M]:
        """
        Get the cached value for a page.

        Args:
            identity: Page identity (or its key)

        Returns:
            Cached value, or None on miss, staleness or storage error
        """
        key = _identity_key(identity)
        entry = await self._read_slot()

        if not entry:
            self._session_misses += 1
            logger.debug(f"{self.name} MISS: {key}")
            return None

        if entry.get("identity") != key:
            self._session_misses += 1
            self._session_stale += 1
            logger.debug(f"{self.name} STALE: cached {entry.get('identity')}, requested {key}")
            await self._remove_slot()
            return None

        try:
            value = self.model.model_validate(entry.get("value") or {})
        except ValidationError as e:
            logger.warning(f"{self.name} entry is corrupt, dropping: {e}")
            self._session_misses += 1
            await self._remove_slot()
            return None

        self._session_hits += 1
        logger.debug(f"{self.name} HIT: {key}")
        return value

    async def set(self, identity: Union[PageIdentity, str], value: M) -> None:
        """Store ``value`` for a page, replacing whatever the slot held."""
        key = _identity_key(identity)
        try:
            await self._storage.set(
                self.storage_key,
                {"identity": key, "value": value.model_dump(mode="json")},
            )
            logger.debug(f"{self.name} SET: {key}")
        except Exception as e:
            logger.warning(f"{self.name} set error: {e}")

    async def clear(self, identity: Union[PageIdentity, str, None] = None) -> None:
        """
        Drop cached data.

        Args:
            identity: Only drop the slot if it belongs to this page;
                None drops it unconditionally
        """
        if identity is not None:
            entry = await self._read_slot()
            if not entry or entry.get("identity") != _identity_key(identity):
                return
        await self._remove_slot()

    def get_session_stats(self) -> dict:
        """Get cache statistics for current session.

        Returns:
            Dict with hits, misses, stale, hit_rate
        """
        total = self._session_hits + self._session_misses
        return {
            "hits": self._session_hits,
            "misses": self._session_misses,
            "stale": self._session_stale,
            "hit_rate": self._session_hits / total if total > 0 else 0.0,
        }


class ContentCache(PageScopedCache[PageContentSnapshot]):
    """Снимок контента текущей страницы."""

    storage_key = PAGE_CONTENT_STORAGE_KEY
    model = PageContentSnapshot
    name = "Content cache"


class ExtractionCache(PageScopedCache[ExtractedJobData]):
    """Результат извлечения для текущей страницы."""

    storage_key = EXTRACTED_DATA_STORAGE_KEY
    model = ExtractedJobData
    name = "Extraction cache"
