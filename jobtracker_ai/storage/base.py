"""Host key/value storage interface."""

import copy
from abc import ABC, abstractmethod
from typing import Any, Optional


class KeyValueStorage(ABC):
    """Asynchronous key/value storage scoped to one browsing session.

    Values are JSON-compatible objects.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the stored value or None."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        pass

    @abstractmethod
    async def remove(self, key: str) -> None:
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Remove every key of the current scope."""
        pass

    async def close(self) -> None:
        pass


class MemoryStorage(KeyValueStorage):
    """In-process storage; values are deep-copied in and out."""

    def __init__(self):
        self._data: dict[str, Any] = {}

    async def get(self, key: str) -> Optional[Any]:
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    async def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)
