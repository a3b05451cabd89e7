"""Хранилища ключ/значение для кэшей движка."""

from .base import KeyValueStorage, MemoryStorage
from .sqlite import SqliteStorage, get_db_path


def get_storage(backend: str = "memory", **kwargs) -> KeyValueStorage:
    """
    Фабрика для получения хранилища.

    Args:
        backend: Название хранилища (memory, sqlite)
        **kwargs: Дополнительные параметры для хранилища

    Returns:
        Экземпляр хранилища
    """
    match backend.lower():
        case "memory":
            return MemoryStorage()
        case "sqlite":
            return SqliteStorage(**kwargs)
        case _:
            raise ValueError(f"Unknown storage backend: {backend}")


__all__ = [
    "KeyValueStorage",
    "MemoryStorage",
    "SqliteStorage",
    "get_db_path",
    "get_storage",
]
