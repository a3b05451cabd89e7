"""Конфигурация приложения."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Настройки приложения."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # LLM настройки
    llm_provider: str = Field(default="ollama", description="Провайдер локальной модели")
    llm_model: str = Field(default="llama3.2:3b", description="Модель LLM")
    ollama_url: str = Field(
        default="http://localhost:11434", description="URL Ollama сервера"
    )
    llm_timeout: float = Field(default=300.0, description="Таймаут запросов к модели (сек)")
    llm_temperature: float = Field(default=0.0, description="Температура генерации")

    # Доступность модели
    availability_cache_ttl: float = Field(
        default=30.0, description="Время жизни кэша статуса доступности (сек)"
    )
    download_recheck_delay: float = Field(
        default=2.0, description="Пауза перед повторной проверкой при загрузке модели (сек)"
    )

    # Сессия
    health_check_timeout: float = Field(
        default=1.0, description="Таймаут проверочного запроса перед извлечением (сек)"
    )
    heartbeat_interval: float = Field(
        default=120.0, description="Период фоновой проверки сессии (сек)"
    )
    heartbeat_timeout: float = Field(
        default=2.0, description="Таймаут проверочного запроса в фоне (сек)"
    )
    session_idle_timeout: float = Field(
        default=300.0, description="Простой, после которого сессия освобождается (сек)"
    )

    # Ограничение частоты извлечений
    extraction_cooldown: float = Field(
        default=10.0, description="Пауза между извлечениями одной страницы (сек)"
    )
    max_extractions_per_window: int = Field(
        default=5, description="Максимум извлечений в скользящем окне"
    )
    extraction_window: float = Field(
        default=60.0, description="Длина скользящего окна (сек)"
    )
    stuck_reset_timeout: float = Field(
        default=60.0, description="Через сколько сбросить зависшее состояние извлечения (сек)"
    )

    # Контент
    max_content_length: int = Field(
        default=10_000, description="Максимальная длина текста страницы для модели"
    )

    # Хранилище
    storage_backend: str = Field(default="memory", description="Хранилище кэша (memory/sqlite)")
    storage_scope: str = Field(default="default", description="Область хранения (сессия браузера)")

    log_level: str = Field(default="WARNING", description="Уровень логирования CLI")


settings = Settings()
