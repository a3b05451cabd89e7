"""Модуль для работы с локальными моделями."""

from .base import BaseInferenceCapability, BaseInferenceSession, LLMUsageStats
from .ollama import OllamaCapability, OllamaSession
from .json_utils import parse_ai_response, clean_job_fields

from jobtracker_ai.config import settings


def get_inference_capability(provider: str = "ollama", **kwargs) -> BaseInferenceCapability:
    """
    Фабрика для получения локальной модели.

    Args:
        provider: Название провайдера (ollama)
        **kwargs: Дополнительные параметры для провайдера

    Returns:
        Экземпляр host inference capability
    """
    match provider.lower():
        case "ollama":
            kwargs.setdefault("model", settings.llm_model)
            kwargs.setdefault("base_url", settings.ollama_url)
            kwargs.setdefault("timeout", settings.llm_timeout)
            kwargs.setdefault("temperature", settings.llm_temperature)
            return OllamaCapability(**kwargs)
        case _:
            raise ValueError(f"Unknown LLM provider: {provider}")


__all__ = [
    "BaseInferenceCapability",
    "BaseInferenceSession",
    "LLMUsageStats",
    "OllamaCapability",
    "OllamaSession",
    "get_inference_capability",
    "parse_ai_response",
    "clean_job_fields",
]
