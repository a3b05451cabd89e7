"""Получение и подготовка текста страницы."""

from .extractor import ContentExtractor, HtmlContentExtractor, StaticContentExtractor
from .fetcher import PageFetcher
from .heuristics import extract_optional_fields, is_job_posting_page, optimize_content

__all__ = [
    "ContentExtractor",
    "HtmlContentExtractor",
    "StaticContentExtractor",
    "PageFetcher",
    "extract_optional_fields",
    "is_job_posting_page",
    "optimize_content",
]
