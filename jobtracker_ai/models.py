"""Модели данных движка извлечения вакансий."""

import time
from enum import Enum
from typing import Any, Optional, TypedDict

from pydantic import BaseModel, Field, computed_field

from jobtracker_ai.constants import CORE_FIELDS, UNKNOWN_VALUE


class AvailabilityStatus(str, Enum):
    """Readiness of the on-device inference capability."""

    UNAVAILABLE = "unavailable"
    DOWNLOADABLE = "downloadable"
    DOWNLOADING = "downloading"
    AVAILABLE = "available"


class AvailabilityResult(BaseModel):
    """Result of an availability check."""

    available: bool
    status: AvailabilityStatus

    model_config = {
        "frozen": True,
    }


class PageContentDict(TypedDict):
    """Raw page content as returned by a content extractor."""
    title: str
    text: str
    url: str


class PageContentSnapshot(BaseModel):
    """Снимок контента страницы, снятый один раз для страницы."""

    title: str = ""
    raw_text: str = ""
    url: str = ""
    captured_at: float = Field(default_factory=time.time)

    model_config = {
        "frozen": True,
    }

    @computed_field
    @property
    def length(self) -> int:
        return len(self.raw_text)

    @classmethod
    def from_content(cls, content: PageContentDict) -> "PageContentSnapshot":
        """Build a snapshot from extractor output."""
        return cls(
            title=content.get("title") or "",
            raw_text=content.get("text") or "",
            url=content.get("url") or "",
        )


class ExtractedJobData(BaseModel):
    """Structured job posting data.

    String fields default to ``"unknown"`` so consumers can tell
    "not found" apart from "not computed yet".
    """

    company: str = UNKNOWN_VALUE
    position: str = UNKNOWN_VALUE
    job_description: str = UNKNOWN_VALUE
    salary: Optional[str] = None
    location: Optional[str] = None
    job_type: Optional[str] = None
    requirements: Optional[list[str]] = None
    benefits: Optional[list[str]] = None

    model_config = {
        "frozen": True,
    }

    def known_fields(self) -> dict[str, str]:
        """Core fields whose value is not the sentinel."""
        return {
            name: getattr(self, name)
            for name in CORE_FIELDS
            if getattr(self, name) != UNKNOWN_VALUE
        }

    @property
    def is_empty(self) -> bool:
        return not self.known_fields()

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dict without unset optional fields."""
        return self.model_dump(exclude_none=True)
