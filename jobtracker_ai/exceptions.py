"""Исключения движка извлечения."""


class ExtractionError(Exception):
    """Base class for errors surfaced by the extraction engine."""
    pass


class InferenceUnavailableError(ExtractionError):
    """Raised when no usable inference capability can be obtained."""
    pass


class ExtractionRateLimitedError(ExtractionError):
    """Raised when the extraction gate denies a run."""

    def __init__(self, page_key: str, reason: str = "rate limited"):
        self.page_key = page_key
        self.reason = reason
        super().__init__(f"Extraction denied for {page_key}: {reason}")


class ExtractionCancelledError(ExtractionError):
    """Raised when an extraction is cancelled by its caller."""
    pass


class SessionError(Exception):
    """Raised when an inference session cannot be created or used."""
    pass


class PageFetchError(Exception):
    """Raised when a page cannot be downloaded."""
    pass
