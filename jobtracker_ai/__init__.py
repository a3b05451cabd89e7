"""On-device job posting extraction engine."""

from jobtracker_ai.cancellation import CancellationToken
from jobtracker_ai.engine import ExtractionOrchestrator, create_orchestrator
from jobtracker_ai.exceptions import (
    ExtractionCancelledError,
    ExtractionError,
    ExtractionRateLimitedError,
    InferenceUnavailableError,
)
from jobtracker_ai.models import AvailabilityResult, AvailabilityStatus, ExtractedJobData

__version__ = "0.1.0"

__all__ = [
    "AvailabilityResult",
    "AvailabilityStatus",
    "CancellationToken",
    "ExtractedJobData",
    "ExtractionCancelledError",
    "ExtractionError",
    "ExtractionOrchestrator",
    "ExtractionRateLimitedError",
    "InferenceUnavailableError",
    "create_orchestrator",
]
