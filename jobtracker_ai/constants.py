"""Global constants for the extraction engine.

Centralizes magic numbers and fixed values.
"""

# =============================================================================
# Extraction results
# =============================================================================

UNKNOWN_VALUE = "unknown"  # Sentinel for "not found" fields
CORE_FIELDS = ("company", "position", "job_description")


# =============================================================================
# Storage slots
# =============================================================================

PAGE_CONTENT_STORAGE_KEY = "job_tracker_page_content"
EXTRACTED_DATA_STORAGE_KEY = "job_tracker_extracted_data"


# =============================================================================
# Session (seconds)
# =============================================================================

HEALTH_CHECK_PROMPT = "test"
HEALTH_CHECK_MAX_TOKENS = 1  # Reply length cap for the probe
HEALTH_CHECK_TIMEOUT = 1.0  # Probe before an extraction
HEARTBEAT_INTERVAL = 2 * 60  # Background probe period
HEARTBEAT_TIMEOUT = 2.0  # Background probe timeout
SESSION_IDLE_TIMEOUT = 5 * 60  # Evict after this much inactivity


# =============================================================================
# Availability (seconds)
# =============================================================================

AVAILABILITY_CACHE_TTL = 30.0
DOWNLOAD_RECHECK_DELAY = 2.0


# =============================================================================
# Extraction gate (seconds)
# =============================================================================

EXTRACTION_COOLDOWN = 10.0  # Same page cannot be re-extracted sooner
MAX_EXTRACTIONS_PER_WINDOW = 5
EXTRACTION_WINDOW = 60.0
STUCK_RESET_TIMEOUT = 60.0  # Safety reset for a gate left closed


# =============================================================================
# Content
# =============================================================================

MAX_CONTENT_LENGTH = 10_000  # Characters sent to the model
MIN_MAIN_CONTENT_LENGTH = 100  # Shorter main-content matches fall back to <body>
SLOW_EXTRACTION_WARNING = 30.0  # Log a warning for runs slower than this (seconds)
