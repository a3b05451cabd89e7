"""Logical page identity.

On SPA job boards the browser URL path stays the same while the user clicks
through jobs; the job being shown lives in a query parameter. The identity of
a page is its normalized URL plus that job id, so two jobs in one SPA shell
never share cache entries.
"""

import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qs, urlsplit, urlunsplit


@dataclass(frozen=True)
class SpaJobPattern:
    """Known SPA view: host and path patterns plus the job id parameter."""
    name: str
    host: re.Pattern
    path: re.Pattern
    param: str


SPA_JOB_PATTERNS: tuple[SpaJobPattern, ...] = (
    SpaJobPattern(
        "linkedin_collections",
        re.compile(r'(^|\.)linkedin\.com$'),
        re.compile(r'^/jobs/collections(/|$)'),
        "currentJobId",
    ),
    SpaJobPattern(
        "linkedin_search",
        re.compile(r'(^|\.)linkedin\.com$'),
        re.compile(r'^/jobs/search'),
        "currentJobId",
    ),
    SpaJobPattern(
        "indeed",
        re.compile(r'(^|\.)indeed\.[a-z.]+$'),
        re.compile(r'^/viewjob'),
        "jk",
    ),
    SpaJobPattern(
        "glassdoor",
        re.compile(r'(^|\.)glassdoor\.[a-z.]+$'),
        re.compile(r'^/job-listing'),
        "jl",
    ),
)


@dataclass(frozen=True)
class PageIdentity:
    """Normalized URL plus an optional SPA job id."""
    url: str
    job_id: Optional[str] = None

    @property
    def key(self) -> str:
        if self.job_id:
            return f"{self.url}#job_{self.job_id}"
        return self.url

    def __str__(self) -> str:
        return self.key


def normalize_url(url: str) -> str:
    """Lower-case scheme and host, drop the fragment; path and query are kept."""
    parts = urlsplit(url.strip())
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path, parts.query, ""))


def extract_job_id(
    url: str,
    patterns: tuple[SpaJobPattern, ...] = SPA_JOB_PATTERNS,
) -> Optional[str]:
    """
    Find the SPA job id in a URL.

    Args:
        url: Page URL
        patterns: Known SPA views

    Returns:
        Value of the first matching view's id parameter, or None
    """
    parts = urlsplit(url.strip())
    host = (parts.hostname or "").lower()
    query = parse_qs(parts.query)
    for pattern in patterns:
        if pattern.host.search(host) and pattern.path.search(parts.path):
            values = query.get(pattern.param)
            if values and values[0]:
                return values[0]
    return None


def resolve_page_identity(
    url: str,
    patterns: tuple[SpaJobPattern, ...] = SPA_JOB_PATTERNS,
) -> PageIdentity:
    """Build the identity of the page at ``url``. Pure function of its arguments."""
    return PageIdentity(url=normalize_url(url), job_id=extract_job_id(url, patterns))
