"""Async page fetcher for running extractions from the command line."""

import logging
from typing import Optional

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from jobtracker_ai.exceptions import PageFetchError

logger = logging.getLogger(__name__)


DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


class PageFetcher:
    """HTTP page fetcher with retry on transient network errors."""

    def __init__(
        self,
        timeout: float = 30.0,
        headers: Optional[dict] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            timeout: Request timeout in seconds
            headers: Extra HTTP headers
            client: Ready HTTP client (for tests)
        """
        if client is None:
            client = httpx.AsyncClient(
                headers={**DEFAULT_HEADERS, **(headers or {})},
                follow_redirects=True,
                timeout=timeout,
            )
        self.client = client

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type((httpx.RequestError, httpx.TimeoutException)),
        reraise=True,
    )
    async def _fetch_with_retry(self, url: str) -> httpx.Response:
        """Fetch with retry logic."""
        response = await self.client.get(url)
        response.raise_for_status()
        return response

    async def fetch(self, url: str) -> tuple[str, str]:
        """
        Загрузить страницу.

        Args:
            url: URL to fetch

        Returns:
            Tuple (HTML, final_url) - final_url differs after redirects

        Raises:
            PageFetchError: On HTTP status errors or after retries are exhausted
        """
        try:
            response = await self._fetch_with_retry(url)
        except httpx.HTTPStatusError as e:
            raise PageFetchError(f"HTTP {e.response.status_code} for {url}") from e
        except httpx.RequestError as e:
            raise PageFetchError(f"Request failed for {url}: {e}") from e

        final_url = str(response.url)
        if final_url != url:
            logger.debug(f"Redirected: {url} -> {final_url}")
        return response.text, final_url

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
