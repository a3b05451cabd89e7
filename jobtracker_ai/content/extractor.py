"""Content extractors: the page side of an extraction.

The engine never touches HTML itself. It asks a content extractor for the
current URL and for ``{title, text, url}`` of the page.
"""

import logging
import re
from typing import Awaitable, Protocol, Union, runtime_checkable

from bs4 import BeautifulSoup
from markdownify import markdownify as md

from jobtracker_ai.constants import MIN_MAIN_CONTENT_LENGTH
from jobtracker_ai.models import PageContentDict

logger = logging.getLogger(__name__)

# Common job board containers, tried in order
CONTENT_SELECTORS = [
    'main',
    '[role="main"]',
    '.job-description',
    '.job-details',
    '.posting-details',
    '.job-content',
    '.description',
    '.content',
    'article',
    '#job-description',
    '#description',
    '.job-post',
    '.listing-details',
]

# Removed from <body> before it is used as a fallback
UNWANTED_SELECTORS = [
    'script',
    'style',
    'noscript',
    'svg',
    'nav',
    'header',
    'footer',
    'aside',
    '.advertisement',
    '.ads',
    '#ads',
    '[class*="ad-"]',
    '[id*="ad-"]',
    '.cookie-banner',
    '[id*="cookie"]',
    '[class*="consent"]',
    '.newsletter',
    '.social-share',
    '.sidebar',
    '.comments',
    '.related-posts',
    '.footer',
    '.header',
]

DEFAULT_TITLE = "Untitled Page"


@runtime_checkable
class ContentExtractor(Protocol):
    """Page collaborator used by the orchestrator."""

    def current_url(self) -> str:
        """URL of the page currently shown."""
        ...

    def extract_content(self) -> Union[PageContentDict, Awaitable[PageContentDict]]:
        """Title, visible text and URL of the page (sync or awaitable)."""
        ...


class StaticContentExtractor:
    """Extractor over text that is already known (tests, piped input)."""

    def __init__(self, url: str, text: str, title: str = ""):
        self.url = url
        self.text = text
        self.title = title

    def current_url(self) -> str:
        return self.url

    def extract_content(self) -> PageContentDict:
        return {"title": self.title, "text": self.text, "url": self.url}


def normalize_text(text: str) -> str:
    """Collapse runs of spaces inside lines and drop blank lines."""
    lines = (re.sub(r'[ \t\r\f\v\xa0]+', ' ', line).strip() for line in text.splitlines())
    return "\n".join(line for line in lines if line)


class HtmlContentExtractor:
    """
    Извлечение текста вакансии из HTML.

    Main content containers are tried first; a match shorter than
    ``MIN_MAIN_CONTENT_LENGTH`` characters falls back to ``<body>`` with
    navigation, ads and cookie banners removed.

    Usage:
        extractor = HtmlContentExtractor(html, url)
        content = extractor.extract_content()
    """

    def __init__(self, html: str, url: str, as_markdown: bool = False):
        """
        Args:
            html: Page HTML
            url: Page URL (may include SPA query parameters)
            as_markdown: Return markdown instead of plain text
        """
        self.html = html
        self.url = url
        self.as_markdown = as_markdown

    def current_url(self) -> str:
        return self.url

    def navigate(self, url: str, html: str) -> None:
        """Swap in a new page, as an SPA does without a reload."""
        self.url = url
        self.html = html

    def _element_text(self, element) -> str:
        if self.as_markdown:
            return normalize_text(md(str(element), heading_style="ATX"))
        return normalize_text(element.get_text("\n"))

    def extract_content(self) -> PageContentDict:
        soup = BeautifulSoup(self.html, 'lxml')
        title = soup.title.get_text(strip=True) if soup.title else ""

        for tag in soup.find_all(['script', 'style', 'noscript', 'svg']):
            tag.decompose()

        text = ""
        for selector in CONTENT_SELECTORS:
            element = soup.select_one(selector)
            if element is None:
                continue
            text = self._element_text(element)
            if len(text) > MIN_MAIN_CONTENT_LENGTH:
                logger.debug(f"Content taken from '{selector}' ({len(text)} chars)")
                break

        if len(text) <= MIN_MAIN_CONTENT_LENGTH:
            body = soup.body or soup
            for selector in UNWANTED_SELECTORS:
                for element in body.select(selector):
                    element.decompose()
            text = self._element_text(body)
            logger.debug(f"Content taken from <body> ({len(text)} chars)")

        return {"title": title or DEFAULT_TITLE, "text": text, "url": self.url}
