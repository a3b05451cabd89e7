"""Pattern heuristics over page text.

Used to shrink page text before it is sent to the model and to fill the
optional fields of an extraction (salary, location, job type, bullet lists)
that the model prompts do not ask for.
"""

import logging
import re
from typing import Optional

from jobtracker_ai.constants import MAX_CONTENT_LENGTH

logger = logging.getLogger(__name__)

# Section headings that usually start the useful part of a posting
JOB_SECTION_KEYWORDS = [
    "job description",
    "responsibilities",
    "requirements",
    "qualifications",
    "benefits",
    "about the role",
]
MIN_SECTION_LENGTH = 50

_KEYWORD_ALTERNATION = "|".join(re.escape(k) for k in JOB_SECTION_KEYWORDS)
SECTION_PATTERNS = [
    re.compile(
        rf'{re.escape(keyword)}[:\s]*([\s\S]*?)(?=\n\s*(?:{_KEYWORD_ALTERNATION})|$)',
        re.IGNORECASE,
    )
    for keyword in JOB_SECTION_KEYWORDS
]

SALARY_PATTERNS = [
    re.compile(r'\$[\d,]+\s*-\s*\$[\d,]+'),  # $50,000 - $70,000
    re.compile(r'\$[\d,]+k?\s*-\s*[\d,]+k?'),  # $50k - 70k
    re.compile(r'[\d,]+\s*-\s*[\d,]+k?\s*per\s+year', re.IGNORECASE),  # 50,000 - 70,000 per year
]

LOCATION_PATTERNS = [
    re.compile(r'\blocation\b[:\s]+([\w ,]+)', re.IGNORECASE),
    re.compile(r'\b(remote|hybrid|on-site)\b', re.IGNORECASE),
    re.compile(r'\b([A-Z][a-z]+,\s*[A-Z]{2})\b'),  # City, ST
]
MAX_LOCATION_LENGTH = 60

JOB_TYPES = ["full-time", "part-time", "contract", "temporary", "internship", "freelance"]

BULLET_PATTERN = re.compile(r'^\s*(?:[-*•·▪◦]|\d+[.)])\s+(.+?)\s*$')
REQUIREMENT_HEADINGS = ("requirements", "qualifications", "what you bring", "skills")
BENEFIT_HEADINGS = ("benefits", "perks", "what we offer")
MAX_LIST_ITEMS = 20


def optimize_content(content: str, max_length: int = MAX_CONTENT_LENGTH) -> str:
    """
    Сократить текст страницы до лимита модели.

    Short text is returned unchanged. Otherwise job sections (responsibilities,
    requirements, ...) are collected; if they fit the limit they replace the
    text, else the text is truncated.

    Args:
        content: Page text
        max_length: Character limit

    Returns:
        Text of at most ``max_length`` characters
    """
    if len(content) <= max_length:
        return content

    sections = []
    for pattern in SECTION_PATTERNS:
        for match in pattern.finditer(content):
            section = match.group(1).strip()
            if len(section) > MIN_SECTION_LENGTH:
                sections.append(section)

    if sections:
        optimized = "\n\n".join(sections)
        if len(optimized) <= max_length:
            logger.debug(
                f"Content optimized by sections: {len(content)} → {len(optimized)} chars"
            )
            return optimized

    logger.debug(f"Content truncated: {len(content)} → {max_length} chars")
    return content[:max_length]


def extract_salary(content: str) -> Optional[str]:
    for pattern in SALARY_PATTERNS:
        match = pattern.search(content)
        if match:
            return match.group(0).strip()
    return None


def extract_location(content: str) -> Optional[str]:
    for pattern in LOCATION_PATTERNS:
        match = pattern.search(content)
        if match and match.group(1).strip():
            return match.group(1).strip()[:MAX_LOCATION_LENGTH]
    return None


def extract_job_type(content: str) -> Optional[str]:
    """Find the first employment type keyword, title-cased (``Full-Time``)."""
    lowered = content.lower()
    for job_type in JOB_TYPES:
        if job_type in lowered:
            return "-".join(word.capitalize() for word in job_type.split("-"))
    return None


def extract_section_items(content: str, headings: tuple[str, ...]) -> list[str]:
    """Collect bullet lines that follow one of ``headings``."""
    items = []
    lines = content.splitlines()
    i = 0
    while i < len(lines):
        heading = lines[i].strip().lower().rstrip(':')
        if heading and any(heading.startswith(h) for h in headings) and len(heading) < 60:
            i += 1
            while i < len(lines):
                match = BULLET_PATTERN.match(lines[i])
                if match:
                    items.append(match.group(1))
                elif lines[i].strip():
                    break
                i += 1
            continue
        i += 1
    return items[:MAX_LIST_ITEMS]


def extract_optional_fields(content: str) -> dict:
    """
    Fill optional job fields from page text.

    Returns:
        Dict with the fields that were found (salary, location, job_type,
        requirements, benefits)
    """
    found = {
        "salary": extract_salary(content),
        "location": extract_location(content),
        "job_type": extract_job_type(content),
        "requirements": extract_section_items(content, REQUIREMENT_HEADINGS) or None,
        "benefits": extract_section_items(content, BENEFIT_HEADINGS) or None,
    }
    return {key: value for key, value in found.items() if value}


JOB_URL_PATTERNS = [
    re.compile(p) for p in (
        r'jobs?/|career',
        r'linkedin\.com/jobs',
        r'indeed\.[a-z.]+/viewjob',
        r'glassdoor\.[a-z.]+/job',
        r'lever\.co/|greenhouse\.io/|workday\.com|workable\.com',
        r'careers\.|job-board',
    )
]
JOB_CONTENT_KEYWORDS = [
    "job description", "responsibilities", "requirements", "qualifications",
    "apply now", "salary", "compensation", "benefits", "remote", "full-time",
    "part-time", "contract", "internship", "employment", "position",
]
JOB_TITLE_PATTERN = re.compile(
    r'job|career|position|opening|opportunity|hiring|recruiting|apply|'
    r'engineer|developer|manager|analyst|designer'
)
MIN_JOB_KEYWORDS = 3


def is_job_posting_page(url: str, title: str, text: str) -> bool:
    """Guess whether a page is a job posting from its URL, title and text."""
    if any(pattern.search(url.lower()) for pattern in JOB_URL_PATTERNS):
        return True
    if JOB_TITLE_PATTERN.search(title.lower()):
        return True
    lowered = text.lower()
    return sum(1 for k in JOB_CONTENT_KEYWORDS if k in lowered) >= MIN_JOB_KEYWORDS
