"""Tolerant JSON parsing for small on-device model output.

Local models are asked for a single JSON object but regularly wrap it in
markdown fences, use single quotes, leave trailing commas or stop mid-string.
``parse_ai_response`` recovers as much as it can and never raises.
"""

import json
import logging
import re
from typing import Any, Callable, Optional

from jobtracker_ai.constants import UNKNOWN_VALUE

logger = logging.getLogger(__name__)

FENCE_PATTERN = re.compile(r'```[a-zA-Z]*')
TRAILING_COMMA_PATTERN = re.compile(r',(\s*[}\]])')
SINGLE_QUOTED_KEY_PATTERN = re.compile(r"'([^'\"]+)'(\s*:)")
SINGLE_QUOTED_VALUE_PATTERN = re.compile(r"(:\s*)'([^']*)'(\s*[,}\]])")
UNQUOTED_KEY_PATTERN = re.compile(r'([{,]\s*)([A-Za-z_][\w-]*)(\s*:)')
INVALID_ESCAPE_PATTERN = re.compile(r'\\(?!["\\/bfnrtu])')
PYTHON_LITERALS = [
    (re.compile(r'(:\s*)True\b'), r'\1true'),
    (re.compile(r'(:\s*)False\b'), r'\1false'),
    (re.compile(r'(:\s*)None\b'), r'\1null'),
]
KEY_VALUE_PATTERN = re.compile(r'"([^"\\]+)"\s*:\s*"((?:[^"\\]|\\.)*)"')


def _isolate_object(text: str) -> str:
    """Strip code fences and keep the first ``{`` .. last ``}`` span."""
    text = FENCE_PATTERN.sub('', text).strip()
    start = text.find('{')
    if start == -1:
        return text
    end = text.rfind('}')
    if end > start:
        return text[start:end + 1]
    # Truncated output: keep the tail, structures are closed during repair
    return text[start:]


def _try_parse(text: str) -> Optional[dict]:
    try:
        value = json.loads(text, strict=False)
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


def _split_strings(text: str) -> list[tuple[bool, str]]:
    """Split text into ``(is_string, chunk)`` parts on double-quoted literals.

    An unterminated literal at the end is returned as a string chunk.
    """
    parts = []
    start = 0
    in_string = False
    escaped = False

    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == '\\':
                escaped = True
            elif char == '"':
                parts.append((True, text[start:index + 1]))
                start = index + 1
                in_string = False
        elif char == '"':
            parts.append((False, text[start:index]))
            start = index
            in_string = True

    parts.append((in_string, text[start:]))
    return parts


def _outside_strings(repair: Callable[[str], str]) -> Callable[[str], str]:
    """Apply a regex repair to the structural text only, never to string contents."""
    def apply(text: str) -> str:
        return ''.join(
            chunk if is_string else repair(chunk)
            for is_string, chunk in _split_strings(text)
        )
    return apply


def _remove_trailing_commas(text: str) -> str:
    return TRAILING_COMMA_PATTERN.sub(r'\1', text)


def _normalize_quotes(text: str) -> str:
    """Replace single quotes used as JSON delimiters, keep apostrophes."""
    text = SINGLE_QUOTED_KEY_PATTERN.sub(r'"\1"\2', text)
    return SINGLE_QUOTED_VALUE_PATTERN.sub(
        lambda m: m.group(1) + json.dumps(m.group(2), ensure_ascii=False) + m.group(3),
        text,
    )


def _quote_keys(text: str) -> str:
    return UNQUOTED_KEY_PATTERN.sub(r'\1"\2"\3', text)


def _fix_escapes(text: str) -> str:
    return INVALID_ESCAPE_PATTERN.sub(r'\\\\', text)


def _replace_python_literals(text: str) -> str:
    for pattern, replacement in PYTHON_LITERALS:
        text = pattern.sub(replacement, text)
    return text


def _close_open_structures(text: str) -> str:
    """Close an unterminated string and any unbalanced brackets."""
    stack = []
    in_string = False
    escaped = False

    for char in text:
        if in_string:
            if escaped:
                escaped = False
            elif char == '\\':
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char in '{[':
            stack.append('}' if char == '{' else ']')
        elif char in '}]' and stack:
            stack.pop()

    if in_string:
        if escaped:
            text = text[:-1]
        text += '"'

    text = text.rstrip()
    if text.endswith(','):
        text = text[:-1]
    elif text.endswith(':'):
        text += ' null'

    return text + ''.join(reversed(stack))


# Order matters: each repair is applied on top of the previous ones.
# Regex repairs skip string literals so truncated text keeps its content.
REPAIRS: list[tuple[str, Callable[[str], str]]] = [
    ("trailing_commas", _outside_strings(_remove_trailing_commas)),
    ("quotes", _outside_strings(_normalize_quotes)),
    ("unquoted_keys", _outside_strings(_quote_keys)),
    ("escapes", _fix_escapes),
    ("python_literals", _outside_strings(_replace_python_literals)),
    ("close_structures", _close_open_structures),
    # Closing may leave a dangling comma before the new bracket
    ("trailing_commas_after_close", _outside_strings(_remove_trailing_commas)),
]


def _decode_string(raw: str) -> str:
    try:
        return json.loads(f'"{raw}"', strict=False)
    except ValueError:
        return raw


def _scrape_key_values(text: str) -> dict[str, str]:
    return {key: _decode_string(value) for key, value in KEY_VALUE_PATTERN.findall(text)}


def parse_ai_response(raw: Optional[str]) -> dict[str, Any]:
    """
    Извлечь JSON объект из ответа модели.

    Steps, stopping at the first success:
    1. Strip code fences and slice the outermost object
    2. Direct parse
    3. Cumulative textual repairs, parsing after each one
    4. Regex key/value scraping over the repaired and the raw text

    Args:
        raw: Raw model output

    Returns:
        Parsed dict, possibly partial; empty dict when nothing was found
    """
    if not raw or not raw.strip():
        return {}

    candidate = _isolate_object(raw)
    parsed = _try_parse(candidate)
    if parsed is not None:
        return parsed

    repaired = candidate
    for name, repair in REPAIRS:
        repaired = repair(repaired)
        parsed = _try_parse(repaired)
        if parsed is not None:
            logger.debug(f"Model JSON recovered after '{name}' repair")
            return parsed

    scraped = _scrape_key_values(repaired)
    for key, value in _scrape_key_values(raw).items():
        scraped.setdefault(key, value)

    if scraped:
        logger.debug(f"Model JSON scraped by regex: {sorted(scraped)}")
    else:
        logger.debug(f"Could not parse model output (first 200 chars): {raw[:200]!r}")
    return scraped


def clean_field_value(value: Any, multiline: bool = False) -> str:
    """Normalize one extracted value; empty or missing values become ``"unknown"``."""
    if value is None:
        return UNKNOWN_VALUE
    if not isinstance(value, str):
        if isinstance(value, (list, tuple)):
            value = "\n".join(str(v) for v in value if v is not None)
        else:
            value = str(value)

    if multiline:
        value = (
            value.replace('\\n', '\n')
            .replace('\\t', '\t')
            .replace('\\r', '\r')
            .replace('\\"', '"')
        )

    value = value.strip()
    if not value or value.lower() == UNKNOWN_VALUE:
        return UNKNOWN_VALUE
    return value


def clean_job_fields(data: dict[str, Any]) -> dict[str, str]:
    """
    Normalize the core fields of a parsed model response.

    Accepts both ``jobDescription`` (what the prompt asks for) and
    ``job_description``.

    Returns:
        Dict with ``company``, ``position`` and ``job_description`` keys
        for the fields present in ``data``
    """
    cleaned = {}
    if "company" in data:
        cleaned["company"] = clean_field_value(data["company"])
    if "position" in data:
        cleaned["position"] = clean_field_value(data["position"])
    for key in ("jobDescription", "job_description"):
        if key in data:
            cleaned["job_description"] = clean_field_value(data[key], multiline=True)
            break
    return cleaned
