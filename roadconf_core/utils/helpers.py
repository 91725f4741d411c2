"""Helper utilities.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

_TIME_RE = re.compile(r"^(\d+(ms|s|m|h|d|w|M|y)? *)+$")
_TIME_UNIT_RE = re.compile(r"(\d+)(ms|s|m|h|d|w|M|y)?")


def parse_url(url: str) -> Dict[str, Any]:
    """Parse URL into components."""
    parsed = urlparse(url)

    return {
        "scheme": parsed.scheme,
        "host": parsed.hostname or "",
        "port": str(parsed.port) if parsed.port else "",
        "path": parsed.path,
    }


def parse_time(value: str) -> Optional[str]:
    """Normalize a proxy time value.

    Unit-less numbers are seconds. Returns None when the value is not a
    valid time.

    Examples:
        "30" -> "30s"
        "1m 30s" -> "1m30s"
    """
    value = value.strip()
    if not value or not _TIME_RE.match(value):
        return None

    parts = []
    for number, unit in _TIME_UNIT_RE.findall(value):
        parts.append(f"{number}{unit or 's'}")
    return "".join(parts)


def generate_time(value: str) -> str:
    """Normalize a time value that was validated upstream."""
    parsed = parse_time(value)
    if parsed is None:
        logger.warning(f"Could not normalize time value: {value!r}")
        return value
    return parsed


def generate_time_with_default(value: str, default: str) -> str:
    """Normalize ``value``, or return ``default`` untouched when unset."""
    if not value:
        return default
    return generate_time(value)


def generate_string(value: Optional[str], default: str) -> str:
    """Return ``value`` unless it is empty."""
    if not value:
        return default
    return value


def generate_bool(value: Optional[bool], default: bool) -> bool:
    """Return ``value`` unless it is unset."""
    if value is None:
        return default
    return value


def generate_int(value: Optional[int], default: int) -> int:
    """Return ``value`` unless it is unset."""
    if value is None:
        return default
    return value


def generate_snippets(enable_snippets: bool, snippet: str, defaults: List[str]) -> List[str]:
    """Split a snippet into lines, falling back to defaults when snippets are off."""
    if not enable_snippets or not snippet:
        return list(defaults)
    return snippet.split("\n")


def _trim_one_space(value: str) -> str:
    return value[1:] if value.startswith(" ") else value


def generate_path(path: str) -> str:
    """Wrap a regex location path in double quotes.

    Examples:
        "~ ^/api" -> '~ "^/api"'
        "/api" -> "/api"
    """
    if path.startswith("~*"):
        return f'~* "{_trim_one_space(path[2:])}"'
    if path.startswith("~"):
        return f'~ "{_trim_one_space(path[1:])}"'
    return path


def rfc1123_to_snake(value: str) -> str:
    """Replace hyphens with underscores."""
    return value.replace("-", "_")


__all__ = [
    "parse_url",
    "parse_time",
    "generate_time",
    "generate_time_with_default",
    "generate_string",
    "generate_bool",
    "generate_int",
    "generate_snippets",
    "generate_path",
    "rfc1123_to_snake",
]
