"""
Input screening shared by every tool parameter model

Copyright (c) 2024 Browser Bridge Project
Licensed under the MIT License - see LICENSE file for details
"""

import re
from typing import Optional
from urllib.parse import unquote, urlsplit

MAX_URL_LENGTH = 2048
MAX_SELECTOR_LENGTH = 1000
MAX_TEXT_LENGTH = 10_000
MAX_SCRIPT_LENGTH = 50_000

ALLOWED_URL_SCHEMES = ("http", "https")

_SCRIPT_PATTERNS = [
    re.compile(r"<\s*/?\s*script\b", re.IGNORECASE),
    re.compile(r"<[^>]*\son\w+\s*=", re.IGNORECASE),
    re.compile(r"[\"']\s*on\w+\s*=", re.IGNORECASE),
    re.compile(r"javascript\s*:", re.IGNORECASE),
    re.compile(r"<\s*(iframe|object|embed|svg|img)\b", re.IGNORECASE),
]

_SQL_PATTERNS = [
    re.compile(r"'\s*(or|and)\s+'?\w+'?\s*=\s*'?\w+", re.IGNORECASE),
    re.compile(r";\s*(drop|delete|insert|update|truncate|alter|create|exec)\s", re.IGNORECASE),
    re.compile(r"\bunion\s+(all\s+)?select\b", re.IGNORECASE),
    re.compile(r"['\";]\s*--"),
]

_TRAVERSAL_PATTERNS = [
    re.compile(r"(^|[\\/])\.\.([\\/]|$)"),
    re.compile(r"%2e%2e", re.IGNORECASE),
]


def find_threat(value: str) -> Optional[str]:
    """Return a short description of the first injection pattern found"""
    for pattern in _SCRIPT_PATTERNS:
        if pattern.search(value):
            return "script injection markup"
    for pattern in _SQL_PATTERNS:
        if pattern.search(value):
            return "SQL injection pattern"
    for pattern in _TRAVERSAL_PATTERNS:
        if pattern.search(value):
            return "path traversal sequence"
    if "\x00" in value:
        return "NUL byte"
    return None


def check_safe_text(value: str) -> str:
    """pydantic after-validator for free-form string parameters"""
    threat = find_threat(value)
    if threat:
        raise ValueError(f"rejected: contains {threat}")
    return value


def check_url(value: str) -> str:
    """pydantic after-validator for navigation targets"""
    value = value.strip()
    if not value:
        raise ValueError("URL must not be empty")
    if len(value) > MAX_URL_LENGTH:
        raise ValueError(f"URL exceeds {MAX_URL_LENGTH} characters")

    parts = urlsplit(value)
    if parts.scheme.lower() not in ALLOWED_URL_SCHEMES:
        raise ValueError(f"URL scheme '{parts.scheme or 'none'}' is not allowed")
    if not parts.netloc:
        raise ValueError("URL has no host")

    decoded_path = unquote(parts.path)
    if re.search(r"(^|/)\.\.(/|$)", decoded_path) or "\\" in decoded_path:
        raise ValueError("rejected: contains path traversal sequence")

    threat = find_threat(unquote(value))
    if threat:
        raise ValueError(f"rejected: contains {threat}")
    return value
