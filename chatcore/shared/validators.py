"""Validation and sanitization helpers for settings and user content.

All functions are pure and never raise for malformed input; callers
decide whether a failed check drops a field or rejects an operation.
"""

from __future__ import annotations

import re
from urllib.parse import urlparse

API_KEY_PREFIX = "AIza"
API_KEY_LENGTH = 39

_API_KEY_CHARS = re.compile(r"^[A-Za-z0-9_-]+$")
_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
_MODEL_NAME_RE = re.compile(r"^[a-zA-Z0-9._:-]+$")
# C0 controls except tab and newline, plus DEL
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")

DANGEROUS_PATTERNS: tuple[str, ...] = (
    r"rm\s+-rf",
    r"del\s+/[sf]",
    r"format\s+[a-z]:",
    r"mkfs",
    r"dd\s+if=",
    r">\s*/dev/",
    r"curl.*\|\s*(ba)?sh",
    r"wget.*\|\s*(ba)?sh",
    r"powershell.*-enc",
    r"invoke-expression",
    r"iex\s*\(",
)
_DANGEROUS_RE = [re.compile(p, re.IGNORECASE) for p in DANGEROUS_PATTERNS]


def is_valid_url(url: object) -> bool:
    """Return True for an http/https URL with a host."""
    if not isinstance(url, str) or not url.strip():
        return False
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def is_localhost_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.hostname in ("localhost", "127.0.0.1")


def is_valid_api_key(key: object) -> bool:
    """Empty means "not set" and is valid; otherwise the hosted key format."""
    if not isinstance(key, str):
        return False
    if key == "":
        return True
    return (
        len(key) == API_KEY_LENGTH
        and key.startswith(API_KEY_PREFIX)
        and _API_KEY_CHARS.match(key) is not None
    )


def sanitize_content(content: str, max_length: int) -> str:
    if len(content) > max_length:
        return content[:max_length]
    return content


def sanitize_title(title: str, max_length: int) -> str:
    """Replace newlines with spaces, trim, and clamp to *max_length*."""
    sanitized = re.sub(r"[\r\n]", " ", title).strip()
    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length].rstrip()
    return sanitized


def sanitize_system_prompt(prompt: str, max_length: int) -> str:
    normalized = prompt.replace("\r\n", "\n").replace("\r", "\n")
    normalized = _CONTROL_CHARS.sub("", normalized)
    return sanitize_content(normalized, max_length)


def contains_dangerous_patterns(command: str) -> bool:
    return any(p.search(command) for p in _DANGEROUS_RE)


def is_valid_session_id(session_id: str) -> bool:
    return _UUID_RE.match(session_id or "") is not None


def is_valid_model_name(model: str) -> bool:
    return bool(model) and len(model) <= 100 and _MODEL_NAME_RE.match(model) is not None
