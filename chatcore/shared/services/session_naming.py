"""Derive a session title from the first user message.

Deterministic and synchronous: the first few words of the prompt, clipped
to a short prefix with an ellipsis, then run through title sanitization.
"""
from __future__ import annotations

import logging
import re

from chatcore.shared.constants import (
    AUTO_TITLE_ELLIPSIS,
    AUTO_TITLE_PREFIX_LENGTH,
    DEFAULT_LIMITS,
)
from chatcore.shared.validators import sanitize_title

logger = logging.getLogger(__name__)

# Inline image references prepended to prompts carry no title value
_IMAGE_REF_RE = re.compile(r"!\[[^\]]*\]\([^)]*\)\s*")


def derive_session_title(
    user_message: str,
    max_length: int = DEFAULT_LIMITS.max_title_length,
    prefix_length: int = AUTO_TITLE_PREFIX_LENGTH,
) -> str:
    """Return a sanitized title for *user_message*, or "" if nothing usable."""
    text = _IMAGE_REF_RE.sub("", user_message or "")
    text = " ".join(text.split())
    if not text:
        return ""
    clipped = text[:prefix_length]
    if len(text) > prefix_length:
        clipped = clipped.rstrip() + AUTO_TITLE_ELLIPSIS
    title = sanitize_title(clipped, max_length)
    logger.debug("Derived session title %r", title)
    return title
