"""Session export service — render one session's history as markdown.

Output layout:

    ### USER [2024-01-01T10:00:00+00:00]
    hello

    ---
    ### ASSISTANT [2024-01-01T10:00:02+00:00]
    hi there
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from chatcore.shared.models.message import Message

logger = logging.getLogger(__name__)

BLOCK_SEPARATOR = "\n---\n"
_SLUG_RE = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class SessionExport:
    """Result of a session export."""
    filename: str
    content: str
    message_count: int = 0


def slugify(text: str, max_length: int = 40) -> str:
    slug = _SLUG_RE.sub("-", text.lower()).strip("-")
    return slug[:max_length].rstrip("-") or "export"


def format_message_block(message: Message) -> str:
    return f"### {message.role.value.upper()} [{message.timestamp.isoformat()}]\n{message.content}\n"


def render_markdown(messages: tuple[Message, ...] | list[Message]) -> str:
    return BLOCK_SEPARATOR.join(format_message_block(m) for m in messages)


def export_session_markdown(snapshot, session_id: str) -> SessionExport | None:
    """Export *session_id* from a store snapshot, or None if it is unknown."""
    session = snapshot.get_session(session_id)
    if session is None:
        logger.warning("Export requested for unknown session %s", session_id)
        return None
    messages = snapshot.messages_for(session_id)
    export = SessionExport(
        filename=f"session-{slugify(session.title)}.md",
        content=render_markdown(messages),
        message_count=len(messages),
    )
    logger.info(
        "Exported session %s (%d messages) as %s",
        session_id, export.message_count, export.filename,
    )
    return export
