"""Application-wide limits, channel labels and status strings."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Limits:
    """Caps enforced by the session store.

    Exceeding any of them is normal operating policy (eviction or
    truncation), never an error.
    """

    max_sessions: int = 100
    max_messages_per_session: int = 1000
    max_content_length: int = 50_000
    max_system_prompt_length: int = 10_000
    max_title_length: int = 100

    def __post_init__(self) -> None:
        for name, value in vars(self).items():
            if not isinstance(value, int) or value < 1:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")


DEFAULT_LIMITS = Limits()

# Event channel labels emitted by the inference host.
PRIMARY_CHANNEL = "ollama-event"
SWARM_CHANNEL = "swarm-data"

DEFAULT_SESSION_TITLE = "New Chat"

# Auto-title derivation from the first user message
AUTO_TITLE_PREFIX_LENGTH = 30
AUTO_TITLE_ELLIPSIS = "..."

BRIDGE_QUEUED = "[BRIDGE] Command queued for approval:"
BRIDGE_REJECTED = "[BRIDGE] Command rejected:"
EXECUTING = "Executing..."
SWARM_INIT = "Initializing swarm protocol..."
SWARM_ERROR = "Swarm error"
STREAM_ERROR = "Error"
