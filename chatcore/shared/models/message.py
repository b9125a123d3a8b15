"""Chat message model."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _gen_id() -> str:
    return str(uuid.uuid4())[:8]


class MessageRole(Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass(frozen=True)
class Message:
    role: MessageRole
    content: str
    timestamp: datetime = field(default_factory=_utcnow)
    # Survives content updates, so a writer can target this exact message.
    id: str = field(default_factory=_gen_id)

    def with_content(self, content: str) -> Message:
        return Message(role=self.role, content=content, timestamp=self.timestamp, id=self.id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        raw_ts = data.get("timestamp")
        if isinstance(raw_ts, (int, float)):
            # Epoch milliseconds, as written by older clients
            timestamp = datetime.fromtimestamp(raw_ts / 1000, tz=timezone.utc)
        elif isinstance(raw_ts, str) and raw_ts:
            timestamp = datetime.fromisoformat(raw_ts)
        else:
            timestamp = _utcnow()
        return cls(
            role=MessageRole(data.get("role", "user")),
            content=str(data.get("content") or ""),
            timestamp=timestamp,
            id=str(data.get("id") or _gen_id()),
        )
