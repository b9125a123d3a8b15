"""Session model — identity and title of one conversation."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
import uuid
from typing import Any

from chatcore.shared.constants import DEFAULT_SESSION_TITLE


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TitleSource(Enum):
    """Where the current title came from.

    Auto-titling only ever replaces a DEFAULT title.
    """

    DEFAULT = "default"
    AUTO = "auto"
    USER = "user"


@dataclass(frozen=True)
class Session:
    """Metadata for a conversation. Messages live in the store's history."""

    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    title: str = DEFAULT_SESSION_TITLE
    created_at: datetime = field(default_factory=_utcnow)
    title_source: TitleSource = TitleSource.DEFAULT

    @property
    def can_auto_title(self) -> bool:
        return self.title_source is TitleSource.DEFAULT

    def retitled(self, title: str, source: TitleSource) -> Session:
        return replace(self, title=title, title_source=source)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.session_id,
            "title": self.title,
            "created_at": self.created_at.isoformat(),
            "title_source": self.title_source.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Session:
        raw_created = data.get("created_at") or data.get("createdAt")
        if isinstance(raw_created, (int, float)):
            created_at = datetime.fromtimestamp(raw_created / 1000, tz=timezone.utc)
        elif isinstance(raw_created, str) and raw_created:
            created_at = datetime.fromisoformat(raw_created)
        else:
            created_at = _utcnow()
        try:
            source = TitleSource(data.get("title_source", "default"))
        except ValueError:
            source = TitleSource.DEFAULT
        return cls(
            session_id=str(data.get("id") or data.get("session_id") or uuid.uuid4()),
            title=str(data.get("title") or DEFAULT_SESSION_TITLE),
            created_at=created_at,
            title_source=source,
        )
