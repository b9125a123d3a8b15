"""Session store — canonical state for sessions, history and settings.

State is held in an immutable ``StoreSnapshot``. Each mutation builds a
new snapshot that shares every unchanged session, message tuple and the
settings object with the previous one, then swaps it in with a single
assignment. Readers therefore never observe a half-applied operation, and
selectors over an unchanged part of the state keep returning the same
objects.

Session ids, not "the current session", identify write targets for
streamed output: ``add_message`` and ``update_last_message`` accept an
explicit ``session_id`` so a stream that started in one session keeps
writing there after the user switches to another.
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any

from chatcore.shared.constants import DEFAULT_LIMITS, Limits
from chatcore.shared.models.message import Message, MessageRole
from chatcore.shared.models.session import Session, TitleSource
from chatcore.shared.models.settings import (
    DEFAULT_SETTINGS,
    Settings,
    validate_settings_update,
)
from chatcore.shared.services.session_naming import derive_session_title
from chatcore.shared.validators import sanitize_content, sanitize_title

logger = logging.getLogger(__name__)

_EMPTY: tuple[Message, ...] = ()


def _freeze(history: dict[str, tuple[Message, ...]]) -> Mapping[str, tuple[Message, ...]]:
    return MappingProxyType(history)


@dataclass(frozen=True, eq=False)
class StoreSnapshot:
    """Immutable view of the whole store at one point in time."""

    sessions: tuple[Session, ...] = ()
    current_session_id: str | None = None
    chat_history: Mapping[str, tuple[Message, ...]] = field(
        default_factory=lambda: _freeze({})
    )
    settings: Settings = DEFAULT_SETTINGS
    version: int = 0

    def get_session(self, session_id: str | None) -> Session | None:
        if session_id is None:
            return None
        for session in self.sessions:
            if session.session_id == session_id:
                return session
        return None

    def has_session(self, session_id: str | None) -> bool:
        return self.get_session(session_id) is not None

    def messages_for(self, session_id: str | None) -> tuple[Message, ...]:
        if session_id is None:
            return _EMPTY
        return self.chat_history.get(session_id, _EMPTY)

    @property
    def current_messages(self) -> tuple[Message, ...]:
        return self.messages_for(self.current_session_id)


StoreListener = Callable[[StoreSnapshot, StoreSnapshot], None]


class SessionStore:
    """Owns sessions, the current-session pointer, history and settings.

    Every public mutation is all-or-nothing. Operations that cannot apply
    (unknown ids, no current session, empty chunks) are silent no-ops and
    do not notify subscribers.
    """

    def __init__(
        self,
        limits: Limits = DEFAULT_LIMITS,
        settings: Settings = DEFAULT_SETTINGS,
    ) -> None:
        self._limits = limits
        self._snapshot = StoreSnapshot(settings=settings)
        self._listeners: list[StoreListener] = []
        # Single writer: hosts that call in from several threads are
        # serialized here so chunk order is preserved.
        self._lock = threading.RLock()

    # ── reads ────────────────────────────────────────────────────────

    @property
    def limits(self) -> Limits:
        return self._limits

    def snapshot(self) -> StoreSnapshot:
        return self._snapshot

    @property
    def current_session_id(self) -> str | None:
        return self._snapshot.current_session_id

    def get_session(self, session_id: str) -> Session | None:
        return self._snapshot.get_session(session_id)

    def messages(self, session_id: str | None = None) -> tuple[Message, ...]:
        snap = self._snapshot
        target = session_id if session_id is not None else snap.current_session_id
        return snap.messages_for(target)

    # ── subscriptions ────────────────────────────────────────────────

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Register *listener(new, old)*; returns an idempotent unsubscribe."""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                try:
                    self._listeners.remove(listener)
                except ValueError:
                    pass

        return _unsubscribe

    def _commit(self, new: StoreSnapshot, action: str) -> None:
        old = self._snapshot
        new = replace(new, version=old.version + 1)
        self._snapshot = new
        logger.debug("Store %s -> version %d", action, new.version)
        for listener in list(self._listeners):
            try:
                listener(new, old)
            except Exception:
                logger.exception("Store listener failed after %s", action)

    # ── sessions ─────────────────────────────────────────────────────

    def create_session(self) -> str:
        """Insert a new session at the front and make it current."""
        with self._lock:
            snap = self._snapshot
            session = Session()
            sessions = (session,) + snap.sessions
            history = dict(snap.chat_history)

            if len(sessions) > self._limits.max_sessions:
                evicted = sessions[self._limits.max_sessions:]
                sessions = sessions[: self._limits.max_sessions]
                for old in evicted:
                    history.pop(old.session_id, None)
                logger.debug(
                    "Session limit %d reached; evicted %s",
                    self._limits.max_sessions,
                    ", ".join(s.session_id for s in evicted),
                )

            history[session.session_id] = _EMPTY
            self._commit(
                replace(
                    snap,
                    sessions=sessions,
                    current_session_id=session.session_id,
                    chat_history=_freeze(history),
                ),
                "create_session",
            )
            logger.info("Created session %s", session.session_id)
            return session.session_id

    def delete_session(self, session_id: str) -> None:
        with self._lock:
            snap = self._snapshot
            if not snap.has_session(session_id):
                return
            sessions = tuple(s for s in snap.sessions if s.session_id != session_id)
            history = dict(snap.chat_history)
            history.pop(session_id, None)

            current = snap.current_session_id
            if current == session_id:
                current = sessions[0].session_id if sessions else None

            self._commit(
                replace(
                    snap,
                    sessions=sessions,
                    current_session_id=current,
                    chat_history=_freeze(history),
                ),
                "delete_session",
            )
            logger.info("Deleted session %s", session_id)

    def select_session(self, session_id: str) -> None:
        with self._lock:
            snap = self._snapshot
            if snap.current_session_id == session_id:
                return
            if not snap.has_session(session_id):
                # Stale ids from a racing UI are expected
                logger.debug("Ignoring select of unknown session %s", session_id)
                return
            self._commit(replace(snap, current_session_id=session_id), "select_session")

    def update_session_title(self, session_id: str, title: str) -> bool:
        """Set a user title. Returns False when nothing was changed."""
        with self._lock:
            snap = self._snapshot
            sanitized = sanitize_title(str(title or ""), self._limits.max_title_length)
            if not sanitized:
                return False
            session = snap.get_session(session_id)
            if session is None:
                return False
            updated = session.retitled(sanitized, TitleSource.USER)
            self._commit(
                replace(snap, sessions=self._replace_session(snap.sessions, updated)),
                "update_session_title",
            )
            return True

    @staticmethod
    def _replace_session(
        sessions: tuple[Session, ...], updated: Session
    ) -> tuple[Session, ...]:
        return tuple(
            updated if s.session_id == updated.session_id else s for s in sessions
        )

    def _resolve_target(self, snap: StoreSnapshot, session_id: str | None) -> str | None:
        target = session_id if session_id is not None else snap.current_session_id
        if target is None or not snap.has_session(target):
            return None
        return target

    # ── messages ─────────────────────────────────────────────────────

    def add_message(self, message: Message, session_id: str | None = None) -> bool:
        """Append *message* to the current session (or *session_id*).

        The first user message of a session that still has its default
        title also sets the title, once.
        """
        with self._lock:
            snap = self._snapshot
            target = self._resolve_target(snap, session_id)
            if target is None:
                logger.debug("add_message ignored: no target session")
                return False

            content = sanitize_content(message.content, self._limits.max_content_length)
            if content != message.content:
                message = message.with_content(content)

            messages = snap.messages_for(target) + (message,)
            overflow = len(messages) - self._limits.max_messages_per_session
            if overflow > 0:
                messages = messages[overflow:]
                logger.debug("Dropped %d oldest messages in session %s", overflow, target)

            history = dict(snap.chat_history)
            history[target] = messages
            sessions = snap.sessions

            session = snap.get_session(target)
            if message.role is MessageRole.USER and session is not None and session.can_auto_title:
                title = derive_session_title(content, self._limits.max_title_length)
                updated = session.retitled(title or session.title, TitleSource.AUTO)
                sessions = self._replace_session(sessions, updated)

            self._commit(
                replace(snap, sessions=sessions, chat_history=_freeze(history)),
                "add_message",
            )
            return True

    def update_last_message(self, chunk: str, session_id: str | None = None) -> bool:
        """Concatenate *chunk* onto the last message, clamped to the cap."""
        with self._lock:
            if not chunk:
                return False
            snap = self._snapshot
            target = self._resolve_target(snap, session_id)
            if target is None:
                return False
            messages = snap.messages_for(target)
            if not messages:
                return False
            return self._append_at(snap, target, len(messages) - 1, chunk, "update_last_message")

    def append_to_message(self, session_id: str, message_id: str, chunk: str) -> bool:
        """Concatenate *chunk* onto the message *message_id* in *session_id*.

        Dropped if the session or the message no longer exists (deleted,
        cleared or trimmed on overflow).
        """
        with self._lock:
            if not chunk:
                return False
            snap = self._snapshot
            for index, message in enumerate(snap.messages_for(session_id)):
                if message.id == message_id:
                    return self._append_at(snap, session_id, index, chunk, "append_to_message")
            logger.debug("append_to_message: %s not found in session %s", message_id, session_id)
            return False

    def _append_at(
        self, snap: StoreSnapshot, target: str, index: int, chunk: str, action: str
    ) -> bool:
        messages = snap.messages_for(target)
        message = messages[index]
        cap = self._limits.max_content_length
        if len(message.content) >= cap:
            logger.debug("Content cap reached in session %s; chunk dropped", target)
            return False
        updated = message.with_content(sanitize_content(message.content + chunk, cap))

        history = dict(snap.chat_history)
        history[target] = messages[:index] + (updated,) + messages[index + 1:]
        self._commit(replace(snap, chat_history=_freeze(history)), action)
        return True

    def clear_history(self) -> None:
        with self._lock:
            snap = self._snapshot
            target = snap.current_session_id
            if target is None or not snap.messages_for(target):
                return
            history = dict(snap.chat_history)
            history[target] = _EMPTY
            self._commit(replace(snap, chat_history=_freeze(history)), "clear_history")

    # ── settings ─────────────────────────────────────────────────────

    def update_settings(self, partial: Mapping[str, Any]) -> list[str]:
        """Merge the valid fields of *partial*; returns the dropped field names."""
        with self._lock:
            snap = self._snapshot
            accepted, dropped = validate_settings_update(partial, self._limits)
            changed = {
                k: v for k, v in accepted.items() if getattr(snap.settings, k) != v
            }
            if changed:
                self._commit(
                    replace(snap, settings=replace(snap.settings, **changed)),
                    "update_settings",
                )
            return dropped

    # ── plain-data exchange for an external persistence layer ────────

    def to_dict(self) -> dict[str, Any]:
        snap = self._snapshot
        return {
            "sessions": [s.to_dict() for s in snap.sessions],
            "current_session_id": snap.current_session_id,
            "chat_history": {
                sid: [m.to_dict() for m in msgs] for sid, msgs in snap.chat_history.items()
            },
            "settings": snap.settings.to_dict(),
        }

    def load_state(self, data: Mapping[str, Any]) -> None:
        """Replace the whole state from plain data, re-applying every invariant."""
        with self._lock:
            limits = self._limits
            sessions: list[Session] = []
            seen: set[str] = set()
            for raw in data.get("sessions") or []:
                try:
                    session = Session.from_dict(raw)
                except (TypeError, ValueError, AttributeError):
                    logger.warning("Skipping malformed session record")
                    continue
                if session.session_id in seen:
                    continue
                seen.add(session.session_id)
                title = sanitize_title(session.title, limits.max_title_length)
                if title and title != session.title:
                    session = replace(session, title=title)
                sessions.append(session)
            sessions = sessions[: limits.max_sessions]
            live = {s.session_id for s in sessions}

            history: dict[str, tuple[Message, ...]] = {sid: _EMPTY for sid in live}
            for sid, raw_messages in (data.get("chat_history") or {}).items():
                if sid not in live:
                    continue
                messages: list[Message] = []
                for raw in raw_messages or []:
                    try:
                        msg = Message.from_dict(raw)
                    except (TypeError, ValueError, AttributeError):
                        logger.warning("Skipping malformed message in session %s", sid)
                        continue
                    content = sanitize_content(msg.content, limits.max_content_length)
                    messages.append(msg if content == msg.content else msg.with_content(content))
                history[sid] = tuple(messages[-limits.max_messages_per_session:])

            current = data.get("current_session_id")
            if current not in live:
                current = None

            settings = DEFAULT_SETTINGS
            raw_settings = data.get("settings")
            if isinstance(raw_settings, Mapping):
                accepted, _ = validate_settings_update(raw_settings, limits)
                settings = replace(settings, **accepted)

            self._commit(
                StoreSnapshot(
                    sessions=tuple(sessions),
                    current_session_id=current,
                    chat_history=_freeze(history),
                    settings=settings,
                ),
                "load_state",
            )
