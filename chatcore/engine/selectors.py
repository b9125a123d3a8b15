"""Read-only selectors over ``StoreSnapshot``.

Selectors are plain functions ``snapshot -> value``. Because the store
shares unchanged parts of its state between snapshots, a selector that
returns a slice of the state returns the same object until that slice
actually changes. Selectors that build a new object (metadata summaries)
are memoized on the last snapshot they saw so repeated reads of an
unchanged snapshot return the same reference.

Parameterized selectors are factories: ``select_session_by_id("x")``
returns one function per id, cached, so a per-item consumer can keep the
same selector across reads.

Usage::

    unwatch = watch(store, select_session_by_id(sid), on_session_changed)
"""
from __future__ import annotations

import functools
from collections.abc import Callable, Mapping
from typing import Any, TypeVar

from chatcore.engine.store import SessionStore, StoreSnapshot
from chatcore.shared.models.message import Message
from chatcore.shared.models.session import Session
from chatcore.shared.models.settings import Provider, Settings

T = TypeVar("T")
Selector = Callable[[StoreSnapshot], T]

_SELECTOR_CACHE_SIZE = 1024


def memoize_last(fn: Callable[[StoreSnapshot], T]) -> Callable[[StoreSnapshot], T]:
    """Cache the result for the most recent snapshot (by identity)."""
    last_snapshot: StoreSnapshot | None = None
    last_value: Any = None

    @functools.wraps(fn)
    def wrapper(snapshot: StoreSnapshot) -> T:
        nonlocal last_snapshot, last_value
        if snapshot is last_snapshot:
            return last_value
        value = fn(snapshot)
        last_snapshot, last_value = snapshot, value
        return value

    return wrapper


# ── settings ─────────────────────────────────────────────────────────

def select_settings(snapshot: StoreSnapshot) -> Settings:
    return snapshot.settings


def select_is_api_key_set(snapshot: StoreSnapshot) -> bool:
    return bool(snapshot.settings.api_key)


def select_api_key(snapshot: StoreSnapshot) -> str:
    """Return the raw key. Sensitive: do not log or render the result."""
    return snapshot.settings.api_key


def select_endpoint_url(snapshot: StoreSnapshot) -> str:
    return snapshot.settings.endpoint_url


def select_system_prompt(snapshot: StoreSnapshot) -> str:
    return snapshot.settings.system_prompt


def select_default_provider(snapshot: StoreSnapshot) -> Provider:
    return snapshot.settings.default_provider


def select_use_swarm(snapshot: StoreSnapshot) -> bool:
    return snapshot.settings.use_swarm_mode


# ── sessions ─────────────────────────────────────────────────────────

def select_sessions(snapshot: StoreSnapshot) -> tuple[Session, ...]:
    return snapshot.sessions


def select_current_session_id(snapshot: StoreSnapshot) -> str | None:
    return snapshot.current_session_id


def select_current_session(snapshot: StoreSnapshot) -> Session | None:
    return snapshot.get_session(snapshot.current_session_id)


def select_session_count(snapshot: StoreSnapshot) -> int:
    return len(snapshot.sessions)


@functools.lru_cache(maxsize=_SELECTOR_CACHE_SIZE)
def select_session_by_id(session_id: str) -> Selector[Session | None]:
    def _select(snapshot: StoreSnapshot) -> Session | None:
        return snapshot.get_session(session_id)

    return _select


# ── messages ─────────────────────────────────────────────────────────

def select_chat_history(snapshot: StoreSnapshot) -> Mapping[str, tuple[Message, ...]]:
    return snapshot.chat_history


def select_current_messages(snapshot: StoreSnapshot) -> tuple[Message, ...]:
    return snapshot.current_messages


def select_message_count(snapshot: StoreSnapshot) -> int:
    return len(snapshot.current_messages)


def select_has_messages(snapshot: StoreSnapshot) -> bool:
    return len(snapshot.current_messages) > 0


def select_last_message(snapshot: StoreSnapshot) -> Message | None:
    messages = snapshot.current_messages
    return messages[-1] if messages else None


@functools.lru_cache(maxsize=_SELECTOR_CACHE_SIZE)
def select_messages_by_session_id(session_id: str) -> Selector[tuple[Message, ...]]:
    def _select(snapshot: StoreSnapshot) -> tuple[Message, ...]:
        return snapshot.messages_for(session_id)

    return _select


@functools.lru_cache(maxsize=_SELECTOR_CACHE_SIZE)
def select_message_count_by_session_id(session_id: str) -> Selector[int]:
    def _select(snapshot: StoreSnapshot) -> int:
        return len(snapshot.messages_for(session_id))

    return _select


@functools.lru_cache(maxsize=_SELECTOR_CACHE_SIZE)
def select_session_has_messages(session_id: str) -> Selector[bool]:
    def _select(snapshot: StoreSnapshot) -> bool:
        return len(snapshot.messages_for(session_id)) > 0

    return _select


@functools.lru_cache(maxsize=_SELECTOR_CACHE_SIZE)
def select_last_message_by_session_id(session_id: str) -> Selector[Message | None]:
    def _select(snapshot: StoreSnapshot) -> Message | None:
        messages = snapshot.messages_for(session_id)
        return messages[-1] if messages else None

    return _select


# ── composites ───────────────────────────────────────────────────────

def select_is_app_ready(snapshot: StoreSnapshot) -> bool:
    return len(snapshot.sessions) > 0 and snapshot.current_session_id is not None


@memoize_last
def select_session_metadata(snapshot: StoreSnapshot) -> Mapping[str, Any]:
    """Header/status summary of the session list."""
    return {
        "total_sessions": len(snapshot.sessions),
        "current_session_id": snapshot.current_session_id,
        "has_current_session": snapshot.current_session_id is not None,
        "has_messages": select_has_messages(snapshot),
        "message_count": select_message_count(snapshot),
    }


@memoize_last
def select_api_config_status(snapshot: StoreSnapshot) -> Mapping[str, Any]:
    has_key = select_is_api_key_set(snapshot)
    endpoint = snapshot.settings.endpoint_url
    return {
        "has_api_key": has_key,
        "endpoint_url": endpoint,
        "is_configured": has_key or len(endpoint) > 0,
    }


@memoize_last
def select_runtime_settings(snapshot: StoreSnapshot) -> Mapping[str, Any]:
    return {
        "default_provider": snapshot.settings.default_provider,
        "use_swarm_mode": snapshot.settings.use_swarm_mode,
    }


# ── change notification ──────────────────────────────────────────────

def watch(
    store: SessionStore,
    selector: Selector[T],
    callback: Callable[[T, T], None],
) -> Callable[[], None]:
    """Call *callback(new, old)* only when *selector*'s value changes.

    Values are compared by identity first, then by equality, so a new
    but equal primitive does not trigger a callback.
    """
    current = selector(store.snapshot())

    def _on_change(new_snapshot: StoreSnapshot, _old: StoreSnapshot) -> None:
        nonlocal current
        value = selector(new_snapshot)
        if value is current or value == current:
            return
        previous, current = current, value
        callback(value, previous)

    return store.subscribe(_on_change)
