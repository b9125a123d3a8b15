"""Stream ingestion listener — demultiplexes the two stream channels.

One listener owns one handler registration per channel (primary and
swarm). Every event, whichever channel it arrived on, goes through the
same rule:

1. a non-empty ``chunk`` is forwarded to ``on_chunk``, even when the same
   event also carries ``done``;
2. ``done`` then invokes ``on_complete``;
3. an event with neither is dropped.

Handler errors are wrapped in ``StreamProcessingError`` and passed to
``on_error``; the registrations stay in place so later events still flow.

Target session: ``on_chunk`` must write into the session the stream was
started for, not whatever session is current when a chunk arrives. Build
it with ``store_chunk_writer(store, session_id)`` at stream start; a user
switching sessions mid-stream then cannot redirect late chunks.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from chatcore.adapters.events import (
    EventHandler,
    EventSource,
    StreamChannel,
    Unlisten,
    payload_from_dict,
)
from chatcore.engine.errors import StreamProcessingError
from chatcore.engine.store import SessionStore

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[str], Any]
CompleteCallback = Callable[[], Any]
ErrorCallback = Callable[[StreamProcessingError], Any]


@dataclass(frozen=True)
class StreamCallbacks:
    on_chunk: ChunkCallback
    on_complete: CompleteCallback
    on_error: ErrorCallback | None = None

    def same_as(self, other: StreamCallbacks | None) -> bool:
        """True if every callback is the same callable as in *other*.

        ``==`` rather than ``is`` so that re-reading ``obj.method`` (a new
        bound-method object each time) counts as unchanged.
        """
        if other is None:
            return False
        return (
            self.on_chunk == other.on_chunk
            and self.on_complete == other.on_complete
            and self.on_error == other.on_error
        )


def store_chunk_writer(store: SessionStore, session_id: str) -> ChunkCallback:
    """Return an ``on_chunk`` that appends to *session_id*'s last message."""

    def _write(chunk: str) -> None:
        store.update_last_message(chunk, session_id=session_id)

    return _write


class StreamListener:
    """Registers one handler per stream channel for its active lifetime."""

    def __init__(
        self,
        source: EventSource,
        callbacks: StreamCallbacks,
        channels: tuple[StreamChannel, ...] = (StreamChannel.PRIMARY, StreamChannel.SWARM),
    ) -> None:
        self._source = source
        self._callbacks = callbacks
        self._channels = channels
        self._unlisteners: list[Unlisten] = []
        # Handlers from an earlier registration compare their token to this
        # and go quiet once it has moved on.
        self._token: object | None = None

    @property
    def active(self) -> bool:
        return self._token is not None

    @property
    def callbacks(self) -> StreamCallbacks:
        return self._callbacks

    def activate(self) -> None:
        if self._token is not None:
            return
        token = object()
        self._token = token
        for channel in self._channels:
            handler = self._make_handler(channel, self._callbacks, token)
            self._unlisteners.append(self._source.listen(channel.label, handler))
        logger.debug(
            "Stream listener active on %s",
            ", ".join(c.label for c in self._channels),
        )

    def deactivate(self) -> None:
        """Unregister every channel handler. Safe to call repeatedly."""
        self._token = None
        unlisteners, self._unlisteners = self._unlisteners, []
        for unlisten in unlisteners:
            try:
                unlisten()
            except Exception:
                logger.warning("Stream unlisten failed", exc_info=True)
        if unlisteners:
            logger.debug("Stream listener deactivated")

    def update_callbacks(self, callbacks: StreamCallbacks) -> bool:
        """Swap in new callbacks, re-registering if active.

        Returns True when the callbacks changed.
        """
        if callbacks.same_as(self._callbacks):
            return False
        was_active = self.active
        self.deactivate()
        self._callbacks = callbacks
        if was_active:
            self.activate()
        return True

    def _make_handler(
        self,
        channel: StreamChannel,
        callbacks: StreamCallbacks,
        token: object,
    ) -> EventHandler:
        def _handler(payload: Any) -> None:
            if self._token is not token:
                return
            self.handle(channel, payload, callbacks)

        return _handler

    def handle(
        self,
        channel: StreamChannel,
        payload: Any,
        callbacks: StreamCallbacks | None = None,
    ) -> None:
        """Apply the chunk-then-complete rule to a single event."""
        callbacks = callbacks or self._callbacks
        try:
            event = payload_from_dict(payload)
        except Exception as exc:
            self._report(channel, exc, callbacks)
            return

        if event.is_empty:
            return
        if event.chunk:
            try:
                callbacks.on_chunk(event.chunk)
            except Exception as exc:
                self._report(channel, exc, callbacks)
        if event.done:
            try:
                callbacks.on_complete()
            except Exception as exc:
                self._report(channel, exc, callbacks)

    @staticmethod
    def _report(
        channel: StreamChannel,
        exc: Exception,
        callbacks: StreamCallbacks,
    ) -> None:
        error = StreamProcessingError(channel.label, exc)
        logger.error("%s", error, exc_info=exc)
        if callbacks.on_error is None:
            return
        try:
            callbacks.on_error(error)
        except Exception:
            logger.exception("Stream error callback failed on %s", channel.label)
