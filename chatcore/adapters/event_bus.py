"""In-process event bus implementing the host ``EventSource`` primitive.

Producers (the inference host, tests) emit ``(channel, payload)`` pairs
into an asyncio queue; the consumer loop delivers them to the handlers
registered for that channel, one event at a time, in arrival order.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

from chatcore.adapters.events import EventHandler, StreamPayload, Unlisten

logger = logging.getLogger(__name__)


class EventBus:
    """Async queue bridging host stream events to registered handlers."""

    def __init__(self, maxsize: int = 5000, put_timeout: float = 30.0) -> None:
        self._queue: asyncio.Queue[tuple[str, Any]] = asyncio.Queue(maxsize=maxsize)
        self._handlers: dict[str, list[EventHandler]] = {}
        self._put_timeout = put_timeout
        self._closed = False

    # ── subscription ─────────────────────────────────────────────────

    def listen(self, channel: str, handler: EventHandler) -> Unlisten:
        """Register *handler* for *channel*; returns an idempotent unlisten."""
        self._handlers.setdefault(channel, []).append(handler)
        logger.debug("Handler registered on %s", channel)

        def _unlisten() -> None:
            handlers = self._handlers.get(channel, [])
            if handler in handlers:
                handlers.remove(handler)
                logger.debug("Handler removed from %s", channel)

        return _unlisten

    def handler_count(self, channel: str) -> int:
        return len(self._handlers.get(channel, []))

    # ── producing ────────────────────────────────────────────────────

    async def emit(self, channel: str, payload: Any) -> None:
        """Queue an event, waiting for space up to the put timeout."""
        if self._closed:
            return
        if isinstance(payload, StreamPayload):
            payload = payload.to_dict()
        try:
            # Backpressure instead of dropping
            await asyncio.wait_for(
                self._queue.put((channel, payload)), timeout=self._put_timeout
            )
        except asyncio.TimeoutError:
            logger.error(
                "EventBus queue blocked for %ss, dropping event on %s (queue size: %d)",
                self._put_timeout,
                channel,
                self._queue.qsize(),
            )

    def emit_nowait(self, channel: str, payload: Any) -> bool:
        if self._closed:
            return False
        if isinstance(payload, StreamPayload):
            payload = payload.to_dict()
        try:
            self._queue.put_nowait((channel, payload))
        except asyncio.QueueFull:
            logger.error("EventBus queue full, dropping event on %s", channel)
            return False
        return True

    # ── consuming ────────────────────────────────────────────────────

    def dispatch(self, channel: str, payload: Any) -> None:
        """Deliver one event synchronously to the handlers of *channel*."""
        for handler in list(self._handlers.get(channel, [])):
            try:
                handler(payload)
            except Exception:
                logger.exception("EventBus handler error on %s", channel)

    async def dispatch_pending(self) -> int:
        """Deliver every queued event in order; returns how many were delivered."""
        delivered = 0
        while not self._queue.empty():
            channel, payload = self._queue.get_nowait()
            self.dispatch(channel, payload)
            delivered += 1
            # Let tasks scheduled by handlers run between events
            await asyncio.sleep(0)
        return delivered

    async def consume(self) -> AsyncIterator[tuple[str, Any]]:
        """Yield queued events as they arrive. Stops on close()."""
        while not self._closed:
            try:
                item = await asyncio.wait_for(self._queue.get(), timeout=0.5)
                yield item
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break

    async def run(self) -> None:
        """Consumer loop: dispatch events until the bus is closed."""
        async for channel, payload in self.consume():
            self.dispatch(channel, payload)

    def close(self) -> None:
        """Stop the consumer loop permanently."""
        self._closed = True

    def reset(self) -> None:
        """Drain leftover events and re-open the bus."""
        while not self._queue.empty():
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
        self._closed = False
