"""Chat controller — user prompt to streamed reply to bridge gate.

Flow for one prompt:

1. append the user message and an empty assistant placeholder;
2. capture the target session id and rebind the stream listener with a
   chunk writer for that session;
3. invoke the external inference backend on the channel selected by
   the swarm-mode setting;
4. on completion, hand the finalized message to the command bridge gate.

The listener stays registered for the lifetime of the controller
(``open()`` / ``close()``); only its callbacks change per stream.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Protocol

from chatcore.adapters.command_bridge import CommandBridgeGate
from chatcore.adapters.events import EventSource, StreamChannel
from chatcore.adapters.stream_listener import (
    StreamCallbacks,
    StreamListener,
    store_chunk_writer,
)
from chatcore.engine.errors import StreamProcessingError
from chatcore.engine.store import SessionStore
from chatcore.shared.constants import STREAM_ERROR, SWARM_ERROR, SWARM_INIT
from chatcore.shared.models.message import Message, MessageRole
from chatcore.shared.models.settings import Settings

logger = logging.getLogger(__name__)


class InferenceBackend(Protocol):
    """External process that produces the reply on an event channel."""

    async def start(
        self,
        prompt: str,
        *,
        settings: Settings,
        channel: StreamChannel,
        image: str | None = None,
    ) -> None:
        ...


def compose_user_content(prompt: str, image: str | None = None) -> str:
    if image:
        return f"![Uploaded Image]({image})\n\n{prompt}"
    return prompt


class ChatController:
    """Drives one chat view over a shared ``SessionStore``."""

    def __init__(
        self,
        store: SessionStore,
        source: EventSource,
        backend: InferenceBackend,
        gate: CommandBridgeGate | None = None,
        on_streaming_changed: Callable[[bool], None] | None = None,
    ) -> None:
        self._store = store
        self._backend = backend
        self._gate = gate
        self._on_streaming_changed = on_streaming_changed
        self._streaming_session_id: str | None = None
        self._gate_tasks: set[asyncio.Task] = set()
        self.last_error: StreamProcessingError | None = None
        self._listener = StreamListener(source, self._idle_callbacks())

    # ── lifecycle ────────────────────────────────────────────────────

    @property
    def listener(self) -> StreamListener:
        return self._listener

    def open(self) -> None:
        self._listener.activate()

    def close(self) -> None:
        """Stop stream delivery. In-flight bridge commands are left to finish."""
        self._listener.deactivate()
        self._set_streaming(None)

    # ── streaming state ──────────────────────────────────────────────

    @property
    def is_streaming(self) -> bool:
        return self._streaming_session_id is not None

    @property
    def streaming_session_id(self) -> str | None:
        return self._streaming_session_id

    def _set_streaming(self, session_id: str | None) -> None:
        was_streaming = self.is_streaming
        self._streaming_session_id = session_id
        if self._on_streaming_changed and was_streaming != self.is_streaming:
            try:
                self._on_streaming_changed(self.is_streaming)
            except Exception:
                logger.exception("Streaming-state callback failed")

    def _idle_callbacks(self) -> StreamCallbacks:
        # Before the first stream there is no captured target; chunks go to
        # the current session. After a stream ends the writer stays bound to
        # that stream's session so stragglers cannot leak elsewhere.
        return StreamCallbacks(
            on_chunk=self._store.update_last_message,
            on_complete=self._on_complete,
            on_error=self._on_error,
        )

    # ── submit ───────────────────────────────────────────────────────

    async def submit(self, prompt: str, image: str | None = None) -> str | None:
        """Send *prompt*; returns the target session id, or None if refused."""
        if self.is_streaming:
            logger.warning("Prompt ignored: session %s is still streaming", self._streaming_session_id)
            return None
        if not prompt.strip() and not image:
            return None

        store = self._store
        session_id = store.current_session_id or store.create_session()
        store.add_message(
            Message(role=MessageRole.USER, content=compose_user_content(prompt, image)),
            session_id=session_id,
        )
        store.add_message(Message(role=MessageRole.ASSISTANT, content=""), session_id=session_id)

        # Capture the target now: reading "current session" per chunk would
        # misroute late chunks after a session switch.
        self._listener.update_callbacks(
            StreamCallbacks(
                on_chunk=store_chunk_writer(store, session_id),
                on_complete=self._on_complete,
                on_error=self._on_error,
            )
        )
        self._listener.activate()
        self.last_error = None
        self._set_streaming(session_id)

        settings = store.snapshot().settings
        channel = StreamChannel.SWARM if settings.use_swarm_mode else StreamChannel.PRIMARY
        if settings.use_swarm_mode:
            store.update_last_message(f"{SWARM_INIT}\n\n", session_id=session_id)

        logger.info("Starting %s stream for session %s", channel.label, session_id)
        try:
            await self._backend.start(prompt, settings=settings, channel=channel, image=image)
        except Exception as exc:
            label = SWARM_ERROR if settings.use_swarm_mode else STREAM_ERROR
            logger.error("Inference backend failed for session %s: %s", session_id, exc)
            store.update_last_message(f"\n[{label}: {exc}]", session_id=session_id)
            self._finish_stream()
        return session_id

    # ── listener callbacks ───────────────────────────────────────────

    def _finish_stream(self) -> str | None:
        session_id = self._streaming_session_id
        self._set_streaming(None)
        return session_id

    def _on_complete(self) -> None:
        if not self.is_streaming:
            logger.debug("Completion received with no active stream; ignored")
            return
        session_id = self._finish_stream()
        logger.info("Stream complete for session %s", session_id)
        if self._gate is None or session_id is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; bridge gate skipped for %s", session_id)
            return
        task = loop.create_task(self._gate.on_message_complete(session_id))
        self._gate_tasks.add(task)
        task.add_done_callback(self._gate_tasks.discard)

    def _on_error(self, error: StreamProcessingError) -> None:
        self.last_error = error
        if self.is_streaming:
            self._finish_stream()

    async def wait_for_bridge(self) -> None:
        """Wait for every bridge-gate run started by a completion."""
        while self._gate_tasks:
            await asyncio.gather(*list(self._gate_tasks), return_exceptions=True)
