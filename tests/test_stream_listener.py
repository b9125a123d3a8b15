from __future__ import annotations

from chatcore.adapters.event_bus import EventBus
from chatcore.adapters.events import StreamChannel
from chatcore.adapters.stream_listener import (
    StreamCallbacks,
    StreamListener,
    store_chunk_writer,
)
from chatcore.engine.errors import StreamProcessingError
from chatcore.engine.store import SessionStore
from chatcore.shared.models.message import Message, MessageRole

PRIMARY = StreamChannel.PRIMARY.label
SWARM = StreamChannel.SWARM.label


class Recorder:
    def __init__(self) -> None:
        self.chunks: list[str] = []
        self.completions = 0
        self.errors: list[StreamProcessingError] = []

    def on_chunk(self, chunk: str) -> None:
        self.chunks.append(chunk)

    def on_complete(self) -> None:
        self.completions += 1

    def on_error(self, error: StreamProcessingError) -> None:
        self.errors.append(error)

    def callbacks(self) -> StreamCallbacks:
        return StreamCallbacks(self.on_chunk, self.on_complete, self.on_error)


def _listener(bus: EventBus, rec: Recorder) -> StreamListener:
    listener = StreamListener(bus, rec.callbacks())
    listener.activate()
    return listener


def test_registers_one_handler_per_channel() -> None:
    bus = EventBus()
    listener = _listener(bus, Recorder())

    assert bus.handler_count(PRIMARY) == 1
    assert bus.handler_count(SWARM) == 1

    listener.activate()
    assert bus.handler_count(PRIMARY) == 1


def test_chunks_then_single_completion() -> None:
    bus = EventBus()
    rec = Recorder()
    _listener(bus, rec)

    bus.dispatch(PRIMARY, {"chunk": "A", "done": False})
    bus.dispatch(PRIMARY, {"chunk": "B", "done": False})
    bus.dispatch(PRIMARY, {"chunk": "", "done": True})

    assert rec.chunks == ["A", "B"]
    assert rec.completions == 1
    assert rec.errors == []


def test_chunk_and_done_in_one_event_applies_chunk_first() -> None:
    bus = EventBus()
    order: list[str] = []
    listener = StreamListener(
        bus,
        StreamCallbacks(
            on_chunk=lambda c: order.append(f"chunk:{c}"),
            on_complete=lambda: order.append("done"),
        ),
    )
    listener.activate()

    bus.dispatch(SWARM, {"chunk": "tail", "done": True})

    assert order == ["chunk:tail", "done"]


def test_empty_event_is_discarded() -> None:
    bus = EventBus()
    rec = Recorder()
    _listener(bus, rec)

    bus.dispatch(PRIMARY, {"chunk": "", "done": False})
    bus.dispatch(PRIMARY, {"chunk": None})
    bus.dispatch(PRIMARY, {})

    assert rec.chunks == []
    assert rec.completions == 0
    assert rec.errors == []


def test_handler_error_is_reported_and_processing_continues() -> None:
    bus = EventBus()
    rec = Recorder()
    calls = []

    def flaky(chunk: str) -> None:
        calls.append(chunk)
        if chunk == "bad":
            raise ValueError("cannot apply")

    listener = StreamListener(bus, StreamCallbacks(flaky, rec.on_complete, rec.on_error))
    listener.activate()

    bus.dispatch(PRIMARY, {"chunk": "bad", "done": True})
    bus.dispatch(SWARM, {"chunk": "good", "done": False})

    assert calls == ["bad", "good"]
    # completion still runs after the chunk step failed
    assert rec.completions == 1
    assert len(rec.errors) == 1
    error = rec.errors[0]
    assert isinstance(error, StreamProcessingError)
    assert error.channel == PRIMARY
    assert isinstance(error.cause, ValueError)


def test_malformed_payload_is_reported() -> None:
    bus = EventBus()
    rec = Recorder()
    _listener(bus, rec)

    bus.dispatch(PRIMARY, "not a mapping")
    bus.dispatch(PRIMARY, {"chunk": 42})

    assert len(rec.errors) == 1
    assert isinstance(rec.errors[0].cause, TypeError)
    assert rec.chunks == ["42"]


def test_error_without_error_callback_does_not_raise() -> None:
    bus = EventBus()

    def boom() -> None:
        raise RuntimeError("completion failed")

    listener = StreamListener(bus, StreamCallbacks(lambda c: None, boom))
    listener.activate()

    bus.dispatch(PRIMARY, {"chunk": "", "done": True})
    assert listener.active


def test_deactivate_is_idempotent_and_stops_delivery() -> None:
    bus = EventBus()
    rec = Recorder()
    listener = _listener(bus, rec)

    listener.deactivate()
    listener.deactivate()
    bus.dispatch(PRIMARY, {"chunk": "late", "done": True})

    assert bus.handler_count(PRIMARY) == 0
    assert bus.handler_count(SWARM) == 0
    assert rec.chunks == []
    assert rec.completions == 0


def test_update_callbacks_reregisters_without_stale_closures() -> None:
    bus = EventBus()
    old = Recorder()
    new = Recorder()
    listener = _listener(bus, old)

    assert listener.update_callbacks(new.callbacks()) is True
    bus.dispatch(PRIMARY, {"chunk": "x", "done": False})

    assert old.chunks == []
    assert new.chunks == ["x"]
    assert bus.handler_count(PRIMARY) == 1


def test_update_callbacks_with_equal_callbacks_is_noop() -> None:
    bus = EventBus()
    rec = Recorder()
    listener = _listener(bus, rec)

    assert listener.update_callbacks(rec.callbacks()) is False


def test_update_callbacks_while_inactive_does_not_register() -> None:
    bus = EventBus()
    listener = StreamListener(bus, Recorder().callbacks())

    listener.update_callbacks(Recorder().callbacks())

    assert not listener.active
    assert bus.handler_count(PRIMARY) == 0


def test_session_switch_mid_stream_keeps_chunks_in_origin_session() -> None:
    bus = EventBus()
    store = SessionStore()
    origin = store.create_session()
    store.add_message(Message(role=MessageRole.ASSISTANT, content=""))
    listener = StreamListener(
        bus, StreamCallbacks(store_chunk_writer(store, origin), lambda: None)
    )
    listener.activate()

    bus.dispatch(PRIMARY, {"chunk": "Hel", "done": False})
    other = store.create_session()
    store.add_message(Message(role=MessageRole.USER, content="unrelated"))
    bus.dispatch(PRIMARY, {"chunk": "lo", "done": True})

    assert store.messages(origin)[-1].content == "Hello"
    assert [m.content for m in store.messages(other)] == ["unrelated"]
