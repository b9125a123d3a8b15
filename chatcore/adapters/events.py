"""Stream event types delivered by the inference host.

The host runtime labels each event with a channel name and carries a
``{"chunk": str, "done": bool}`` payload. Both channels share the same
payload shape.
"""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from chatcore.shared.constants import PRIMARY_CHANNEL, SWARM_CHANNEL


class StreamChannel(Enum):
    PRIMARY = PRIMARY_CHANNEL
    SWARM = SWARM_CHANNEL

    @property
    def label(self) -> str:
        return self.value


@dataclass(frozen=True)
class StreamPayload:
    chunk: str = ""
    done: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.chunk and not self.done

    def to_dict(self) -> dict[str, Any]:
        return {"chunk": self.chunk, "done": self.done}


def payload_from_dict(data: Any) -> StreamPayload:
    """Build a payload from raw host data.

    Missing or ``None`` fields become empty; a non-string chunk is
    converted with ``str``.
    """
    if isinstance(data, StreamPayload):
        return data
    if not isinstance(data, dict):
        raise TypeError(f"Stream payload must be a mapping, got {type(data).__name__}")
    chunk = data.get("chunk")
    if chunk is None:
        chunk = ""
    elif not isinstance(chunk, str):
        chunk = str(chunk)
    return StreamPayload(chunk=chunk, done=bool(data.get("done", False)))


# Handlers receive the raw host payload; parsing happens inside the handler
# so a malformed payload is reported like any other processing error.
EventHandler = Callable[[Any], None]
Unlisten = Callable[[], None]


class EventSource(Protocol):
    """Host primitive: subscribe a handler to a labelled event channel."""

    def listen(self, channel: str, handler: EventHandler) -> Unlisten:
        ...
