"""Adapters package - Bridge between the session store and the host.

This package contains the event bus, the stream listener and the
command bridge components that connect the store to the inference
host and the local shell.
"""
from __future__ import annotations

__all__ = [
    "BridgeStateStore",
    "CommandBridgeGate",
    "EventBus",
    "ShellCommandExecutor",
    "StreamListener",
]

from chatcore.adapters.bridge_state import BridgeStateStore
from chatcore.adapters.command_bridge import CommandBridgeGate
from chatcore.adapters.command_executor import ShellCommandExecutor
from chatcore.adapters.event_bus import EventBus
from chatcore.adapters.stream_listener import StreamListener
