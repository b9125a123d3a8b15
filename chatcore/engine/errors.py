"""Exception hierarchy for the chat core.

Limit enforcement and settings validation are policy, not faults, and
have no exception type. The types below never escape the listener or
the bridge gate: they are converted into callbacks or transcript text.
"""
from __future__ import annotations


class ChatCoreError(Exception):
    """Base exception for all chat core errors."""


class StreamProcessingError(ChatCoreError):
    """A chunk or completion handler raised while processing an event."""
    def __init__(self, channel: str, cause: BaseException):
        self.channel = channel
        self.cause = cause
        super().__init__(
            f"Failed to process stream event on '{channel}': "
            f"{type(cause).__name__}: {cause}"
        )


class BridgeExecutionFailure(ChatCoreError):
    """An external command did not complete successfully."""
    def __init__(self, command: str, reason: str):
        self.command = command
        self.reason = reason
        super().__init__(f"Command '{command[:50]}' failed: {reason}")


class CommandBlockedError(BridgeExecutionFailure):
    """Command rejected by the execution policy before it ran."""
    def __init__(self, command: str, reason: str):
        super().__init__(command, f"SECURITY: {reason}")


class CommandTimeoutError(BridgeExecutionFailure):
    """Command exceeded the executor's time budget."""
    def __init__(self, command: str, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(command, f"timed out after {timeout_seconds}s")

