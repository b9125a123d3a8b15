"""Chat core engine — session store, selectors, configuration and errors."""
from .config import CoreConfig
from .errors import (
    BridgeExecutionFailure,
    ChatCoreError,
    CommandBlockedError,
    CommandTimeoutError,
    StreamProcessingError,
)
from .store import SessionStore, StoreSnapshot

__all__ = [
    # Controller (lazy import to avoid circular deps)
    "ChatController",
    # Store
    "SessionStore",
    "StoreSnapshot",
    # Config
    "CoreConfig",
    # YAML config (lazy import)
    "ChatCoreYamlConfig",
    "load_yaml_config",
    # Errors
    "BridgeExecutionFailure",
    "ChatCoreError",
    "CommandBlockedError",
    "CommandTimeoutError",
    "StreamProcessingError",
]


def __getattr__(name: str):
    if name == "ChatController":
        from .chat import ChatController
        return ChatController
    if name == "ChatCoreYamlConfig":
        from .yaml_config import ChatCoreYamlConfig
        return ChatCoreYamlConfig
    if name == "load_yaml_config":
        from .yaml_config import load_yaml_config
        return load_yaml_config
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
