"""Chat core wiring — logging setup and component assembly."""

from __future__ import annotations

import logging
import sys
from collections.abc import Mapping
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from chatcore.adapters.bridge_state import BridgeStateStore
from chatcore.adapters.command_bridge import CommandBridgeGate
from chatcore.adapters.command_executor import ShellCommandExecutor
from chatcore.adapters.event_bus import EventBus
from chatcore.engine.chat import ChatController, InferenceBackend
from chatcore.engine.config import CoreConfig
from chatcore.engine.store import SessionStore
from chatcore.shared.services.command_policy import CommandPolicy, CommandPolicyStore

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [pid=%(process)d] %(message)s"


def configure_logging(level: str = "INFO", log_file: str | Path | None = None) -> None:
    """Install the stderr handler and, if *log_file* is set, a rotating file."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()
    formatter = logging.Formatter(LOG_FORMAT)
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path, maxBytes=2_000_000, backupCount=5, encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)
    logging.getLogger(__name__).info(
        "Logging configured level=%s log=%s", level.upper(), log_file or "<stderr only>",
    )


@dataclass
class ChatCore:
    """Assembled components sharing one store and one event bus."""
    config: CoreConfig
    store: SessionStore
    bus: EventBus
    bridge_state: BridgeStateStore
    policy: CommandPolicy
    executor: ShellCommandExecutor
    gate: CommandBridgeGate
    controller: ChatController


def load_command_policy(config: CoreConfig) -> CommandPolicy:
    """Workspace policy files plus the rules listed in *config*."""
    store = CommandPolicyStore(config.workspace_dir)
    policy = store.load_policy()
    if config.command_whitelist or config.command_blacklist:
        extra = CommandPolicy.from_patterns(
            config.command_whitelist, config.command_blacklist, include_defaults=False,
        )
        policy = CommandPolicy(
            whitelist=policy.whitelist + extra.whitelist,
            blacklist=policy.blacklist + extra.blacklist,
        )
    return policy


def build_core(
    config: CoreConfig,
    backend: InferenceBackend,
    settings: Mapping[str, Any] | None = None,
) -> ChatCore:
    """Wire store, bus, bridge gate and controller from *config*.

    *settings* (e.g. the YAML 'settings:' section) is applied through the
    normal settings validation; rejected fields are logged and dropped.
    """
    logger = logging.getLogger(__name__)
    store = SessionStore(limits=config.limits)
    if settings:
        store.update_settings(settings)
    bus = EventBus(maxsize=config.event_queue_size)
    if config.bridge_state_path:
        bridge_state = BridgeStateStore(
            Path(config.bridge_state_path), auto_approve=config.bridge_auto_approve,
        )
    else:
        bridge_state = BridgeStateStore(auto_approve=config.bridge_auto_approve)
    policy = load_command_policy(config)
    executor = ShellCommandExecutor(
        policy=policy,
        timeout_seconds=config.command_timeout_seconds,
        cwd=config.workspace_dir,
    )
    gate = CommandBridgeGate(store, bridge_state, executor, requests=bridge_state)
    controller = ChatController(store, bus, backend, gate=gate)
    logger.info(
        "Chat core ready: limits=%s auto_approve=%s workspace=%s",
        config.limits, bridge_state.get_approval_state().auto_approve, config.workspace_dir,
    )
    return ChatCore(
        config=config,
        store=store,
        bus=bus,
        bridge_state=bridge_state,
        policy=policy,
        executor=executor,
        gate=gate,
        controller=controller,
    )
