"""Configuration loaded from environment variables.

All settings have sensible defaults. Override via CHATCORE_* env vars.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from chatcore.shared.constants import DEFAULT_LIMITS, Limits

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class CoreConfig:
    """Chat core configuration."""

    limits: Limits = field(default_factory=lambda: DEFAULT_LIMITS)

    # Logging
    log_level: str = "INFO"
    # None disables the rotating file handler.
    log_file: str | None = None

    # Bridge approval state file. None keeps approval state in memory.
    bridge_state_path: str | None = None
    # Initial auto-approve flag when no bridge state file exists yet.
    bridge_auto_approve: bool = True

    # Max wall-clock time for one bridge command.
    # Set to 0 (or a negative value) to disable timeout.
    command_timeout_seconds: float = 60.0
    # Workspace whose .chatcore/ command policy files are loaded,
    # and the working directory for bridge commands.
    workspace_dir: str = "."
    # Extra regex rules merged with the workspace policy files.
    command_whitelist: list[str] = field(default_factory=list)
    command_blacklist: list[str] = field(default_factory=list)

    # Event bus queue size
    event_queue_size: int = 5000

    @classmethod
    def from_env(cls) -> CoreConfig:
        """Load configuration from CHATCORE_* environment variables."""
        core_vars = {
            k: v for k, v in os.environ.items() if k.startswith("CHATCORE_")
        }
        if core_vars:
            logger.info(
                "CoreConfig.from_env: CHATCORE_* env overrides: %s",
                ", ".join(f"{k}={v}" for k, v in sorted(core_vars.items())),
            )
        else:
            logger.debug("CoreConfig.from_env: no CHATCORE_* env vars set, using defaults")

        limits = Limits(
            max_sessions=int(os.getenv(
                "CHATCORE_MAX_SESSIONS", str(DEFAULT_LIMITS.max_sessions)
            )),
            max_messages_per_session=int(os.getenv(
                "CHATCORE_MAX_MESSAGES", str(DEFAULT_LIMITS.max_messages_per_session)
            )),
            max_content_length=int(os.getenv(
                "CHATCORE_MAX_CONTENT_LENGTH", str(DEFAULT_LIMITS.max_content_length)
            )),
            max_system_prompt_length=int(os.getenv(
                "CHATCORE_MAX_SYSTEM_PROMPT_LENGTH",
                str(DEFAULT_LIMITS.max_system_prompt_length),
            )),
            max_title_length=int(os.getenv(
                "CHATCORE_MAX_TITLE_LENGTH", str(DEFAULT_LIMITS.max_title_length)
            )),
        )
        config = cls(
            limits=limits,
            log_level=os.getenv("CHATCORE_LOG_LEVEL", cls.log_level).upper(),
            log_file=os.getenv("CHATCORE_LOG_FILE") or None,
            bridge_state_path=os.getenv("CHATCORE_BRIDGE_FILE") or None,
            bridge_auto_approve=_env_bool(
                "CHATCORE_BRIDGE_AUTO_APPROVE", cls.bridge_auto_approve
            ),
            command_timeout_seconds=float(os.getenv(
                "CHATCORE_COMMAND_TIMEOUT", str(cls.command_timeout_seconds)
            )),
            workspace_dir=os.getenv("CHATCORE_WORKSPACE_DIR", cls.workspace_dir),
            event_queue_size=int(os.getenv(
                "CHATCORE_QUEUE_SIZE", str(cls.event_queue_size)
            )),
        )
        logger.info(
            "CoreConfig.from_env: log_level=%s bridge_file=%s workspace=%s timeout=%s",
            config.log_level, config.bridge_state_path,
            config.workspace_dir, config.command_timeout_seconds,
        )
        return config
