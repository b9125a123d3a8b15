"""YAML configuration loader.

Loads a single YAML file that overrides the CHATCORE_* env defaults.
Every section is optional.

Example YAML:
    core:
      log_level: DEBUG
      log_file: ~/.chatcore/logs/chatcore.log

    limits:
      max_sessions: 50
      max_messages_per_session: 500

    settings:
      endpoint_url: http://localhost:11434
      api_key_env: HOSTED_API_KEY    # read the key from this env var
      default_provider: local
      use_swarm_mode: false
      system_prompt: |
        ...

    bridge:
      state_file: ~/.chatcore/bridge.json
      auto_approve: false
      timeout_seconds: 30

    policy:
      workspace: /path/to/project
      whitelist: ["^ls( |$)", "^git status$"]
      blacklist: ["\\bsudo\\b"]
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from chatcore.engine.config import CoreConfig
from chatcore.shared.constants import DEFAULT_LIMITS, Limits

logger = logging.getLogger(__name__)


@dataclass
class ChatCoreYamlConfig:
    """Complete parsed YAML configuration."""
    core: CoreConfig
    # Raw settings overrides; applied through SessionStore.update_settings
    # so they get the same validation as any other update.
    settings: dict[str, Any] = field(default_factory=dict)


def _expand_path(value: Any) -> str | None:
    if value in (None, ""):
        return None
    return os.path.expanduser(os.path.expandvars(str(value)))


def _section(raw: dict, name: str) -> dict:
    section = raw.get(name) or {}
    if not isinstance(section, dict):
        logger.warning("YAML section '%s' is not a mapping; ignored", name)
        return {}
    return section


def _parse_limits(limits_raw: dict) -> Limits:
    known = {f.name for f in fields(Limits)}
    unknown = sorted(set(limits_raw) - known)
    if unknown:
        logger.warning("Unknown limits keys ignored: %s", ", ".join(unknown))
    return Limits(**{
        name: int(limits_raw.get(name, getattr(DEFAULT_LIMITS, name)))
        for name in known
    })


def _parse_settings(settings_raw: dict) -> dict[str, Any]:
    settings = dict(settings_raw)
    key_env = settings.pop("api_key_env", None)
    if key_env:
        api_key = os.getenv(str(key_env), "")
        if api_key:
            settings["api_key"] = api_key
        else:
            logger.warning("settings.api_key_env=%s is not set in the environment", key_env)
    return settings


def load_yaml_config(path: str | Path, base: CoreConfig | None = None) -> ChatCoreYamlConfig:
    """Load and parse a YAML config file.

    Values missing from the file keep those of *base* (``CoreConfig()``
    when omitted). Raises ``FileNotFoundError`` / ``yaml.YAMLError``.
    """
    path = Path(path)
    logger.info(
        "load_yaml_config: attempting to load config from %s (exists=%s)",
        path, path.exists()
    )
    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.error(
            "load_yaml_config: config file not found at %s (absolute path: %s)",
            path, path.absolute()
        )
        raise
    except yaml.YAMLError as exc:
        logger.error("load_yaml_config: YAML parse error in %s: %s", path, exc)
        raise

    if not isinstance(raw, dict):
        raise ValueError(f"{path}: top level must be a mapping")

    top_sections = sorted(raw.keys())
    logger.info(
        "Parsed YAML config %s, sections: %s",
        path.name, ", ".join(top_sections) if top_sections else "(empty)",
    )

    base = base or CoreConfig()
    core_raw = _section(raw, "core")
    bridge_raw = _section(raw, "bridge")
    policy_raw = _section(raw, "policy")

    core = CoreConfig(
        limits=_parse_limits(_section(raw, "limits")) if "limits" in raw else base.limits,
        log_level=str(core_raw.get("log_level", base.log_level)).upper(),
        log_file=_expand_path(core_raw.get("log_file", base.log_file)),
        event_queue_size=int(core_raw.get("event_queue_size", base.event_queue_size)),
        bridge_state_path=_expand_path(
            bridge_raw.get("state_file", base.bridge_state_path)
        ),
        bridge_auto_approve=bool(
            bridge_raw.get("auto_approve", base.bridge_auto_approve)
        ),
        command_timeout_seconds=float(
            bridge_raw.get("timeout_seconds", base.command_timeout_seconds)
        ),
        workspace_dir=_expand_path(
            policy_raw.get("workspace", base.workspace_dir)
        ) or base.workspace_dir,
        command_whitelist=list(policy_raw.get("whitelist", base.command_whitelist) or []),
        command_blacklist=list(policy_raw.get("blacklist", base.command_blacklist) or []),
    )
    return ChatCoreYamlConfig(
        core=core,
        settings=_parse_settings(_section(raw, "settings")),
    )
