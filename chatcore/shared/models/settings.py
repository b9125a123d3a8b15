"""Process-wide chat settings and their merge-on-valid update rule."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Any, Mapping

from chatcore.shared.constants import DEFAULT_LIMITS, Limits
from chatcore.shared.validators import (
    is_valid_api_key,
    is_valid_url,
    sanitize_system_prompt,
)

logger = logging.getLogger(__name__)


class Provider(Enum):
    LOCAL = "local"
    HOSTED = "hosted"


DEFAULT_SYSTEM_PROMPT = """\
You are a helpful assistant running inside a desktop chat client.
You have access to the user's shell. To run a command, use the format:
[EXECUTE: "your command here"]

Example:
User: "Check free disk space"
Assistant: "Let me look. [EXECUTE: "df -h"]"

Only use this for safe, read-only information gathering."""


@dataclass(frozen=True)
class Settings:
    endpoint_url: str = "http://localhost:11434"
    api_key: str = ""
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    default_provider: Provider = Provider.LOCAL
    use_swarm_mode: bool = False

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["default_provider"] = self.default_provider.value
        return data


DEFAULT_SETTINGS = Settings()

SETTINGS_FIELDS = frozenset(Settings.__dataclass_fields__)


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def validate_settings_update(
    partial: Mapping[str, Any],
    limits: Limits = DEFAULT_LIMITS,
) -> tuple[dict[str, Any], list[str]]:
    """Split a partial update into accepted values and dropped field names.

    Invalid fields are dropped individually; the rest of the update still
    applies. Unknown keys are dropped as well.
    """
    accepted: dict[str, Any] = {}
    dropped: list[str] = []

    for key, value in partial.items():
        if key == "endpoint_url":
            if is_valid_url(value):
                accepted[key] = value.strip()
            else:
                logger.warning("Invalid endpoint URL dropped from settings update")
                dropped.append(key)
        elif key == "api_key":
            if is_valid_api_key(value):
                accepted[key] = value
            else:
                # Never log the key itself
                logger.warning("Invalid API key format dropped from settings update")
                dropped.append(key)
        elif key == "system_prompt":
            accepted[key] = sanitize_system_prompt(
                "" if value is None else str(value),
                limits.max_system_prompt_length,
            )
        elif key == "default_provider":
            try:
                accepted[key] = value if isinstance(value, Provider) else Provider(value)
            except ValueError:
                logger.warning("Unknown provider %r dropped from settings update", value)
                dropped.append(key)
        elif key == "use_swarm_mode":
            accepted[key] = _coerce_bool(value)
        else:
            logger.warning("Unknown settings field %r ignored", key)
            dropped.append(key)

    return accepted, dropped


def merge_settings(
    current: Settings,
    partial: Mapping[str, Any],
    limits: Limits = DEFAULT_LIMITS,
) -> Settings:
    accepted, _ = validate_settings_update(partial, limits)
    if not accepted:
        return current
    return replace(current, **accepted)
