"""Command allow/deny policy for bridge execution.

Rules are regexes. The deny list always starts with the built-in
dangerous patterns; a non-empty allow list additionally restricts
execution to commands that match at least one entry.

Rules can be persisted one pattern per line in:
- <workspace>/.chatcore/command_whitelist.txt
- <workspace>/.chatcore/command_blacklist.txt
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from chatcore.shared.validators import DANGEROUS_PATTERNS

logger = logging.getLogger(__name__)

POLICY_DIRNAME = ".chatcore"
WHITELIST_FILENAME = "command_whitelist.txt"
BLACKLIST_FILENAME = "command_blacklist.txt"

# Shell metacharacters, redirection and destructive or network verbs
DEFAULT_BLACKLIST_PATTERNS: tuple[str, ...] = DANGEROUS_PATTERNS + (
    r"(?:^|\&\&|\|\||;|&|\|)\s*rm(?:\s|$)",
    r"\brmdir\b",
    r"(?:^|\s)del\s",
    r"\bformat\b",
    r">>?",
    r"[|;&`]",
    r"\$\(",
    r"\bremove-item\b",
    r"\bclear-content\b",
    r"\bset-content\b",
    r"\bstart-process\b",
    r"\bcurl\b",
    r"\bwget\b",
    r"\binvoke-webrequest\b",
)


def _compile(patterns: list[str] | tuple[str, ...]) -> list[re.Pattern[str]]:
    compiled: list[re.Pattern[str]] = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern, re.IGNORECASE | re.MULTILINE))
        except re.error:
            logger.warning("Invalid command policy regex ignored: %s", pattern)
    return compiled


@dataclass
class CommandPolicy:
    """Compiled command policy rules."""

    whitelist: list[re.Pattern[str]] = field(default_factory=list)
    blacklist: list[re.Pattern[str]] = field(
        default_factory=lambda: _compile(DEFAULT_BLACKLIST_PATTERNS)
    )

    @classmethod
    def from_patterns(
        cls,
        whitelist: list[str] | None = None,
        blacklist: list[str] | None = None,
        include_defaults: bool = True,
    ) -> CommandPolicy:
        deny = list(DEFAULT_BLACKLIST_PATTERNS) if include_defaults else []
        deny.extend(blacklist or [])
        return cls(whitelist=_compile(whitelist or []), blacklist=_compile(deny))

    def check(self, command: str) -> tuple[bool, str]:
        """Return ``(allowed, reason)`` for *command*."""
        cleaned = (command or "").strip()
        if not cleaned:
            return False, "empty command"
        for pattern in self.blacklist:
            if pattern.search(cleaned):
                return False, f"matches blocked pattern '{pattern.pattern}'"
        if self.whitelist and not any(p.search(cleaned) for p in self.whitelist):
            return False, "not in the allowlist"
        return True, ""


class CommandPolicyStore:
    """Reads and writes workspace command policy files."""

    def __init__(self, workspace_dir: Path | str) -> None:
        self._policy_dir = Path(workspace_dir) / POLICY_DIRNAME
        self._whitelist_path = self._policy_dir / WHITELIST_FILENAME
        self._blacklist_path = self._policy_dir / BLACKLIST_FILENAME

    @property
    def whitelist_path(self) -> Path:
        return self._whitelist_path

    @property
    def blacklist_path(self) -> Path:
        return self._blacklist_path

    def load_policy(self) -> CommandPolicy:
        whitelist = self._read_patterns(self._whitelist_path)
        blacklist = self._read_patterns(self._blacklist_path)
        logger.debug(
            "Command policy loaded: whitelist=%d, blacklist=%d custom + %d default",
            len(whitelist), len(blacklist), len(DEFAULT_BLACKLIST_PATTERNS),
        )
        return CommandPolicy.from_patterns(whitelist, blacklist)

    def add_whitelist_pattern(self, pattern: str) -> None:
        self._add_pattern(self._whitelist_path, pattern)

    def add_blacklist_pattern(self, pattern: str) -> None:
        self._add_pattern(self._blacklist_path, pattern)

    def remove_whitelist_pattern(self, pattern: str) -> bool:
        return self._remove_pattern(self._whitelist_path, pattern)

    def remove_blacklist_pattern(self, pattern: str) -> bool:
        return self._remove_pattern(self._blacklist_path, pattern)

    @staticmethod
    def exact_pattern(command: str) -> str:
        return f"^{re.escape(command.strip())}$"

    @staticmethod
    def _read_patterns(path: Path) -> list[str]:
        if not path.exists():
            return []
        lines: list[str] = []
        for line in path.read_text(encoding="utf-8").splitlines():
            entry = line.strip()
            if not entry or entry.startswith("#"):
                continue
            lines.append(entry)
        return lines

    def _add_pattern(self, path: Path, pattern: str) -> None:
        cleaned = pattern.strip()
        if not cleaned:
            return
        self._policy_dir.mkdir(parents=True, exist_ok=True)
        entries = self._read_patterns(path)
        if cleaned in entries:
            return
        entries.append(cleaned)
        path.write_text("\n".join(entries) + "\n", encoding="utf-8")

    def _remove_pattern(self, path: Path, pattern: str) -> bool:
        cleaned = pattern.strip()
        entries = self._read_patterns(path)
        if not cleaned or cleaned not in entries:
            return False
        entries.remove(cleaned)
        path.write_text("\n".join(entries) + "\n" if entries else "", encoding="utf-8")
        return True
