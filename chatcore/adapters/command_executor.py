"""Command execution collaborator used by the bridge gate.

``CommandExecutor.execute`` never raises for a failed command; it returns
an ``ExecutionResult`` carrying either the output or the error text.
"""
from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from dataclasses import dataclass
from typing import Protocol

from chatcore.engine.errors import (
    BridgeExecutionFailure,
    CommandBlockedError,
    CommandTimeoutError,
)
from chatcore.shared.services.command_policy import CommandPolicy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionResult:
    ok: bool
    output: str = ""
    error: str = ""

    @classmethod
    def success(cls, output: str) -> ExecutionResult:
        return cls(ok=True, output=output)

    @classmethod
    def failure(cls, error: str) -> ExecutionResult:
        return cls(ok=False, error=error)


class CommandExecutor(Protocol):
    async def execute(self, command: str) -> ExecutionResult:
        ...


def format_output(stdout: str, stderr: str) -> str:
    if stderr and stdout:
        return f"{stdout}\n[STDERR]: {stderr}"
    if stderr:
        return f"[STDERR]: {stderr}"
    return stdout


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    """Kill *proc* and, on POSIX, the rest of its process group."""
    if proc.returncode is not None:
        return
    try:
        if hasattr(os, "killpg"):
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()
    except ProcessLookupError:
        return
    logger.info("Killed bridge command pid=%s", proc.pid)
    await asyncio.shield(proc.wait())


class ShellCommandExecutor:
    """Runs commands through the platform shell after a policy check."""

    def __init__(
        self,
        policy: CommandPolicy | None = None,
        timeout_seconds: float = 0.0,
        cwd: str | None = None,
    ) -> None:
        self._policy = policy or CommandPolicy()
        # 0 (or negative) disables the timeout
        self._timeout = timeout_seconds
        self._cwd = cwd

    async def execute(self, command: str) -> ExecutionResult:
        try:
            output = await self._run(command)
        except BridgeExecutionFailure as exc:
            logger.warning("Bridge command failed: %s", exc)
            return ExecutionResult.failure(exc.reason)
        except OSError as exc:
            logger.warning("Bridge command could not start: %s", exc)
            return ExecutionResult.failure(f"Failed to execute command: {exc}")
        return ExecutionResult.success(output)

    async def _run(self, command: str) -> str:
        allowed, reason = self._policy.check(command)
        if not allowed:
            raise CommandBlockedError(command, reason)

        if sys.platform == "win32":
            proc = await asyncio.create_subprocess_exec(
                "powershell", "-NoProfile", "-Command", command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self._cwd,
            )
        else:
            proc = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self._cwd,
                start_new_session=True,
            )

        logger.info("Running bridge command pid=%s: %s", proc.pid, command[:200])
        try:
            if self._timeout > 0:
                stdout, stderr = await asyncio.wait_for(
                    proc.communicate(), timeout=self._timeout
                )
            else:
                stdout, stderr = await proc.communicate()
        except asyncio.TimeoutError:
            await _terminate(proc)
            raise CommandTimeoutError(command, self._timeout)
        except BaseException:
            # Cancelled by the caller (e.g. the gate's own timeout)
            await _terminate(proc)
            raise

        return format_output(
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
        )
