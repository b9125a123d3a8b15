"""Command bridge gate — approval-gated execution of model directives.

When an assistant message finishes streaming, the gate parses it once
into text and directive segments. The first directive either:

- is queued with a ``system`` notice when auto-approve is off, or
- is announced with a ``system`` message and handed to the executor;
  the output (or an error block) is then appended to that message.

Model output is untrusted. The gate never retries, and a failure to read
the approval flag counts as auto-approve being off.
"""
from __future__ import annotations

import asyncio
import logging
from enum import Enum

from chatcore.adapters.bridge_state import (
    ApprovalProvider,
    ApprovalState,
    BridgeRequest,
    BridgeStateStore,
)
from chatcore.adapters.command_executor import CommandExecutor, ExecutionResult
from chatcore.engine.store import SessionStore
from chatcore.shared.constants import BRIDGE_QUEUED, BRIDGE_REJECTED, EXECUTING
from chatcore.shared.directives import DirectiveSegment, first_directive
from chatcore.shared.models.message import Message, MessageRole

logger = logging.getLogger(__name__)


class BridgeState(Enum):
    IDLE = "idle"
    PENDING_APPROVAL = "pending_approval"
    EXECUTING = "executing"


def format_result_block(result: ExecutionResult) -> str:
    if result.ok:
        return f"\n\nRESULT:\n```\n{result.output}\n```\n"
    return f"\n\nERROR:\n```\n{result.error}\n```\n"


class CommandBridgeGate:
    """Inspects completed assistant messages and gates directive execution."""

    def __init__(
        self,
        store: SessionStore,
        approvals: ApprovalProvider,
        executor: CommandExecutor,
        requests: BridgeStateStore | None = None,
        timeout_seconds: float = 0.0,
    ) -> None:
        self._store = store
        self._approvals = approvals
        self._executor = executor
        self._requests = requests
        self._timeout = timeout_seconds
        self._state = BridgeState.IDLE

    @property
    def state(self) -> BridgeState:
        return self._state

    def pending_requests(self) -> list[BridgeRequest]:
        return self._requests.pending_requests() if self._requests else []

    def find_directive(self, session_id: str | None = None) -> DirectiveSegment | None:
        """Return the directive in the session's last message, if it is an assistant reply."""
        messages = self._store.messages(session_id)
        if not messages:
            return None
        last = messages[-1]
        if last.role is not MessageRole.ASSISTANT:
            return None
        return first_directive(last.content)

    async def on_message_complete(self, session_id: str | None = None) -> BridgeState:
        """Run the gate for the finalized last message of *session_id*."""
        target = session_id if session_id is not None else self._store.current_session_id
        directive = self.find_directive(target)
        if directive is None:
            return self._state

        command = directive.command
        if not self._auto_approve_enabled():
            self._queue(command, target)
            return self._state

        await self._execute(command, target)
        return self._state

    async def approve(self, request_id: str) -> bool:
        """Execute a queued request. Returns False if it was not pending."""
        if self._requests is None:
            return False
        request = self._requests.approve_request(request_id)
        if request is None:
            return False
        logger.info("Bridge request %s approved", request_id)
        await self._execute(request.command, request.session_id)
        return True

    def reject(self, request_id: str) -> bool:
        if self._requests is None:
            return False
        request = self._requests.reject_request(request_id)
        if request is None:
            return False
        logger.info("Bridge request %s rejected", request_id)
        self._store.add_message(
            Message(role=MessageRole.SYSTEM, content=f"{BRIDGE_REJECTED} {request.command}"),
            session_id=request.session_id,
        )
        self._state = BridgeState.IDLE
        return True

    # ── internals ────────────────────────────────────────────────────

    def _auto_approve_enabled(self) -> bool:
        try:
            state = self._approvals.get_approval_state()
        except Exception:
            logger.warning("Bridge approval state unavailable; treating as manual", exc_info=True)
            state = ApprovalState(auto_approve=False)
        return bool(state.auto_approve)

    def _queue(self, command: str, session_id: str | None) -> None:
        if self._requests is not None:
            self._requests.add_request(command, session_id)
        self._store.add_message(
            Message(role=MessageRole.SYSTEM, content=f"{BRIDGE_QUEUED} {command}"),
            session_id=session_id,
        )
        self._state = BridgeState.PENDING_APPROVAL
        logger.info("Bridge command queued for approval: %s", command[:200])

    async def _execute(self, command: str, session_id: str | None) -> None:
        self._state = BridgeState.EXECUTING
        target = session_id if session_id is not None else self._store.current_session_id
        notice = Message(role=MessageRole.SYSTEM, content=f"> {EXECUTING} {command}")
        added = self._store.add_message(notice, session_id=target)
        try:
            result = await self._run(command)
        finally:
            self._state = BridgeState.IDLE
        if not added or target is None:
            return
        # Later messages may have arrived; the result belongs to the notice
        if not self._store.append_to_message(target, notice.id, format_result_block(result)):
            logger.info("Bridge result dropped: notice for %s no longer exists", command[:200])

    async def _run(self, command: str) -> ExecutionResult:
        try:
            if self._timeout > 0:
                return await asyncio.wait_for(
                    self._executor.execute(command), timeout=self._timeout
                )
            return await self._executor.execute(command)
        except asyncio.TimeoutError:
            logger.warning("Bridge command timed out after %ss: %s", self._timeout, command[:200])
            return ExecutionResult.failure(f"Command timed out after {self._timeout}s")
        except Exception as exc:
            logger.exception("Bridge executor raised for %s", command[:200])
            return ExecutionResult.failure(f"{type(exc).__name__}: {exc}")
