from __future__ import annotations

import asyncio
import os
import sys
from types import SimpleNamespace

import pytest

from chatcore.adapters.bridge_state import ApprovalState, BridgeStateStore
from chatcore.adapters.command_bridge import BridgeState, CommandBridgeGate
from chatcore.adapters.command_executor import ExecutionResult, ShellCommandExecutor
from chatcore.engine.store import SessionStore
from chatcore.shared.models.message import Message, MessageRole
from chatcore.shared.services.command_policy import CommandPolicy


class FakeExecutor:
    def __init__(self, result: ExecutionResult | None = None, exc: Exception | None = None):
        self.result = result or ExecutionResult.success("ok")
        self.exc = exc
        self.commands: list[str] = []

    async def execute(self, command: str) -> ExecutionResult:
        self.commands.append(command)
        if self.exc is not None:
            raise self.exc
        return self.result


def _approvals(auto_approve: bool) -> SimpleNamespace:
    return SimpleNamespace(get_approval_state=lambda: ApprovalState(auto_approve=auto_approve))


def _store_with_reply(content: str) -> tuple[SessionStore, str]:
    store = SessionStore()
    sid = store.create_session()
    store.add_message(Message(role=MessageRole.USER, content="please"))
    store.add_message(Message(role=MessageRole.ASSISTANT, content=content))
    return store, sid


@pytest.mark.asyncio
async def test_queues_directive_when_auto_approve_is_off() -> None:
    store, sid = _store_with_reply("Sure.\nEXECUTE: rm -rf /")
    executor = FakeExecutor()
    requests = BridgeStateStore()
    gate = CommandBridgeGate(store, _approvals(False), executor, requests=requests)

    state = await gate.on_message_complete(sid)

    assert state is BridgeState.PENDING_APPROVAL
    assert executor.commands == []
    last = store.messages(sid)[-1]
    assert last.role is MessageRole.SYSTEM
    assert last.content == "[BRIDGE] Command queued for approval: rm -rf /"
    assert [r.command for r in gate.pending_requests()] == ["rm -rf /"]


@pytest.mark.asyncio
async def test_unreadable_approval_state_counts_as_manual() -> None:
    store, sid = _store_with_reply('[EXECUTE: "uptime"]')
    executor = FakeExecutor()

    def broken():
        raise OSError("state file unreadable")

    gate = CommandBridgeGate(store, SimpleNamespace(get_approval_state=broken), executor)

    assert await gate.on_message_complete(sid) is BridgeState.PENDING_APPROVAL
    assert executor.commands == []


@pytest.mark.asyncio
async def test_executes_and_appends_result_block() -> None:
    store, sid = _store_with_reply('Checking. [EXECUTE: "df -h"]')
    executor = FakeExecutor(ExecutionResult.success("Filesystem  Size"))
    gate = CommandBridgeGate(store, _approvals(True), executor)

    state = await gate.on_message_complete(sid)

    assert state is BridgeState.IDLE
    assert executor.commands == ["df -h"]
    messages = store.messages(sid)
    assert messages[-2].content == 'Checking. [EXECUTE: "df -h"]'
    assert messages[-1].role is MessageRole.SYSTEM
    assert messages[-1].content == (
        "> Executing... df -h\n\nRESULT:\n```\nFilesystem  Size\n```\n"
    )


@pytest.mark.asyncio
async def test_failure_appends_error_block() -> None:
    store, sid = _store_with_reply('[EXECUTE: "ls /root"]')
    executor = FakeExecutor(ExecutionResult.failure("permission denied"))
    gate = CommandBridgeGate(store, _approvals(True), executor)

    await gate.on_message_complete(sid)

    assert store.messages(sid)[-1].content.endswith("\n\nERROR:\n```\npermission denied\n```\n")
    assert gate.state is BridgeState.IDLE


@pytest.mark.asyncio
async def test_executor_exception_is_contained() -> None:
    store, sid = _store_with_reply('[EXECUTE: "uptime"]')
    gate = CommandBridgeGate(store, _approvals(True), FakeExecutor(exc=RuntimeError("boom")))

    await gate.on_message_complete(sid)

    assert "ERROR:" in store.messages(sid)[-1].content
    assert "RuntimeError: boom" in store.messages(sid)[-1].content


@pytest.mark.asyncio
async def test_no_directive_stays_idle() -> None:
    store, sid = _store_with_reply("Just text.")
    executor = FakeExecutor()
    gate = CommandBridgeGate(store, _approvals(True), executor)
    before = store.snapshot()

    assert await gate.on_message_complete(sid) is BridgeState.IDLE
    assert store.snapshot() is before
    assert executor.commands == []


@pytest.mark.asyncio
async def test_directive_in_user_message_is_ignored() -> None:
    store = SessionStore()
    sid = store.create_session()
    store.add_message(Message(role=MessageRole.USER, content='[EXECUTE: "uptime"]'))
    executor = FakeExecutor()
    gate = CommandBridgeGate(store, _approvals(True), executor)

    await gate.on_message_complete(sid)

    assert executor.commands == []


@pytest.mark.asyncio
async def test_result_for_deleted_session_is_dropped() -> None:
    store, sid = _store_with_reply('[EXECUTE: "sleep"]')
    release = asyncio.Event()

    class SlowExecutor:
        async def execute(self, command: str) -> ExecutionResult:
            await release.wait()
            return ExecutionResult.success("late output")

    gate = CommandBridgeGate(store, _approvals(True), SlowExecutor())
    task = asyncio.create_task(gate.on_message_complete(sid))
    await asyncio.sleep(0)
    assert gate.state is BridgeState.EXECUTING

    store.delete_session(sid)
    release.set()
    await task

    assert gate.state is BridgeState.IDLE
    assert store.get_session(sid) is None
    assert sid not in store.snapshot().chat_history


@pytest.mark.asyncio
async def test_gate_timeout_produces_error_block() -> None:
    store, sid = _store_with_reply('[EXECUTE: "uptime"]')

    class HangingExecutor:
        async def execute(self, command: str) -> ExecutionResult:
            await asyncio.sleep(10)
            return ExecutionResult.success("never")

    gate = CommandBridgeGate(store, _approvals(True), HangingExecutor(), timeout_seconds=0.05)

    await gate.on_message_complete(sid)

    assert "timed out" in store.messages(sid)[-1].content


@pytest.mark.asyncio
async def test_approve_runs_queued_command() -> None:
    store, sid = _store_with_reply('[EXECUTE: "uptime"]')
    executor = FakeExecutor(ExecutionResult.success("up 3 days"))
    requests = BridgeStateStore()
    gate = CommandBridgeGate(store, requests, executor, requests=requests)
    requests.set_auto_approve(False)

    await gate.on_message_complete(sid)
    request = gate.pending_requests()[0]

    assert await gate.approve(request.id) is True
    assert await gate.approve(request.id) is False
    assert executor.commands == ["uptime"]
    assert "up 3 days" in store.messages(sid)[-1].content
    assert gate.state is BridgeState.IDLE


@pytest.mark.asyncio
async def test_reject_records_notice() -> None:
    store, sid = _store_with_reply('[EXECUTE: "reboot"]')
    requests = BridgeStateStore(auto_approve=False)
    executor = FakeExecutor()
    gate = CommandBridgeGate(store, requests, executor, requests=requests)

    await gate.on_message_complete(sid)
    request = gate.pending_requests()[0]

    assert gate.reject(request.id) is True
    assert gate.reject(request.id) is False
    assert store.messages(sid)[-1].content == "[BRIDGE] Command rejected: reboot"
    assert executor.commands == []
    assert gate.state is BridgeState.IDLE


@pytest.mark.asyncio
async def test_result_lands_on_notice_when_new_turn_arrives_meanwhile() -> None:
    store, sid = _store_with_reply('[EXECUTE: "ls"]')
    release = asyncio.Event()

    class BlockedExecutor:
        async def execute(self, command: str) -> ExecutionResult:
            await release.wait()
            return ExecutionResult.success("OUT")

    gate = CommandBridgeGate(store, _approvals(True), BlockedExecutor())
    task = asyncio.create_task(gate.on_message_complete(sid))
    await asyncio.sleep(0)

    store.add_message(Message(role=MessageRole.USER, content="next"), session_id=sid)
    store.add_message(
        Message(role=MessageRole.ASSISTANT, content="streaming reply"), session_id=sid,
    )
    release.set()
    await task

    messages = store.messages(sid)
    assert messages[-1].content == "streaming reply"
    assert messages[-2].content == "next"
    assert messages[-3].role is MessageRole.SYSTEM
    assert messages[-3].content == "> Executing... ls\n\nRESULT:\n```\nOUT\n```\n"


@pytest.mark.asyncio
async def test_result_dropped_when_notice_was_cleared() -> None:
    store, sid = _store_with_reply('[EXECUTE: "ls"]')
    release = asyncio.Event()

    class BlockedExecutor:
        async def execute(self, command: str) -> ExecutionResult:
            await release.wait()
            return ExecutionResult.success("OUT")

    gate = CommandBridgeGate(store, _approvals(True), BlockedExecutor())
    task = asyncio.create_task(gate.on_message_complete(sid))
    await asyncio.sleep(0)

    store.clear_history()
    store.add_message(Message(role=MessageRole.ASSISTANT, content="fresh"), session_id=sid)
    release.set()
    await task

    assert [m.content for m in store.messages(sid)] == ["fresh"]
    assert gate.state is BridgeState.IDLE


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell")
@pytest.mark.asyncio
async def test_gate_timeout_kills_shell_process(tmp_path) -> None:
    pid_file = tmp_path / "pid"
    store, sid = _store_with_reply(f'[EXECUTE: "echo $$ > {pid_file}; sleep 30"]')
    executor = ShellCommandExecutor(policy=CommandPolicy.from_patterns(include_defaults=False))
    gate = CommandBridgeGate(store, _approvals(True), executor, timeout_seconds=0.5)

    await gate.on_message_complete(sid)

    assert "timed out" in store.messages(sid)[-1].content
    pid = int(pid_file.read_text().strip())
    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)
