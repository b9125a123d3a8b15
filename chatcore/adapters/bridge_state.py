"""Bridge approval state — the auto-approve flag and queued command requests.

Held in memory, or as JSON at a configured path. A missing or corrupt
file yields the defaults; write failures are logged and the in-memory
state stays authoritative for this process.
"""
from __future__ import annotations

import json
import logging
import uuid
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"


@dataclass(frozen=True)
class ApprovalState:
    auto_approve: bool


class ApprovalProvider(Protocol):
    def get_approval_state(self) -> ApprovalState:
        ...


@dataclass(frozen=True)
class BridgeRequest:
    command: str
    session_id: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: str = STATUS_PENDING
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )


class BridgeStateStore:
    """Auto-approve flag plus the list of queued command requests."""

    def __init__(self, path: Path | None = None, auto_approve: bool = True) -> None:
        # path=None keeps everything in memory
        self._path = path
        self._auto_approve = auto_approve
        self._requests: list[BridgeRequest] = []
        if path is not None:
            self._load()

    # ── approval flag ────────────────────────────────────────────────

    def get_approval_state(self) -> ApprovalState:
        return ApprovalState(auto_approve=self._auto_approve)

    def set_auto_approve(self, enabled: bool) -> ApprovalState:
        self._auto_approve = bool(enabled)
        logger.info("Bridge auto-approve %s", "enabled" if enabled else "disabled")
        self._save()
        return self.get_approval_state()

    # ── requests ─────────────────────────────────────────────────────

    @property
    def requests(self) -> tuple[BridgeRequest, ...]:
        return tuple(self._requests)

    def pending_requests(self) -> list[BridgeRequest]:
        return [r for r in self._requests if r.status == STATUS_PENDING]

    def get_request(self, request_id: str) -> BridgeRequest | None:
        for request in self._requests:
            if request.id == request_id:
                return request
        return None

    def add_request(self, command: str, session_id: str | None = None) -> BridgeRequest:
        request = BridgeRequest(command=command, session_id=session_id)
        self._requests.append(request)
        self._save()
        return request

    def approve_request(self, request_id: str) -> BridgeRequest | None:
        return self._set_status(request_id, STATUS_APPROVED)

    def reject_request(self, request_id: str) -> BridgeRequest | None:
        return self._set_status(request_id, STATUS_REJECTED)

    def _set_status(self, request_id: str, status: str) -> BridgeRequest | None:
        for index, request in enumerate(self._requests):
            if request.id == request_id:
                if request.status != STATUS_PENDING:
                    return None
                updated = replace(request, status=status)
                self._requests[index] = updated
                self._save()
                return updated
        return None

    # ── persistence ──────────────────────────────────────────────────

    def _load(self) -> None:
        if self._path is None or not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            logger.warning("Failed to load bridge state from %s; using defaults", self._path)
            return
        if not isinstance(data, dict):
            return
        self._auto_approve = bool(data.get("auto_approve", self._auto_approve))
        requests: list[BridgeRequest] = []
        for raw in data.get("requests") or []:
            if not isinstance(raw, dict) or not raw.get("command"):
                continue
            try:
                requests.append(BridgeRequest(**{
                    k: v for k, v in raw.items()
                    if k in BridgeRequest.__dataclass_fields__
                }))
            except TypeError:
                logger.debug("Skipping malformed bridge request %r", raw)
        self._requests = requests

    def _save(self) -> None:
        if self._path is None:
            return
        payload = {
            "auto_approve": self._auto_approve,
            "requests": [asdict(r) for r in self._requests],
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
        except OSError:
            logger.warning("Failed to write bridge state to %s", self._path)
