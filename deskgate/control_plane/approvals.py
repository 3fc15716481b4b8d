"""Human-in-the-loop approval gate for mutating requests.

In ``auto`` mode every request is allowed immediately.  In ``manual`` mode
each request becomes a pending record holding a single-resolution future and
its own timeout handle.  The first of these wins:

- a host reply through ``respond`` (allow / deny)
- the timer firing, which always denies (``reason="timeout"``)
- the awaiting HTTP request going away, which drops the record

Pending state lives only in memory; a restart loses it and callers retry.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from loguru import logger

from deskgate.control_plane.models.approval import ApprovalRequest, ApprovalResult
from deskgate.control_plane.models.audit import Actor
from deskgate.control_plane.models.enums import ApprovalMode, ApprovalOutcome, ApprovalReply

DEFAULT_TIMEOUT_MS = 30_000


@dataclass
class _PendingApproval:
    request: ApprovalRequest
    future: asyncio.Future[ApprovalResult]
    timer: asyncio.TimerHandle


class ApprovalService:
    """Registry of pending approvals keyed by request id."""

    def __init__(self, mode: ApprovalMode | str = ApprovalMode.MANUAL, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> None:
        self.mode = ApprovalMode(mode)
        self.timeout_ms = timeout_ms
        self._pending: dict[str, _PendingApproval] = {}

    # -- Request ---------------------------------------------------------------

    async def request_approval(
        self,
        *,
        workspace_id: str,
        action: str,
        summary: str,
        paths: list[str],
        actor: Actor,
    ) -> ApprovalResult:
        request = ApprovalRequest(
            workspace_id=workspace_id,
            action=action,
            summary=summary,
            paths=paths,
            actor=actor,
        )
        if self.mode == ApprovalMode.AUTO:
            return ApprovalResult(id=request.id, allowed=True)

        loop = asyncio.get_running_loop()
        future: asyncio.Future[ApprovalResult] = loop.create_future()
        timer = loop.call_later(self.timeout_ms / 1000, self._expire, request.id)
        self._pending[request.id] = _PendingApproval(request, future, timer)
        logger.info("Approvals: {} pending for {} ({})", request.id, action, workspace_id)

        try:
            return await future
        finally:
            # Covers normal resolution and cancellation of the awaiting request.
            entry = self._pending.pop(request.id, None)
            if entry is not None:
                entry.timer.cancel()
                logger.info("Approvals: {} abandoned by caller", request.id)

    # -- Resolution ------------------------------------------------------------

    def respond(self, request_id: str, reply: ApprovalReply | str) -> ApprovalResult | None:
        """Resolve a pending request.  Returns ``None`` if unknown or already resolved."""
        entry = self._pending.pop(request_id, None)
        if entry is None or entry.future.done():
            return None
        entry.timer.cancel()

        # Anything other than an explicit "allow" denies.
        allowed = str(reply) == ApprovalReply.ALLOW
        entry.request.outcome = ApprovalOutcome.ALLOWED if allowed else ApprovalOutcome.DENIED
        result = ApprovalResult(id=request_id, allowed=allowed, reason=None if allowed else "denied")
        entry.future.set_result(result)
        logger.info("Approvals: {} {}", request_id, entry.request.outcome)
        return result

    def _expire(self, request_id: str) -> None:
        entry = self._pending.pop(request_id, None)
        if entry is None or entry.future.done():
            return
        entry.request.outcome = ApprovalOutcome.TIMED_OUT
        entry.future.set_result(ApprovalResult(id=request_id, allowed=False, reason="timeout"))
        logger.warning("Approvals: {} timed out after {}ms", request_id, self.timeout_ms)

    # -- Query -----------------------------------------------------------------

    def list(self) -> list[ApprovalRequest]:
        return [entry.request for entry in self._pending.values()]

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # -- Lifecycle -------------------------------------------------------------

    def deny_all(self) -> int:
        """Deny every pending request (used at shutdown)."""
        ids = list(self._pending)
        for request_id in ids:
            self.respond(request_id, ApprovalReply.DENY)
        return len(ids)
