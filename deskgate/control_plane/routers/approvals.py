"""Host-side view of pending approvals."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from deskgate.control_plane.deps import Approvals, require_host
from deskgate.control_plane.errors import ApiError
from deskgate.control_plane.models.api import ApprovalReplyBody

router = APIRouter(prefix="/approvals", tags=["approvals"], dependencies=[Depends(require_host)])


@router.get("")
async def list_approvals(approvals: Approvals) -> dict[str, Any]:
    return {"items": [request.to_wire() for request in approvals.list()]}


@router.post("/{request_id}")
async def reply_approval(request_id: str, body: ApprovalReplyBody, approvals: Approvals) -> dict[str, Any]:
    result = approvals.respond(request_id, body.reply)
    if result is None:
        raise ApiError(404, "approval_not_found", "Approval request not found")
    return {"ok": True, "allowed": result.allowed}
