"""Approval request / result records."""

from __future__ import annotations

from typing import Literal

from pydantic import Field

from deskgate.control_plane.models.audit import Actor, now_ms, short_id
from deskgate.control_plane.models.base import WireModel
from deskgate.control_plane.models.enums import ApprovalOutcome


class ApprovalRequest(WireModel):
    """A mutating call waiting on (or decided by) the approval gate."""

    id: str = Field(default_factory=short_id)
    workspace_id: str
    action: str
    summary: str
    paths: list[str] = Field(default_factory=list)
    actor: Actor
    created_at: int = Field(default_factory=now_ms)
    outcome: ApprovalOutcome = ApprovalOutcome.PENDING


class ApprovalResult(WireModel):
    id: str
    allowed: bool
    reason: Literal["denied", "timeout"] | None = None
