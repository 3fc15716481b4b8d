"""Reload notifications.

A reload event tells UI clients that the engine's cached view of a
workspace is stale and that they should ask for an engine reload.
"""

from __future__ import annotations

from pydantic import Field

from deskgate.control_plane.models.audit import now_ms, short_id
from deskgate.control_plane.models.base import WireModel
from deskgate.control_plane.models.enums import ReloadReason, TriggerAction, TriggerType


class ReloadTrigger(WireModel):
    type: TriggerType
    name: str | None = None
    action: TriggerAction | None = None
    path: str | None = None


class ReloadEvent(WireModel):
    id: str = Field(default_factory=short_id)
    seq: int
    """Cursor; strictly increasing within a process lifetime."""

    workspace_id: str
    reason: ReloadReason
    trigger: ReloadTrigger | None = None
    timestamp: int = Field(default_factory=now_ms)
