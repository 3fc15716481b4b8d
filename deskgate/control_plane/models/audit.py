"""Actor and audit records."""

from __future__ import annotations

import time
import uuid

from pydantic import Field

from deskgate.control_plane.models.base import WireModel
from deskgate.control_plane.models.enums import ActorType


def now_ms() -> int:
    return int(time.time() * 1000)


def short_id() -> str:
    return uuid.uuid4().hex[:12]


class Actor(WireModel):
    """Who made a request.  Carries a hash of the credential, never the token."""

    type: ActorType
    client_id: str | None = None
    token_hash: str | None = None


class AuditEntry(WireModel):
    """One completed mutating action.  Written once, never rewritten."""

    id: str = Field(default_factory=short_id)
    workspace_id: str
    actor: Actor
    action: str
    target: str
    summary: str
    timestamp: int = Field(default_factory=now_ms)
