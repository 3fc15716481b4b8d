"""In-memory reload notifications.

Clients poll ``list(workspace_id, since)`` with the last cursor they saw and
get back only newer events.  The buffer is bounded; the oldest events are
dropped first.  Cursors restart from zero with the process.
"""

from __future__ import annotations

from collections import deque

from loguru import logger

from deskgate.control_plane.models.enums import ReloadReason
from deskgate.control_plane.models.events import ReloadEvent, ReloadTrigger

DEFAULT_MAX_EVENTS = 200


class ReloadEventStore:
    def __init__(self, max_size: int = DEFAULT_MAX_EVENTS) -> None:
        self._events: deque[ReloadEvent] = deque(maxlen=max_size)
        self._seq = 0

    def record(
        self,
        workspace_id: str,
        reason: ReloadReason,
        trigger: ReloadTrigger | None = None,
    ) -> ReloadEvent:
        self._seq += 1
        event = ReloadEvent(seq=self._seq, workspace_id=workspace_id, reason=reason, trigger=trigger)
        self._events.append(event)
        logger.debug("Events: reload #{} for {} ({})", event.seq, workspace_id, reason)
        return event

    def list(self, workspace_id: str, since: int | None = None) -> list[ReloadEvent]:
        cursor = since or 0
        return [e for e in self._events if e.workspace_id == workspace_id and e.seq > cursor]

    def cursor(self) -> int:
        return self._seq
