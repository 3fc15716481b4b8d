"""Scheduled jobs written by the engine's scheduler plugin."""

from __future__ import annotations

from pydantic import ConfigDict

from deskgate.control_plane.models.base import WireModel


class ScheduledJob(WireModel):
    """One ``jobs/{slug}.json`` record.  Unknown keys are kept as-is."""

    model_config = ConfigDict(extra="allow")

    slug: str
    name: str
    schedule: str
