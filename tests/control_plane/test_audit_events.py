"""Unit tests for the audit log and the reload event buffer."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

from deskgate.control_plane.audit import AuditLog, audit_log_path
from deskgate.control_plane.events import ReloadEventStore
from deskgate.control_plane.models.audit import Actor
from deskgate.control_plane.models.enums import ActorType, ReloadReason, TriggerType
from deskgate.control_plane.models.events import ReloadTrigger
from deskgate.control_plane.models.workspace import Workspace

ACTOR = Actor(type=ActorType.REMOTE, client_id="ui", token_hash="abc")


def _workspace(root: Path) -> Workspace:
    return Workspace(id="ws_1", name="p", path=str(root))


# -- Audit ---------------------------------------------------------------------


async def test_record_and_read_in_order(workspace_root: Path) -> None:
    audit = AuditLog()
    workspace = _workspace(workspace_root)
    for i in range(3):
        await audit.record(workspace, ACTOR, action="config.patch", target="opencode.json", summary=f"edit {i}")

    entries = await audit.read_entries(workspace_root)
    assert [e.summary for e in entries] == ["edit 0", "edit 1", "edit 2"]
    assert entries[0].actor.client_id == "ui"
    assert (await audit.read_last(workspace_root)).summary == "edit 2"


async def test_read_limit_returns_most_recent(workspace_root: Path) -> None:
    audit = AuditLog()
    workspace = _workspace(workspace_root)
    for i in range(5):
        await audit.record(workspace, ACTOR, action="a", target="t", summary=str(i))

    entries = await audit.read_entries(workspace_root, 2)
    assert [e.summary for e in entries] == ["3", "4"]


async def test_malformed_lines_are_skipped(workspace_root: Path) -> None:
    audit = AuditLog()
    await audit.record(_workspace(workspace_root), ACTOR, action="a", target="t", summary="ok")
    with audit_log_path(workspace_root).open("a", encoding="utf-8") as f:
        f.write("not json\n\n")

    entries = await audit.read_entries(workspace_root)
    assert [e.summary for e in entries] == ["ok"]


async def test_missing_log_reads_empty(workspace_root: Path) -> None:
    audit = AuditLog()
    assert await audit.read_entries(workspace_root) == []
    assert await audit.read_last(workspace_root) is None


async def test_concurrent_appends_keep_whole_lines(workspace_root: Path) -> None:
    audit = AuditLog()
    workspace = _workspace(workspace_root)
    await asyncio.gather(
        *(audit.record(workspace, ACTOR, action="a", target="t", summary=str(i)) for i in range(20))
    )
    entries = await audit.read_entries(workspace_root, 200)
    assert sorted(int(e.summary) for e in entries) == list(range(20))


async def test_entry_is_one_camel_case_json_line(workspace_root: Path) -> None:
    audit = AuditLog()
    await audit.record(_workspace(workspace_root), ACTOR, action="a", target="t", summary="s")
    (line,) = audit_log_path(workspace_root).read_text().splitlines()
    data = json.loads(line)
    assert data["workspaceId"] == "ws_1"
    assert data["actor"] == {"type": "remote", "clientId": "ui", "tokenHash": "abc"}


# -- Reload events -------------------------------------------------------------


def test_cursor_filters_by_workspace_and_since() -> None:
    events = ReloadEventStore()
    first = events.record("ws_1", ReloadReason.CONFIG)
    events.record("ws_2", ReloadReason.SKILLS)
    third = events.record(
        "ws_1",
        ReloadReason.PLUGINS,
        ReloadTrigger(type=TriggerType.PLUGIN, name="pkg"),
    )

    assert [e.seq for e in events.list("ws_1")] == [first.seq, third.seq]
    assert [e.seq for e in events.list("ws_1", first.seq)] == [third.seq]
    assert events.list("ws_1", events.cursor()) == []
    assert events.cursor() == 3


def test_buffer_is_bounded() -> None:
    events = ReloadEventStore(max_size=3)
    for _ in range(5):
        events.record("ws_1", ReloadReason.MCP)

    assert [e.seq for e in events.list("ws_1")] == [3, 4, 5]
    assert events.cursor() == 5


def test_event_wire_shape() -> None:
    event = ReloadEventStore().record("ws_1", ReloadReason.CONFIG)
    wire = event.to_wire()
    assert wire["workspaceId"] == "ws_1"
    assert wire["reason"] == "config"
    assert "trigger" not in wire


async def test_non_utf8_line_is_skipped(workspace_root: Path) -> None:
    audit = AuditLog()
    workspace = _workspace(workspace_root)
    await audit.record(workspace, ACTOR, action="a", target="t", summary="first")
    with audit_log_path(workspace_root).open("ab") as f:
        f.write(b"\xff\xfe garbage\n")

    assert (await audit.read_last(workspace_root)).summary == "first"

    await audit.record(workspace, ACTOR, action="a", target="t", summary="second")
    entries = await audit.read_entries(workspace_root)
    assert [e.summary for e in entries] == ["first", "second"]
