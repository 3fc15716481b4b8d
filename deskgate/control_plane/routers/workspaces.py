"""Workspace listing, activation, config, audit and reload-event endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from deskgate.control_plane.deps import (
    Audit,
    ClientActor,
    Configs,
    Engine,
    HostActor,
    Registry,
    ReloadEvents,
    ResolvedWorkspace,
    Writable,
    WriteContext,
    require_client,
    resolve_workspace,
)
from deskgate.control_plane.errors import ApiError
from deskgate.control_plane.models.api import ConfigPatch
from deskgate.control_plane.models.audit import now_ms
from deskgate.control_plane.models.enums import ReloadReason, TriggerAction, TriggerType
from deskgate.control_plane.models.events import ReloadTrigger
from deskgate.control_plane.store.config import app_config_path, engine_config_path

router = APIRouter(tags=["workspaces"])
workspace_router = APIRouter(
    prefix="/workspace/{workspace_id}",
    tags=["workspaces"],
    dependencies=[Depends(require_client)],
)


def config_trigger(path: str) -> ReloadTrigger:
    return ReloadTrigger(type=TriggerType.CONFIG, name=path.rsplit("/", 1)[-1], action=TriggerAction.UPDATED, path=path)


# -- Workspaces ----------------------------------------------------------------


@router.get("/workspaces")
async def list_workspaces(_actor: ClientActor, registry: Registry) -> dict[str, Any]:
    """All configured workspaces; the first is active."""
    active = registry.active
    return {"items": [w.serialize() for w in registry.all()], "activeId": active.id if active else None}


@router.post("/workspaces/{workspace_id}/activate")
async def activate_workspace(workspace_id: str, actor: HostActor, registry: Registry, audit: Audit) -> dict[str, Any]:
    """Make a workspace active (host only).  Never creates or deletes."""
    workspace = await resolve_workspace(workspace_id, registry)
    registry.activate(workspace.id)
    await audit.record(
        workspace,
        actor,
        action="workspace.activate",
        target="workspace",
        summary="Switched active workspace",
    )
    return {"activeId": workspace.id, "workspace": workspace.serialize()}


# -- Config --------------------------------------------------------------------


@workspace_router.get("/config")
async def read_config(workspace: ResolvedWorkspace, configs: Configs, audit: Audit) -> dict[str, Any]:
    last = await audit.read_last(workspace.path)
    return {
        "opencode": await configs.read_engine_config(workspace.path),
        "openwork": await configs.read_app_config(workspace.path),
        "updatedAt": last.timestamp if last else None,
    }


@workspace_router.patch("/config", dependencies=[Writable])
async def patch_config(body: ConfigPatch, write: WriteContext, configs: Configs) -> dict[str, Any]:
    """Surgically patch engine config keys and/or merge app config keys."""
    if body.opencode is None and body.openwork is None:
        raise ApiError(400, "invalid_payload", "opencode or openwork updates required")

    engine_path = str(engine_config_path(write.root))
    paths = [engine_path] if body.opencode is not None else []
    if body.openwork is not None:
        paths.append(str(app_config_path(write.root)))
    await write.approve("config.patch", "Patch workspace config", paths)

    if body.opencode is not None:
        await configs.patch_engine_config(write.root, body.opencode)
    if body.openwork is not None:
        await configs.write_app_config(write.root, body.openwork, merge=True)

    await write.audit("config.patch", "opencode.json", "Patched workspace config")
    if body.opencode is not None:
        write.reload(ReloadReason.CONFIG, config_trigger(engine_path))
    return {"updatedAt": now_ms()}


# -- Audit / events ------------------------------------------------------------


@workspace_router.get("/audit")
async def read_audit(
    workspace: ResolvedWorkspace,
    audit: Audit,
    limit: int | None = Query(None, description="Most recent N entries (1-200, default 50)."),
) -> dict[str, Any]:
    entries = await audit.read_entries(workspace.path, limit)
    return {"items": [entry.to_wire() for entry in entries]}


@workspace_router.get("/events")
async def read_events(
    workspace: ResolvedWorkspace,
    events: ReloadEvents,
    since: int | None = Query(None, description="Return events with a cursor strictly greater than this."),
) -> dict[str, Any]:
    items = events.list(workspace.id, since)
    return {"items": [event.to_wire() for event in items], "cursor": events.cursor()}


# -- Engine --------------------------------------------------------------------


@workspace_router.post("/engine/reload")
async def reload_engine(write: WriteContext, engine: Engine) -> dict[str, Any]:
    await write.approve("engine.reload", "Reload OpenCode engine", [str(engine_config_path(write.root))])
    await engine.reload(write.workspace)
    await write.audit("engine.reload", "opencode.instance", "Reloaded OpenCode engine")
    return {"ok": True, "reloadedAt": now_ms()}
