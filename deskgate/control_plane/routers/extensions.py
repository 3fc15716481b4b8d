"""Plugins, skills, MCP connectors, commands and export / import bundles.

Every mutating route follows the same gate: read-only check, approval,
write, audit, and a reload event when the engine's view changed.
"""

from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Depends, Query, Request

from deskgate.control_plane.auth import HOST_TOKEN_HEADER, authenticate_host
from deskgate.control_plane.deps import (
    Configs,
    ResolvedWorkspace,
    Settings,
    Writable,
    WriteContext,
    require_client,
)
from deskgate.control_plane.errors import ApiError
from deskgate.control_plane.managers.commands import (
    CommandNotFoundError,
    command_path,
    delete_command,
    list_commands,
    upsert_command,
)
from deskgate.control_plane.managers.mcp import add_mcp, list_mcp, remove_mcp
from deskgate.control_plane.managers.plugins import add_plugin, list_plugins, normalize_plugin_spec, remove_plugin
from deskgate.control_plane.managers.skills import describe, list_skills, skill_path, upsert_skill
from deskgate.control_plane.managers.transfer import export_workspace, import_workspace
from deskgate.control_plane.managers.validators import (
    InvalidItemError,
    validate_mcp_config,
    validate_mcp_name,
    validate_skill_name,
)
from deskgate.control_plane.models.api import CommandUpsert, ImportPayload, McpAdd, PluginAdd, SkillUpsert
from deskgate.control_plane.models.enums import ReloadReason, TriggerAction, TriggerType
from deskgate.control_plane.models.events import ReloadTrigger
from deskgate.control_plane.store.config import engine_config_path

router = APIRouter(
    prefix="/workspace/{workspace_id}",
    tags=["extensions"],
    dependencies=[Depends(require_client)],
)


def _invalid(exc: InvalidItemError) -> ApiError:
    return ApiError(400, exc.code, str(exc))


# -- Plugins -------------------------------------------------------------------


@router.get("/plugins")
async def get_plugins(
    workspace: ResolvedWorkspace,
    configs: Configs,
    include_global: bool = Query(False, alias="includeGlobal"),
) -> dict[str, Any]:
    return await list_plugins(configs, workspace.path, include_global=include_global)


@router.post("/plugins", dependencies=[Writable])
async def post_plugin(body: PluginAdd, write: WriteContext, configs: Configs) -> dict[str, Any]:
    config_path = str(engine_config_path(write.root))
    await write.approve("plugins.add", f"Add plugin {body.spec}", [config_path])
    try:
        changed = await add_plugin(configs, write.root, body.spec)
    except InvalidItemError as exc:
        raise _invalid(exc) from exc

    if changed:
        await write.audit("plugins.add", "opencode.json", f"Added {body.spec}")
        write.reload(
            ReloadReason.PLUGINS,
            ReloadTrigger(
                type=TriggerType.PLUGIN,
                name=normalize_plugin_spec(body.spec),
                action=TriggerAction.ADDED,
                path=config_path,
            ),
        )
    return await list_plugins(configs, write.root)


@router.delete("/plugins/{name}", dependencies=[Writable])
async def delete_plugin(name: str, write: WriteContext, configs: Configs) -> dict[str, Any]:
    config_path = str(engine_config_path(write.root))
    await write.approve("plugins.remove", f"Remove plugin {name}", [config_path])
    if await remove_plugin(configs, write.root, name):
        await write.audit("plugins.remove", "opencode.json", f"Removed {name}")
        write.reload(
            ReloadReason.PLUGINS,
            ReloadTrigger(
                type=TriggerType.PLUGIN,
                name=normalize_plugin_spec(name),
                action=TriggerAction.REMOVED,
                path=config_path,
            ),
        )
    return await list_plugins(configs, write.root)


# -- Skills --------------------------------------------------------------------


@router.get("/skills")
async def get_skills(
    workspace: ResolvedWorkspace,
    include_global: bool = Query(False, alias="includeGlobal"),
) -> dict[str, Any]:
    return {"items": await list_skills(workspace.path, include_global=include_global)}


@router.post("/skills", dependencies=[Writable])
async def post_skill(body: SkillUpsert, write: WriteContext) -> dict[str, Any]:
    try:
        path = skill_path(write.root, validate_skill_name(body.name))
    except InvalidItemError as exc:
        raise _invalid(exc) from exc

    await write.approve("skills.upsert", f"Upsert skill {body.name}", [str(path)])
    action, path = await upsert_skill(write.root, body.name, body.content, body.description)
    await write.audit("skills.upsert", str(path), f"Upserted skill {body.name}")
    write.reload(
        ReloadReason.SKILLS,
        ReloadTrigger(type=TriggerType.SKILL, name=body.name, action=action, path=str(path)),
    )
    description = body.description or describe(body.content)
    return {"name": body.name, "path": str(path), "description": description, "scope": "project"}


# -- MCP -----------------------------------------------------------------------


@router.get("/mcp")
async def get_mcp(workspace: ResolvedWorkspace, configs: Configs) -> dict[str, Any]:
    return {"items": await list_mcp(configs, workspace.path)}


@router.post("/mcp", dependencies=[Writable])
async def post_mcp(body: McpAdd, write: WriteContext, configs: Configs) -> dict[str, Any]:
    try:
        validate_mcp_name(body.name)
        validate_mcp_config(body.config)
    except InvalidItemError as exc:
        raise _invalid(exc) from exc

    config_path = str(engine_config_path(write.root))
    await write.approve("mcp.add", f"Add MCP {body.name}", [config_path])
    action = await add_mcp(configs, write.root, body.name, body.config)

    await write.audit("mcp.add", "opencode.json", f"Added MCP {body.name}")
    write.reload(
        ReloadReason.MCP,
        ReloadTrigger(type=TriggerType.MCP, name=body.name, action=action, path=config_path),
    )
    return {"items": await list_mcp(configs, write.root)}


@router.delete("/mcp/{name}", dependencies=[Writable])
async def delete_mcp(name: str, write: WriteContext, configs: Configs) -> dict[str, Any]:
    config_path = str(engine_config_path(write.root))
    await write.approve("mcp.remove", f"Remove MCP {name}", [config_path])
    if await remove_mcp(configs, write.root, name):
        await write.audit("mcp.remove", "opencode.json", f"Removed MCP {name}")
        write.reload(
            ReloadReason.MCP,
            ReloadTrigger(type=TriggerType.MCP, name=name, action=TriggerAction.REMOVED, path=config_path),
        )
    return {"items": await list_mcp(configs, write.root)}


# -- Commands ------------------------------------------------------------------


@router.get("/commands")
async def get_commands(
    request: Request,
    workspace: ResolvedWorkspace,
    settings: Settings,
    scope: Literal["workspace", "global"] = Query("workspace"),
) -> dict[str, Any]:
    """Workspace commands; ``scope=global`` also needs the host token."""
    if scope == "global":
        authenticate_host(request.headers.get(HOST_TOKEN_HEADER), settings.host_token)
    return {"items": await list_commands(workspace.path, scope)}


@router.post("/commands", dependencies=[Writable])
async def post_command(body: CommandUpsert, write: WriteContext) -> dict[str, Any]:
    try:
        path = command_path(write.root, body.name)
    except InvalidItemError as exc:
        raise _invalid(exc) from exc

    await write.approve("commands.upsert", f"Upsert command {path.stem}", [str(path)])
    await upsert_command(
        write.root,
        name=body.name,
        template=body.template,
        description=body.description,
        agent=body.agent,
        model=body.model,
        subtask=body.subtask,
    )
    await write.audit("commands.upsert", str(path), f"Upserted command {path.stem}")
    return {"items": await list_commands(write.root, "workspace")}


@router.delete("/commands/{name}", dependencies=[Writable])
async def remove_command(name: str, write: WriteContext) -> dict[str, Any]:
    try:
        path = command_path(write.root, name)
    except InvalidItemError as exc:
        raise _invalid(exc) from exc

    await write.approve("commands.delete", f"Delete command {path.stem}", [str(path)])
    try:
        await delete_command(write.root, name)
    except CommandNotFoundError:
        raise ApiError(404, "command_not_found", "Command not found") from None
    await write.audit("commands.delete", str(path), f"Deleted command {path.stem}")
    return {"ok": True}


# -- Export / import -----------------------------------------------------------


@router.get("/export")
async def export_bundle(workspace: ResolvedWorkspace, configs: Configs) -> dict[str, Any]:
    return await export_workspace(configs, workspace)


@router.post("/import", dependencies=[Writable])
async def import_bundle(body: ImportPayload, write: WriteContext, configs: Configs) -> dict[str, Any]:
    config_path = str(engine_config_path(write.root))
    await write.approve("config.import", "Import workspace bundle", [config_path])
    try:
        await import_workspace(configs, write.workspace, body)
    except InvalidItemError as exc:
        raise _invalid(exc) from exc

    await write.audit("config.import", "workspace", "Imported workspace bundle")
    write.reload(
        ReloadReason.CONFIG,
        ReloadTrigger(type=TriggerType.CONFIG, name="import", action=TriggerAction.UPDATED, path=config_path),
    )
    return {"ok": True}
