"""Workspace export / import bundles.

A bundle carries the engine config, the app config and the project-scope
skills and commands.  On import each section is applied independently in
``replace`` or ``merge`` mode; a failure part-way leaves earlier sections
applied.
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from deskgate.control_plane.managers.commands import list_commands, upsert_command
from deskgate.control_plane.managers.frontmatter import parse_frontmatter
from deskgate.control_plane.managers.skills import list_skills, read_skill, upsert_skill
from deskgate.control_plane.managers.validators import InvalidItemError
from deskgate.control_plane.models.api import CommandImport, ImportPayload
from deskgate.control_plane.models.audit import now_ms
from deskgate.control_plane.models.enums import ImportMode
from deskgate.control_plane.models.workspace import Workspace
from deskgate.control_plane.store.config import ConfigStore, project_commands_dir, project_skills_dir
from deskgate.control_plane.store.local import remove_tree


async def export_workspace(store: ConfigStore, workspace: Workspace) -> dict[str, Any]:
    skills = await list_skills(workspace.path)
    commands = await list_commands(workspace.path, "workspace")
    return {
        "workspaceId": workspace.id,
        "exportedAt": now_ms(),
        "opencode": await store.read_engine_config(workspace.path),
        "openwork": await store.read_app_config(workspace.path),
        "skills": [
            {"name": s["name"], "description": s["description"], "content": await read_skill(s["path"])}
            for s in skills
        ],
        "commands": [
            {"name": c["name"], "description": c.get("description"), "template": c["template"]} for c in commands
        ],
    }


async def import_workspace(store: ConfigStore, workspace: Workspace, payload: ImportPayload) -> None:
    root = workspace.path
    mode = payload.mode

    if payload.opencode is not None:
        if mode.opencode == ImportMode.REPLACE:
            await store.replace_engine_config(root, payload.opencode)
        else:
            await store.patch_engine_config(root, payload.opencode)

    if payload.openwork is not None:
        await store.write_app_config(root, payload.openwork, merge=mode.openwork != ImportMode.REPLACE)

    if payload.skills:
        if mode.skills == ImportMode.REPLACE:
            await remove_tree(project_skills_dir(root))
        for skill in payload.skills:
            await upsert_skill(root, skill.name, skill.content, skill.description)

    if payload.commands:
        if mode.commands == ImportMode.REPLACE:
            await remove_tree(project_commands_dir(root))
        for command in payload.commands:
            await upsert_command(root, **_command_fields(command))

    logger.info(
        "Transfer: imported into {} (skills={}, commands={})",
        workspace.id,
        len(payload.skills),
        len(payload.commands),
    )


def _command_fields(command: CommandImport) -> dict[str, Any]:
    """Explicit fields, or fields recovered from a full markdown ``content``."""
    if not command.content:
        return {
            "name": command.name,
            "template": command.template,
            "description": command.description,
            "agent": command.agent,
            "model": command.model,
            "subtask": command.subtask,
        }

    data, body = parse_frontmatter(command.content)
    name = command.name or (data["name"] if isinstance(data.get("name"), str) else "")
    if not name:
        msg = "Command name is required"
        raise InvalidItemError(msg, code="invalid_command")

    def _text(key: str) -> str | None:
        value = data.get(key)
        return value if isinstance(value, str) else None

    return {
        "name": name,
        "template": body.strip(),
        "description": command.description or _text("description"),
        "agent": _text("agent"),
        "model": _text("model"),
        "subtask": data["subtask"] if isinstance(data.get("subtask"), bool) else None,
    }
