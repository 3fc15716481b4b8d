"""Slash commands stored as markdown templates with YAML frontmatter.

Layout::

    {root}/.opencode/commands/{name}.md       workspace scope
    ~/.config/opencode/commands/{name}.md     global scope

Frontmatter keys: ``description``, ``agent``, ``model``, ``subtask``.  The
body is the prompt template.
"""

from __future__ import annotations

from functools import partial
from pathlib import Path
from typing import Any, Literal

from anyio import to_thread

from deskgate.control_plane.managers.frontmatter import parse_frontmatter, render_frontmatter
from deskgate.control_plane.managers.validators import sanitize_command_name
from deskgate.control_plane.store.config import project_commands_dir
from deskgate.control_plane.store.local import remove_file, write_text

GLOBAL_COMMANDS_DIR = Path("~/.config/opencode/commands")

CommandScope = Literal["workspace", "global"]


class CommandNotFoundError(LookupError):
    """Raised when deleting a command file that does not exist."""


def commands_dir(root: str | Path, scope: CommandScope = "workspace") -> Path:
    return GLOBAL_COMMANDS_DIR.expanduser() if scope == "global" else project_commands_dir(root)


def command_path(root: str | Path, name: str) -> Path:
    return project_commands_dir(root) / f"{sanitize_command_name(name)}.md"


def parse_command(name: str, text: str, scope: CommandScope) -> dict[str, Any]:
    data, body = parse_frontmatter(text)
    item: dict[str, Any] = {"name": name, "template": body.strip(), "scope": scope}
    for key in ("description", "agent", "model"):
        value = data.get(key)
        if isinstance(value, str):
            item[key] = value
    if isinstance(data.get("subtask"), bool):
        item["subtask"] = data["subtask"]
    return item


async def list_commands(root: str | Path, scope: CommandScope = "workspace") -> list[dict[str, Any]]:
    return await to_thread.run_sync(partial(_scan_commands, commands_dir(root, scope), scope))


async def upsert_command(
    root: str | Path,
    *,
    name: str,
    template: str,
    description: str | None = None,
    agent: str | None = None,
    model: str | None = None,
    subtask: bool | None = None,
) -> Path:
    path = command_path(root, name)
    text = render_frontmatter(
        {"description": description, "agent": agent, "model": model, "subtask": subtask},
        template,
    )
    await write_text(path, text)
    return path


async def delete_command(root: str | Path, name: str) -> Path:
    path = command_path(root, name)
    if not await remove_file(path):
        raise CommandNotFoundError(name)
    return path


def _scan_commands(directory: Path, scope: CommandScope) -> list[dict[str, Any]]:
    if not directory.is_dir():
        return []
    return [
        parse_command(path.stem, path.read_text(encoding="utf-8", errors="replace"), scope)
        for path in sorted(directory.glob("*.md"))
        if path.is_file()
    ]
