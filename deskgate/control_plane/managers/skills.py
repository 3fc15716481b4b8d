"""Skills: one ``SKILL.md`` per kebab-case directory.

Layout::

    {root}/.opencode/skills/{name}/SKILL.md       project scope
    ~/.config/opencode/skills/{name}/SKILL.md     global scope
"""

from __future__ import annotations

from functools import partial
from pathlib import Path
from typing import Any

from anyio import to_thread

from deskgate.control_plane.managers.frontmatter import has_frontmatter, parse_frontmatter, render_frontmatter
from deskgate.control_plane.managers.validators import validate_skill_name
from deskgate.control_plane.models.enums import TriggerAction
from deskgate.control_plane.store.config import project_skills_dir
from deskgate.control_plane.store.local import read_text, write_text

GLOBAL_SKILLS_DIR = Path("~/.config/opencode/skills")
SKILL_FILE = "SKILL.md"


def skill_path(root: str | Path, name: str) -> Path:
    return project_skills_dir(root) / name / SKILL_FILE


def describe(content: str) -> str:
    """Frontmatter ``description``, else the first non-empty body line."""
    data, body = parse_frontmatter(content)
    description = data.get("description")
    if isinstance(description, str) and description.strip():
        return description.strip()
    for line in body.splitlines():
        text = line.strip().lstrip("#").strip()
        if text:
            return text
    return ""


async def list_skills(root: str | Path, *, include_global: bool = False) -> list[dict[str, Any]]:
    items = await to_thread.run_sync(partial(_scan_skills, project_skills_dir(root), "project"))
    if include_global:
        items += await to_thread.run_sync(partial(_scan_skills, GLOBAL_SKILLS_DIR.expanduser(), "global"))
    return items


async def read_skill(path: str | Path) -> str:
    return await read_text(Path(path)) or ""


async def upsert_skill(
    root: str | Path,
    name: str,
    content: str,
    description: str | None = None,
) -> tuple[TriggerAction, Path]:
    """Write a project skill.  Content without frontmatter gets one added."""
    validate_skill_name(name)
    path = skill_path(root, name)
    action = TriggerAction.UPDATED if await read_text(path) is not None else TriggerAction.ADDED
    if not has_frontmatter(content):
        content = render_frontmatter({"name": name, "description": description}, content)
    await write_text(path, content if content.endswith("\n") else f"{content}\n")
    return action, path


def _scan_skills(directory: Path, scope: str) -> list[dict[str, Any]]:
    if not directory.is_dir():
        return []
    items = []
    for entry in sorted(directory.iterdir()):
        path = entry / SKILL_FILE
        if not path.is_file():
            continue
        content = path.read_text(encoding="utf-8", errors="replace")
        items.append({"name": entry.name, "path": str(path), "description": describe(content), "scope": scope})
    return items
