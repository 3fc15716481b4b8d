"""Workspace config files.

Layout under a workspace root::

    {root}/opencode.jsonc | opencode.json        engine config (JSONC)
    {root}/.opencode/openwork.json               app config (plain JSON)
    {root}/.opencode/skills/{name}/SKILL.md
    {root}/.opencode/commands/{name}.md
    {root}/.opencode/plugins/*.js|*.ts

Engine config writes are surgical: patching a top-level key rewrites only
that key's value text so hand-written comments survive.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from loguru import logger

from deskgate.control_plane.store import jsonc
from deskgate.control_plane.store.local import read_text, write_text

ENGINE_CONFIG_NAMES = ("opencode.jsonc", "opencode.json")


class ConfigParseError(ValueError):
    """Raised when a config file exists but cannot be parsed."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Failed to parse {path.name}: {reason}")
        self.path = path


# -- Paths ---------------------------------------------------------------------


def engine_config_path(root: str | Path) -> Path:
    """``opencode.jsonc`` if present, otherwise ``opencode.json``."""
    root = Path(root)
    preferred = root / ENGINE_CONFIG_NAMES[0]
    return preferred if preferred.exists() else root / ENGINE_CONFIG_NAMES[1]


def app_config_path(root: str | Path) -> Path:
    return Path(root) / ".opencode" / "openwork.json"


def project_skills_dir(root: str | Path) -> Path:
    return Path(root) / ".opencode" / "skills"


def project_commands_dir(root: str | Path) -> Path:
    return Path(root) / ".opencode" / "commands"


def project_plugins_dir(root: str | Path) -> Path:
    return Path(root) / ".opencode" / "plugins"


# -- Store ---------------------------------------------------------------------


async def _read_config_text(path: Path) -> str | None:
    try:
        return await read_text(path)
    except UnicodeDecodeError:
        raise ConfigParseError(path, "file is not valid UTF-8") from None


class ConfigStore:
    """Reads and writes the engine and app config of a workspace root.

    No cross-process locking: a single desktop writer is assumed.  Each
    individual file write is atomic.
    """

    # -- Engine config ---------------------------------------------------------

    async def read_engine_config(self, root: str | Path) -> dict[str, Any]:
        path = engine_config_path(root)
        text = await _read_config_text(path)
        if text is None:
            return {}
        try:
            data = jsonc.loads(text)
        except jsonc.JsoncError as exc:
            raise ConfigParseError(path, str(exc)) from None
        if not isinstance(data, dict):
            raise ConfigParseError(path, "top-level value must be an object")
        return data

    async def patch_engine_config(self, root: str | Path, partial: dict[str, Any]) -> Path:
        """Replace the given top-level keys, leaving the rest of the text intact."""
        path = engine_config_path(root)
        text = await _read_config_text(path) or ""
        try:
            updated = jsonc.update_top_level(text, partial)
        except jsonc.JsoncError as exc:
            raise ConfigParseError(path, str(exc)) from None
        if updated != text:
            await write_text(path, updated)
            logger.debug("Config: patched {} keys={}", path, sorted(partial))
        return path

    async def replace_engine_config(self, root: str | Path, data: dict[str, Any]) -> Path:
        path = engine_config_path(root)
        await write_text(path, jsonc.dumps(data))
        logger.debug("Config: replaced {}", path)
        return path

    # -- App config ------------------------------------------------------------

    async def read_app_config(self, root: str | Path) -> dict[str, Any]:
        path = app_config_path(root)
        text = await _read_config_text(path)
        if text is None:
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigParseError(path, exc.msg) from None
        if not isinstance(data, dict):
            raise ConfigParseError(path, "top-level value must be an object")
        return data

    async def write_app_config(self, root: str | Path, payload: dict[str, Any], *, merge: bool) -> Path:
        """Shallow-merge ``payload`` into the app config, or replace it outright."""
        path = app_config_path(root)
        data = {**(await self.read_app_config(root)), **payload} if merge else payload
        await write_text(path, json.dumps(data, indent=2, ensure_ascii=False) + "\n")
        logger.debug("Config: wrote {} (merge={})", path, merge)
        return path
