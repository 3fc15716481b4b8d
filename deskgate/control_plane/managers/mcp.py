"""MCP connectors declared under the ``mcp`` key of the engine config."""

from __future__ import annotations

from fnmatch import fnmatchcase
from pathlib import Path
from typing import Any

from deskgate.control_plane.managers.validators import validate_mcp_config, validate_mcp_name
from deskgate.control_plane.models.enums import TriggerAction
from deskgate.control_plane.store.config import ConfigStore


def _mcp_map(config: dict[str, Any]) -> dict[str, Any]:
    value = config.get("mcp")
    return dict(value) if isinstance(value, dict) else {}


def _denied_patterns(config: dict[str, Any]) -> list[str]:
    tools = config.get("tools")
    if not isinstance(tools, dict):
        return []
    deny = tools.get("deny")
    if not isinstance(deny, list):
        return []
    return [item for item in deny if isinstance(item, str)]


def is_disabled_by_tools(config: dict[str, Any], name: str) -> bool:
    """True when a ``tools.deny`` glob covers the connector's tools."""
    patterns = _denied_patterns(config)
    if not patterns:
        return False
    candidates = (f"mcp.{name}", f"mcp.{name}.*", f"mcp:{name}", f"mcp:{name}:*", "mcp.*", "mcp:*")
    return any(fnmatchcase(candidate, pattern) for pattern in patterns for candidate in candidates)


async def list_mcp(store: ConfigStore, root: str | Path) -> list[dict[str, Any]]:
    config = await store.read_engine_config(root)
    items = []
    for name, entry in _mcp_map(config).items():
        item: dict[str, Any] = {"name": name, "config": entry, "source": "config.project"}
        if is_disabled_by_tools(config, name):
            item["disabledByTools"] = True
        items.append(item)
    return items


async def add_mcp(store: ConfigStore, root: str | Path, name: str, config: dict[str, Any]) -> TriggerAction:
    """Insert or overwrite a connector.  Returns ``added`` or ``updated``."""
    validate_mcp_name(name)
    validate_mcp_config(config)
    servers = _mcp_map(await store.read_engine_config(root))
    action = TriggerAction.UPDATED if name in servers else TriggerAction.ADDED
    servers[name] = config
    await store.patch_engine_config(root, {"mcp": servers})
    return action


async def remove_mcp(store: ConfigStore, root: str | Path, name: str) -> bool:
    servers = _mcp_map(await store.read_engine_config(root))
    if name not in servers:
        return False
    del servers[name]
    await store.patch_engine_config(root, {"mcp": servers})
    return True
