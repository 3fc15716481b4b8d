"""Engine plugins.

Plugins come from the ``plugin`` list in the engine config and from plugin
files dropped into the project (or global) plugin directory.  Only the
config list is writable through the API.

Two specs name the same plugin when they match after dropping a trailing
``@version`` and ignoring case: ``Foo@1.0`` and ``foo@2`` are one plugin,
``@scope/pkg@1`` and ``@scope/pkg`` are one plugin.
"""

from __future__ import annotations

from functools import partial
from pathlib import Path
from typing import Any

from anyio import to_thread

from deskgate.control_plane.managers.validators import InvalidItemError
from deskgate.control_plane.store.config import ConfigStore, project_plugins_dir

GLOBAL_PLUGINS_DIR = Path("~/.config/opencode/plugins")
PLUGIN_EXTENSIONS = (".js", ".ts")
LOAD_ORDER = ["config.global", "config.project", "dir.global", "dir.project"]


def normalize_plugin_spec(spec: str) -> str:
    """Strip a trailing ``@version``; a leading ``@scope`` is kept."""
    spec = spec.strip()
    at = spec.find("@", 1) if spec.startswith("@") else spec.find("@")
    return spec[:at] if at > 0 else spec


def _plugin_key(spec: str) -> str:
    return normalize_plugin_spec(spec).lower()


def _config_plugins(config: dict[str, Any]) -> list[str]:
    value = config.get("plugin")
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [item for item in value if isinstance(item, str)]
    return []


async def list_plugins(store: ConfigStore, root: str | Path, *, include_global: bool = False) -> dict[str, Any]:
    config = await store.read_engine_config(root)
    items: list[dict[str, Any]] = [{"spec": spec, "source": "config", "scope": "project"} for spec in _config_plugins(config)]

    project_files = await to_thread.run_sync(partial(_plugin_files, project_plugins_dir(root)))
    items.extend({"spec": p.name, "source": "dir.project", "scope": "project", "path": str(p)} for p in project_files)

    if include_global:
        global_files = await to_thread.run_sync(partial(_plugin_files, GLOBAL_PLUGINS_DIR.expanduser()))
        items.extend({"spec": p.name, "source": "dir.global", "scope": "global", "path": str(p)} for p in global_files)

    return {"items": items, "loadOrder": LOAD_ORDER}


async def add_plugin(store: ConfigStore, root: str | Path, spec: str) -> bool:
    """Append ``spec`` to the config list.  Returns False if already present."""
    spec = spec.strip()
    if not spec:
        msg = "Plugin spec is required"
        raise InvalidItemError(msg)
    plugins = _config_plugins(await store.read_engine_config(root))
    key = _plugin_key(spec)
    if any(_plugin_key(existing) == key for existing in plugins):
        return False
    await store.patch_engine_config(root, {"plugin": [*plugins, spec]})
    return True


async def remove_plugin(store: ConfigStore, root: str | Path, name: str) -> bool:
    """Remove every config entry naming the same plugin as ``name``."""
    key = _plugin_key(name)
    plugins = _config_plugins(await store.read_engine_config(root))
    kept = [spec for spec in plugins if _plugin_key(spec) != key]
    if len(kept) == len(plugins):
        return False
    await store.patch_engine_config(root, {"plugin": kept})
    return True


def _plugin_files(directory: Path) -> list[Path]:
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.iterdir() if p.is_file() and p.suffix in PLUGIN_EXTENSIONS)
