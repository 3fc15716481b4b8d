"""Name and payload checks shared by the workspace collaborators."""

from __future__ import annotations

import re
from typing import Any

_MCP_NAME_RE = re.compile(r"^[A-Za-z0-9_.-]+$")
_SKILL_NAME_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


class InvalidItemError(ValueError):
    """Raised when a plugin / MCP / skill / command payload is rejected."""

    def __init__(self, message: str, code: str = "invalid_payload") -> None:
        super().__init__(message)
        self.code = code


def validate_mcp_name(name: str) -> str:
    if not name or name.startswith("-") or not _MCP_NAME_RE.match(name):
        msg = "MCP name must use letters, digits, '.', '_' or '-' and not start with '-'"
        raise InvalidItemError(msg)
    return name


def validate_mcp_config(config: dict[str, Any]) -> dict[str, Any]:
    kind = config.get("type")
    if kind == "local":
        command = config.get("command")
        if not isinstance(command, list) or not command or not all(isinstance(c, str) and c for c in command):
            msg = "Local MCP config requires a non-empty command list"
            raise InvalidItemError(msg)
    elif kind == "remote":
        url = config.get("url")
        if not isinstance(url, str) or not url.strip():
            msg = "Remote MCP config requires a url"
            raise InvalidItemError(msg)
    else:
        msg = "MCP config type must be 'local' or 'remote'"
        raise InvalidItemError(msg)
    return config


def validate_skill_name(name: str) -> str:
    if not _SKILL_NAME_RE.match(name or ""):
        msg = "Skill name must be kebab-case (lowercase letters, digits and single dashes)"
        raise InvalidItemError(msg)
    return name


def sanitize_command_name(name: str) -> str:
    """``/Deploy Prod!`` -> ``Deploy-Prod``.  Raises if nothing usable is left."""
    cleaned = name.strip().lstrip("/")
    cleaned = re.sub(r"\s+", "-", cleaned)
    cleaned = re.sub(r"[^A-Za-z0-9_-]", "", cleaned)
    cleaned = re.sub(r"-{2,}", "-", cleaned).strip("-")
    if not cleaned:
        msg = "Command name is required"
        raise InvalidItemError(msg, code="invalid_command")
    return cleaned
