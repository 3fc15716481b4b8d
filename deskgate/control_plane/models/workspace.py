"""Workspace data model.

A workspace is a named, path-rooted project directory with its own engine
config, skills, commands and plugin set.  Workspaces come from startup
configuration only; the API can reorder them but never create or delete them.
"""

from __future__ import annotations

import hashlib
from pathlib import Path

from pydantic import Field

from deskgate.control_plane.models.base import WireModel
from deskgate.control_plane.models.enums import WorkspaceType


def workspace_id_for(path: str | Path) -> str:
    """Deterministic id derived from the canonical path."""
    digest = hashlib.sha256(str(path).encode("utf-8")).hexdigest()
    return f"ws_{digest[:12]}"


class Workspace(WireModel):
    """Workspace as held by the registry."""

    id: str
    name: str
    path: str
    workspace_type: WorkspaceType = WorkspaceType.LOCAL
    base_url: str | None = None
    directory: str | None = None
    opencode_username: str | None = Field(default=None, repr=False)
    opencode_password: str | None = Field(default=None, repr=False)

    @property
    def root(self) -> Path:
        return Path(self.path)

    def engine_directory(self) -> str | None:
        """Directory hint passed to the engine.

        Explicit ``directory`` wins; local workspaces fall back to their own
        path; remote workspaces without one get no hint.
        """
        explicit = (self.directory or "").strip()
        if explicit:
            return explicit
        if self.workspace_type == WorkspaceType.LOCAL:
            return self.path
        return None

    def serialize(self) -> dict:
        """Client-facing shape: engine connection details nested under ``opencode``."""
        data = {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "workspaceType": self.workspace_type.value,
            "baseUrl": self.base_url,
            "directory": self.directory,
        }
        directory = self.engine_directory()
        if self.base_url or directory or self.opencode_username or self.opencode_password:
            data["opencode"] = {
                key: value
                for key, value in {
                    "baseUrl": self.base_url,
                    "directory": directory,
                    "username": self.opencode_username,
                    "password": self.opencode_password,
                }.items()
                if value is not None
            }
        return {key: value for key, value in data.items() if value is not None}
