"""In-process workspace registry.

Holds the ordered workspace list loaded at startup (first entry is active)
and the authorized roots that bound every workspace path.  Ephemeral --
activation order is lost on restart; the server file stays the source of
truth.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from deskgate.control_plane.models.enums import WorkspaceType
from deskgate.control_plane.models.workspace import Workspace, workspace_id_for

if TYPE_CHECKING:
    from deskgate.control_plane.settings import GatewaySettings, WorkspaceSpec


class WorkspaceNotFoundError(LookupError):
    """Raised when no workspace has the requested id."""


class WorkspaceUnauthorizedError(PermissionError):
    """Raised when a workspace path falls outside every authorized root."""


def canonical_path(path: str | Path) -> Path:
    return Path(path).expanduser().resolve()


def is_authorized(path: str | Path, roots: list[str]) -> bool:
    """True when ``path`` equals a root or sits below one.

    Containment is checked per path component, so ``/work`` does not
    authorize ``/workspace-other``.
    """
    candidate = canonical_path(path)
    for root in roots:
        resolved_root = canonical_path(root)
        if candidate == resolved_root or candidate.is_relative_to(resolved_root):
            return True
    return False


def workspace_from_spec(spec: WorkspaceSpec) -> Workspace:
    path = canonical_path(spec.path)
    return Workspace(
        id=workspace_id_for(path),
        name=(spec.name or "").strip() or path.name or str(path),
        path=str(path),
        workspace_type=WorkspaceType(spec.workspace_type),
        base_url=(spec.base_url or "").strip() or None,
        directory=(spec.directory or "").strip() or None,
        opencode_username=spec.opencode_username,
        opencode_password=spec.opencode_password,
    )


class WorkspaceRegistry:
    """Ordered workspaces plus the authorization boundary.

    The API may reorder workspaces (``activate``) but never adds or
    removes them.
    """

    def __init__(self, workspaces: list[Workspace], authorized_roots: list[str] | None = None) -> None:
        self._workspaces = list(workspaces)
        if authorized_roots:
            self._roots = [str(canonical_path(root)) for root in authorized_roots]
        else:
            self._roots = [w.path for w in self._workspaces]

    @classmethod
    def from_settings(cls, settings: GatewaySettings) -> WorkspaceRegistry:
        workspaces = [workspace_from_spec(spec) for spec in settings.workspace_specs]
        return cls(workspaces, settings.authorized_roots)

    # -- Query -----------------------------------------------------------------

    @property
    def authorized_roots(self) -> list[str]:
        return list(self._roots)

    @property
    def active(self) -> Workspace | None:
        return self._workspaces[0] if self._workspaces else None

    def all(self) -> list[Workspace]:
        return list(self._workspaces)

    def get(self, workspace_id: str) -> Workspace | None:
        return next((w for w in self._workspaces if w.id == workspace_id), None)

    def __len__(self) -> int:
        return len(self._workspaces)

    # -- Authorization ---------------------------------------------------------

    def resolve(self, workspace_id: str) -> Workspace:
        """Return the workspace with its canonical path.

        Raises ``WorkspaceNotFoundError`` for unknown ids and
        ``WorkspaceUnauthorizedError`` when the path escapes every root.
        """
        workspace = self.get(workspace_id)
        if workspace is None:
            raise WorkspaceNotFoundError(workspace_id)
        path = canonical_path(workspace.path)
        if not is_authorized(path, self._roots):
            logger.warning("Registry: workspace {} at {} is outside authorized roots", workspace_id, path)
            raise WorkspaceUnauthorizedError(workspace_id)
        return workspace.model_copy(update={"path": str(path)})

    # -- Mutation --------------------------------------------------------------

    def activate(self, workspace_id: str) -> Workspace:
        """Move a workspace to the front of the list and return it."""
        workspace = self.resolve(workspace_id)
        self._workspaces = [workspace, *(w for w in self._workspaces if w.id != workspace.id)]
        logger.info("Registry: activated workspace {} ({})", workspace.id, workspace.path)
        return workspace
