"""FastAPI dependency injection for auth, shared services and workspaces.

Usage in route handlers::

    @router.get("/things")
    async def list_things(actor: ClientActor, workspace: ResolvedWorkspace) -> dict:
        ...

    @router.post("/things", dependencies=[Writable])
    async def add_thing(body: ThingAdd, write: WriteContext) -> dict:
        await write.approve("things.add", f"Add {body.name}", paths)
        ...

Services live on ``app.state`` (set up in the lifespan, or pre-set by tests).
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Annotated, Any

from fastapi import Depends, Request
from fastapi.dependencies.models import Dependant

from deskgate.control_plane.approvals import ApprovalService
from deskgate.control_plane.audit import AuditLog
from deskgate.control_plane.auth import CLIENT_ID_HEADER, HOST_TOKEN_HEADER, authenticate_client, authenticate_host
from deskgate.control_plane.errors import ApiError
from deskgate.control_plane.events import ReloadEventStore
from deskgate.control_plane.managers.scheduler import JobScheduler
from deskgate.control_plane.models.audit import Actor
from deskgate.control_plane.models.enums import AuthTier, ReloadReason
from deskgate.control_plane.models.events import ReloadEvent, ReloadTrigger
from deskgate.control_plane.models.workspace import Workspace
from deskgate.control_plane.proxy.engine import EngineBridge
from deskgate.control_plane.proxy.providers import ProviderProxy
from deskgate.control_plane.registry import WorkspaceNotFoundError, WorkspaceRegistry, WorkspaceUnauthorizedError
from deskgate.control_plane.settings import GatewaySettings
from deskgate.control_plane.store.config import ConfigStore
from deskgate.control_plane.store.providers import ProviderStore

# -- Services ------------------------------------------------------------------


async def get_gateway_settings(request: Request) -> GatewaySettings:
    return request.app.state.settings


async def get_registry(request: Request) -> WorkspaceRegistry:
    return request.app.state.registry


async def get_config_store(request: Request) -> ConfigStore:
    return request.app.state.config_store


async def get_audit_log(request: Request) -> AuditLog:
    return request.app.state.audit


async def get_reload_events(request: Request) -> ReloadEventStore:
    return request.app.state.reload_events


async def get_approvals(request: Request) -> ApprovalService:
    return request.app.state.approvals


async def get_provider_store(request: Request) -> ProviderStore:
    return request.app.state.provider_store


async def get_provider_proxy(request: Request) -> ProviderProxy:
    return request.app.state.provider_proxy


async def get_engine(request: Request) -> EngineBridge:
    return request.app.state.engine


async def get_scheduler(request: Request) -> JobScheduler:
    return request.app.state.scheduler


Settings = Annotated[GatewaySettings, Depends(get_gateway_settings)]
Registry = Annotated[WorkspaceRegistry, Depends(get_registry)]
Configs = Annotated[ConfigStore, Depends(get_config_store)]
Audit = Annotated[AuditLog, Depends(get_audit_log)]
ReloadEvents = Annotated[ReloadEventStore, Depends(get_reload_events)]
Approvals = Annotated[ApprovalService, Depends(get_approvals)]
Providers = Annotated[ProviderStore, Depends(get_provider_store)]
ProviderGateway = Annotated[ProviderProxy, Depends(get_provider_proxy)]
Engine = Annotated[EngineBridge, Depends(get_engine)]
Scheduler = Annotated[JobScheduler, Depends(get_scheduler)]

# -- Auth ----------------------------------------------------------------------


async def require_client(request: Request, settings: Settings) -> Actor:
    """Bearer-token tier.  Records the tier for request logging."""
    request.state.auth_tier = AuthTier.CLIENT
    return authenticate_client(
        request.headers.get("authorization"),
        request.headers.get(CLIENT_ID_HEADER),
        settings.token,
    )


async def require_host(request: Request, settings: Settings) -> Actor:
    """Host-token tier: only the operator on this machine holds the token."""
    request.state.auth_tier = AuthTier.HOST
    return authenticate_host(request.headers.get(HOST_TOKEN_HEADER), settings.host_token)


def _auth_checks(dependant: Dependant) -> set[Callable[..., Any]]:
    found: set[Callable[..., Any]] = set()
    for sub in dependant.dependencies:
        if sub.call in (require_client, require_host):
            found.add(sub.call)
        found |= _auth_checks(sub)
    return found


def authenticate_route(request: Request) -> None:
    """Apply the matched route's auth tiers without resolving its dependencies.

    FastAPI decodes a JSON body before it resolves dependencies, so a body
    that fails to decode reaches the error handler ahead of any credential
    check.  The handler calls this first.
    """
    dependant = getattr(request.scope.get("route"), "dependant", None)
    if dependant is None:
        return
    checks = _auth_checks(dependant)
    settings: GatewaySettings = request.app.state.settings
    if require_client in checks:
        authenticate_client(request.headers.get("authorization"), request.headers.get(CLIENT_ID_HEADER), settings.token)
    if require_host in checks:
        authenticate_host(request.headers.get(HOST_TOKEN_HEADER), settings.host_token)


async def ensure_writable(settings: Settings) -> None:
    if settings.read_only:
        raise ApiError(403, "read_only", "Server is read-only")


ClientActor = Annotated[Actor, Depends(require_client)]
"""Annotated dependency: authenticated remote client."""

HostActor = Annotated[Actor, Depends(require_host)]
"""Annotated dependency: authenticated host operator."""

Writable = Depends(ensure_writable)
"""Route-level dependency rejecting mutations on a read-only server."""

# -- Workspaces ----------------------------------------------------------------


async def resolve_workspace(workspace_id: str, registry: Registry) -> Workspace:
    try:
        return registry.resolve(workspace_id)
    except WorkspaceNotFoundError:
        raise ApiError(404, "workspace_not_found", "Workspace not found") from None
    except WorkspaceUnauthorizedError:
        raise ApiError(403, "workspace_unauthorized", "Workspace is not authorized") from None


ResolvedWorkspace = Annotated[Workspace, Depends(resolve_workspace)]
"""Annotated dependency: the ``{workspace_id}`` path param, authorized and canonicalised."""


async def require_approval(
    approvals: ApprovalService,
    *,
    workspace: Workspace,
    actor: Actor,
    action: str,
    summary: str,
    paths: list[str],
) -> None:
    """Block until the write is approved.  Raises ``403 write_denied`` otherwise."""
    result = await approvals.request_approval(
        workspace_id=workspace.id,
        action=action,
        summary=summary,
        paths=paths,
        actor=actor,
    )
    if not result.allowed:
        raise ApiError(403, "write_denied", "Write request denied", {"requestId": result.id, "reason": result.reason})


class WorkspaceWrite:
    """Approval, audit and reload plumbing for one mutating workspace request."""

    def __init__(
        self,
        workspace: Workspace,
        actor: Actor,
        approvals: ApprovalService,
        audit: AuditLog,
        events: ReloadEventStore,
    ) -> None:
        self.workspace = workspace
        self.actor = actor
        self._approvals = approvals
        self._audit = audit
        self._events = events

    @property
    def root(self) -> str:
        return self.workspace.path

    async def approve(self, action: str, summary: str, paths: list[str]) -> None:
        await require_approval(
            self._approvals,
            workspace=self.workspace,
            actor=self.actor,
            action=action,
            summary=summary,
            paths=paths,
        )

    async def audit(self, action: str, target: str, summary: str) -> None:
        await self._audit.record(self.workspace, self.actor, action=action, target=target, summary=summary)

    def reload(self, reason: ReloadReason, trigger: ReloadTrigger | None = None) -> ReloadEvent:
        return self._events.record(self.workspace.id, reason, trigger)


async def get_workspace_write(
    workspace: ResolvedWorkspace,
    actor: ClientActor,
    approvals: Approvals,
    audit: Audit,
    events: ReloadEvents,
) -> WorkspaceWrite:
    return WorkspaceWrite(workspace, actor, approvals, audit, events)


WriteContext = Annotated[WorkspaceWrite, Depends(get_workspace_write)]
"""Annotated dependency: gate helpers bound to the resolved workspace and actor."""
