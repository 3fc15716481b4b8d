"""Health, status and capability endpoints."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version
from typing import Any

from fastapi import APIRouter, Request

from deskgate.control_plane.deps import ClientActor, Registry, Settings
from deskgate.control_plane.models.audit import now_ms

try:
    SERVER_VERSION = version("deskgate")
except PackageNotFoundError:  # running from a source checkout
    SERVER_VERSION = "0.0.0"

router = APIRouter(tags=["system"])


def _uptime_ms(request: Request) -> int:
    return now_ms() - request.app.state.started_at


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Liveness check.  No auth."""
    return {"ok": True, "version": SERVER_VERSION, "uptimeMs": _uptime_ms(request)}


@router.get("/status")
async def status(request: Request, _actor: ClientActor, settings: Settings, registry: Registry) -> dict[str, Any]:
    active = registry.active
    return {
        "ok": True,
        "version": SERVER_VERSION,
        "uptimeMs": _uptime_ms(request),
        "readOnly": settings.read_only,
        "approval": {"mode": settings.approval_mode, "timeoutMs": settings.approval_timeout_ms},
        "corsOrigins": settings.cors_origins,
        "workspaceCount": len(registry),
        "activeWorkspaceId": active.id if active else None,
        "workspace": active.serialize() if active else None,
        "authorizedRoots": registry.authorized_roots,
        "server": {
            "host": settings.host,
            "port": settings.port,
            "configPath": settings.config_path,
        },
        "tokenSource": {"client": settings.token_source, "host": settings.host_token_source},
    }


@router.get("/capabilities")
async def capabilities(_actor: ClientActor, settings: Settings) -> dict[str, Any]:
    write = not settings.read_only
    return {
        "skills": {"read": True, "write": write, "source": "openwork"},
        "plugins": {"read": True, "write": write},
        "mcp": {"read": True, "write": write},
        "commands": {"read": True, "write": write},
        "config": {"read": True, "write": write},
        "providers": {"read": True, "write": write},
    }
