"""Pass-through to the engine HTTP API of the active workspace."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from deskgate.control_plane.deps import Engine, Registry, require_client

router = APIRouter(tags=["engine"], dependencies=[Depends(require_client)])

_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD"]


@router.api_route("/opencode", methods=_METHODS, include_in_schema=False)
@router.api_route("/opencode/{path:path}", methods=_METHODS, include_in_schema=False)
async def proxy_engine(request: Request, registry: Registry, engine: Engine) -> StreamingResponse:
    workspace = registry.active
    if workspace is not None and workspace.base_url:
        request.state.engine_base_url = workspace.base_url
    return await engine.proxy(request, workspace)
