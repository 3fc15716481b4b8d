"""Bridge to the local engine's own HTTP API.

``proxy`` forwards ``/opencode/*`` requests to the active workspace's engine
with the client's bearer stripped and engine credentials (Basic auth and the
directory hint) attached.  ``reload`` asks the engine to dispose the cached
instance for a workspace so the next request re-reads its config.
"""

from __future__ import annotations

import base64
import json
from urllib.parse import urlencode, urlsplit, urlunsplit

import httpx
from fastapi import Request
from fastapi.responses import StreamingResponse
from loguru import logger
from starlette.background import BackgroundTask

from deskgate.control_plane.auth import DIRECTORY_HEADER
from deskgate.control_plane.errors import ApiError
from deskgate.control_plane.models.workspace import Workspace

PROXY_PREFIX = "/opencode"

_HOP_BY_HOP = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "trailers",
        "transfer-encoding",
        "upgrade",
    }
)
_STRIPPED_REQUEST_HEADERS = _HOP_BY_HOP | {"authorization", "host", "origin", "content-length"}
_STRIPPED_RESPONSE_HEADERS = _HOP_BY_HOP | {"content-length"}


def _unconfigured() -> ApiError:
    return ApiError(400, "opencode_unconfigured", "OpenCode base URL is missing for this workspace")


def _invalid_url() -> ApiError:
    return ApiError(400, "opencode_url_invalid", "OpenCode base URL is invalid")


def basic_auth_header(workspace: Workspace) -> str | None:
    username = (workspace.opencode_username or "").strip()
    password = (workspace.opencode_password or "").strip()
    if not username or not password:
        return None
    token = base64.b64encode(f"{username}:{password}".encode()).decode("ascii")
    return f"Basic {token}"


def build_proxy_url(base_url: str, path: str, query: str) -> str:
    """Target URL: engine origin + client path without the proxy prefix."""
    parts = urlsplit(base_url.strip())
    if not parts.scheme or not parts.netloc:
        raise _invalid_url()
    trimmed = path.removeprefix(PROXY_PREFIX)
    if not trimmed.startswith("/"):
        trimmed = f"/{trimmed}"
    return urlunsplit((parts.scheme, parts.netloc, trimmed, query, ""))


def build_reload_url(base_url: str, directory: str | None) -> str:
    parts = urlsplit(base_url.strip())
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise _invalid_url()
    query = urlencode({"directory": directory}) if directory else ""
    return urlunsplit((parts.scheme, parts.netloc, "/instance/dispose", query, ""))


def _parse_body(text: str) -> object:
    trimmed = text.strip()
    if not trimmed:
        return None
    try:
        return json.loads(trimmed)
    except json.JSONDecodeError:
        return trimmed


class EngineBridge:
    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    # -- Reverse proxy ---------------------------------------------------------

    async def proxy(self, request: Request, workspace: Workspace | None) -> StreamingResponse:
        base_url = (workspace.base_url or "").strip() if workspace else ""
        if not workspace or not base_url:
            raise _unconfigured()

        target = build_proxy_url(base_url, request.url.path, request.url.query)
        headers = {
            key: value for key, value in request.headers.items() if key.lower() not in _STRIPPED_REQUEST_HEADERS
        }
        directory = workspace.engine_directory()
        if directory and DIRECTORY_HEADER not in request.headers:
            headers[DIRECTORY_HEADER] = directory
        auth = basic_auth_header(workspace)
        if auth:
            headers["Authorization"] = auth

        method = request.method.upper()
        content = None if method in ("GET", "HEAD") else request.stream()
        upstream_request = self._client.build_request(method, target, headers=headers, content=content)
        try:
            upstream = await self._client.send(upstream_request, stream=True)
        except httpx.RequestError as exc:
            logger.warning("Engine: proxy to {} failed: {}", target, exc)
            raise ApiError(502, "opencode_unreachable", "OpenCode engine is unreachable", {"error": str(exc)}) from None

        response_headers = {
            key: value
            for key, value in upstream.headers.items()
            if key.lower() not in _STRIPPED_RESPONSE_HEADERS and not key.lower().startswith("access-control-")
        }
        return StreamingResponse(
            upstream.aiter_raw(),
            status_code=upstream.status_code,
            headers=response_headers,
            background=BackgroundTask(upstream.aclose),
        )

    # -- Reload ----------------------------------------------------------------

    async def reload(self, workspace: Workspace) -> None:
        """Dispose the engine instance for ``workspace``.

        Raises ``502 opencode_reload_failed`` with the engine's status and body
        when the engine refuses.
        """
        base_url = (workspace.base_url or "").strip()
        if not base_url:
            raise _unconfigured()
        url = build_reload_url(base_url, workspace.engine_directory())
        headers = {}
        auth = basic_auth_header(workspace)
        if auth:
            headers["Authorization"] = auth

        try:
            response = await self._client.post(url, headers=headers)
        except httpx.RequestError as exc:
            raise ApiError(
                502,
                "opencode_reload_failed",
                "OpenCode reload failed",
                {"status": None, "body": str(exc)},
            ) from None
        if response.is_success:
            logger.info("Engine: reloaded instance for {}", workspace.id)
            return
        raise ApiError(
            502,
            "opencode_reload_failed",
            "OpenCode reload failed",
            {"status": response.status_code, "body": _parse_body(response.text)},
        )
