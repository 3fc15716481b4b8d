"""CORS, preflight and request logging around every response.

Runs outside the routers so error envelopes, streamed provider responses
and proxied engine responses all get the same headers.  ``OPTIONS`` on any
path answers ``204`` without authentication.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

from fastapi import FastAPI, Request, Response
from loguru import logger

from deskgate.control_plane.errors import error_response, internal_error
from deskgate.control_plane.models.enums import AuthTier

ALLOW_HEADERS = "Authorization, Content-Type, X-OpenWork-Host-Token, X-OpenWork-Client-Id, X-OpenCode-Directory"
ALLOW_METHODS = "GET,POST,PUT,PATCH,DELETE,OPTIONS"


def allowed_origin(origin: str | None, configured: list[str]) -> str | None:
    """``*`` if wildcarded, the request origin if listed, else ``None``."""
    if "*" in configured:
        return "*"
    if origin and origin in configured:
        return origin
    return None


def apply_cors(response: Response, origin: str | None, configured: list[str]) -> Response:
    allow = allowed_origin(origin, configured)
    if allow is not None:
        response.headers["Access-Control-Allow-Origin"] = allow
        response.headers["Access-Control-Allow-Headers"] = ALLOW_HEADERS
        response.headers["Access-Control-Allow-Methods"] = ALLOW_METHODS
    vary = response.headers.get("Vary")
    if not vary:
        response.headers["Vary"] = "Origin"
    elif "origin" not in {part.strip().lower() for part in vary.split(",")}:
        response.headers["Vary"] = f"{vary}, Origin"
    return response


def _log_request(request: Request, response: Response, duration_ms: int) -> None:
    status = response.status_code
    level = "ERROR" if status >= 500 else "WARNING" if status >= 400 else "INFO"
    engine_url = getattr(request.state, "engine_base_url", None)
    logger.bind(
        method=request.method,
        path=request.url.path,
        status=status,
        duration_ms=duration_ms,
        auth=str(getattr(request.state, "auth_tier", AuthTier.NONE)),
        engine_base_url=engine_url,
    ).log(
        level,
        "{} {} {} {}ms{}",
        request.method,
        request.url.path,
        status,
        duration_ms,
        " (opencode)" if engine_url else "",
    )


def install_gateway_middleware(app: FastAPI) -> None:
    @app.middleware("http")
    async def gateway_middleware(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        started = time.perf_counter()
        if request.method == "OPTIONS":
            response = Response(status_code=204)
        else:
            try:
                response = await call_next(request)
            except Exception:
                logger.exception("Unhandled error on {} {}", request.method, request.url.path)
                response = error_response(internal_error())

        settings = request.app.state.settings
        apply_cors(response, request.headers.get("origin"), settings.cors_origins)
        if settings.log_requests:
            _log_request(request, response, int((time.perf_counter() - started) * 1000))
        return response
