"""Error envelope and exception handlers.

Every failure leaves the server as ``{"code", "message", "details"?}`` with a
status that matches the kind of failure.  Handlers raise ``ApiError``; the
handlers below translate framework errors into the same shape.
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from deskgate.control_plane.store.config import ConfigParseError


class ApiError(Exception):
    """An error with a stable machine-readable ``code``."""

    def __init__(self, status: int, code: str, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.status = status
        self.code = code
        self.message = message
        self.details = details

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body

    def __repr__(self) -> str:
        return f"ApiError({self.status}, {self.code!r}, {self.message!r})"


def error_response(error: ApiError) -> JSONResponse:
    return JSONResponse(jsonable_encoder(error.to_body()), status_code=error.status)


def internal_error() -> ApiError:
    return ApiError(500, "internal_error", "Unexpected server error")


# -- Handlers ------------------------------------------------------------------


async def _handle_api_error(_request: Request, exc: ApiError) -> JSONResponse:
    return error_response(exc)


async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if any(err.get("type") == "json_invalid" for err in errors):
        # deps imports this module.
        from deskgate.control_plane.deps import authenticate_route

        try:
            authenticate_route(request)
        except ApiError as auth_error:
            return error_response(auth_error)
        return error_response(ApiError(400, "invalid_json", "Invalid JSON body"))
    details = [{"loc": list(err.get("loc", ())), "msg": err.get("msg", "")} for err in errors]
    return error_response(ApiError(400, "invalid_payload", _first_message(errors), details))


async def _handle_config_parse_error(_request: Request, exc: ConfigParseError) -> JSONResponse:
    return error_response(ApiError(422, "invalid_json", str(exc), {"path": str(exc.path)}))


async def _handle_http_exception(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Unmatched paths and unmatched methods both surface as not_found.
    if exc.status_code in (404, 405):
        return error_response(ApiError(404, "not_found", "Not found"))
    return error_response(ApiError(exc.status_code, "http_error", str(exc.detail)))


def _first_message(errors: list[dict[str, Any]]) -> str:
    if not errors:
        return "Invalid payload"
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    msg = first.get("msg", "Invalid payload")
    return f"{field}: {msg}" if field else msg


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, _handle_api_error)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, _handle_http_exception)  # type: ignore[arg-type]
    app.add_exception_handler(ConfigParseError, _handle_config_parse_error)  # type: ignore[arg-type]
