"""Unit tests for the engine bridge URL helpers and reload call."""

from __future__ import annotations

import base64

import httpx
import pytest

from deskgate.control_plane.errors import ApiError
from deskgate.control_plane.models.enums import WorkspaceType
from deskgate.control_plane.models.workspace import Workspace
from deskgate.control_plane.proxy.engine import (
    EngineBridge,
    basic_auth_header,
    build_proxy_url,
    build_reload_url,
)


def _workspace(**fields: object) -> Workspace:
    values: dict[str, object] = {"id": "ws_1", "name": "p", "path": "/work/p", "base_url": "http://engine.test"}
    values.update(fields)
    return Workspace(**values)


def test_build_proxy_url_strips_prefix() -> None:
    assert build_proxy_url("http://engine.test/", "/opencode/session", "a=1") == "http://engine.test/session?a=1"
    assert build_proxy_url("http://engine.test", "/opencode", "") == "http://engine.test/"


def test_build_reload_url_carries_directory() -> None:
    url = build_reload_url("http://engine.test", "/work/my project")
    parsed = httpx.URL(url)
    assert parsed.path == "/instance/dispose"
    assert parsed.params["directory"] == "/work/my project"


def test_build_reload_url_rejects_garbage() -> None:
    with pytest.raises(ApiError) as excinfo:
        build_reload_url("not a url", None)
    assert excinfo.value.code == "opencode_url_invalid"


def test_basic_auth_header() -> None:
    assert basic_auth_header(_workspace()) is None
    header = basic_auth_header(_workspace(opencode_username="u", opencode_password="p"))
    assert header == "Basic " + base64.b64encode(b"u:p").decode()


async def test_reload_posts_dispose() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=True)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        await EngineBridge(client).reload(_workspace())

    assert seen[0].method == "POST"
    assert seen[0].url.path == "/instance/dispose"
    assert seen[0].url.params["directory"] == "/work/p"


async def test_reload_failure_carries_upstream_status() -> None:
    async with httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(500, json={"error": "boom"}))
    ) as client:
        with pytest.raises(ApiError) as excinfo:
            await EngineBridge(client).reload(_workspace())

    assert excinfo.value.status == 502
    assert excinfo.value.code == "opencode_reload_failed"
    assert excinfo.value.details == {"status": 500, "body": {"error": "boom"}}


async def test_reload_without_base_url() -> None:
    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200))) as client:
        with pytest.raises(ApiError) as excinfo:
            await EngineBridge(client).reload(_workspace(base_url=None, workspace_type=WorkspaceType.REMOTE))
    assert excinfo.value.code == "opencode_unconfigured"
