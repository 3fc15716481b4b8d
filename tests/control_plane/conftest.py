"""Fixtures for control-plane HTTP tests.

The app lifespan does NOT run under ``ASGITransport``, so each test wires
``app.state`` through ``init_state`` with a mock-transport upstream client.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable

import httpx
import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from deskgate.control_plane.app import app, init_state
from deskgate.control_plane.models.workspace import Workspace

Handler = Callable[[httpx.Request], httpx.Response]


class FakeUpstream:
    """Routes upstream requests to per-path handlers and records them."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Handler] = {}
        self.requests: list[httpx.Request] = []

    def on(self, method: str, path: str, handler: Handler) -> None:
        self.routes[(method.upper(), path)] = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"error": "no route"})
        return handler(request)


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
async def make_client(settings_factory, upstream: FakeUpstream):
    """Factory yielding an HTTP client for the app built from settings overrides."""
    opened: list[tuple[AsyncClient, httpx.AsyncClient]] = []

    async def _make(**overrides: object) -> AsyncClient:
        settings = settings_factory(**overrides)
        upstream_client = httpx.AsyncClient(transport=httpx.MockTransport(upstream))
        init_state(app, settings, upstream_client)
        app.state.provider_proxy._sleep = _no_sleep
        client = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
        opened.append((client, upstream_client))
        return client

    yield _make

    for client, upstream_client in opened:
        await client.aclose()
        await upstream_client.aclose()


@pytest.fixture
async def client(make_client) -> AsyncIterator[AsyncClient]:
    """Client for an auto-approving, writable gateway."""
    yield await make_client()


@pytest.fixture
def gateway() -> FastAPI:
    return app


@pytest.fixture
def workspace(gateway: FastAPI, client: AsyncClient) -> Workspace:
    """The active workspace of the ``client`` app.  Do not mix with ``make_client``."""
    return gateway.state.registry.active


async def _no_sleep(_seconds: float) -> None:
    return None
