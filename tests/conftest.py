"""Shared test fixtures: temporary workspaces and gateway settings.

Nothing here needs the network or a running engine.  Upstream HTTP traffic
(engine and providers) goes through ``httpx.MockTransport`` handlers set up
by the individual test packages.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

import pytest

from deskgate.control_plane.settings import GatewaySettings, _get_settings_cached

CLIENT_TOKEN = "client-token"
HOST_TOKEN = "host-token"
ENGINE_URL = "http://engine.test"


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Drop DESKGATE_* vars from the developer's shell for every test."""
    for key in list(os.environ):
        if key.startswith("DESKGATE_"):
            monkeypatch.delenv(key)
    _get_settings_cached.cache_clear()
    yield
    _get_settings_cached.cache_clear()


@pytest.fixture
def workspace_root(tmp_path: Path) -> Path:
    root = tmp_path / "work" / "project"
    root.mkdir(parents=True)
    return root


@pytest.fixture
def settings_factory(tmp_path: Path, workspace_root: Path):
    """Build settings for one test; keyword overrides win."""

    def _make(**overrides: object) -> GatewaySettings:
        values: dict[str, object] = {
            "token": CLIENT_TOKEN,
            "host_token": HOST_TOKEN,
            "approval_mode": "auto",
            "approval_timeout_ms": 30_000,
            "workspaces": [str(workspace_root)],
            "opencode_base_url": ENGINE_URL,
            "provider_config_dir": str(tmp_path / "providers"),
            "config_path": str(tmp_path / "server.json"),
            "log_requests": False,
        }
        values.update(overrides)
        return GatewaySettings(**values).load_server_file()

    return _make


@pytest.fixture
def client_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {CLIENT_TOKEN}"}


@pytest.fixture
def host_headers() -> dict[str, str]:
    return {"X-OpenWork-Host-Token": HOST_TOKEN}
