"""Tests for settings loading: env vars, the server file and token sources."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from deskgate.control_plane.settings import GatewaySettings, _split_list, get_settings


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("a, b,,c", ["a", "b", "c"]),
        ('["x", "y"]', ["x", "y"]),
        (["z"], ["z"]),
    ],
)
def test_split_list(value: object, expected: list[str]) -> None:
    assert _split_list(value) == expected


def test_server_file_fills_unset_fields(tmp_path: Path) -> None:
    project = tmp_path / "project"
    project.mkdir()
    server_file = tmp_path / "server.json"
    server_file.write_text(
        json.dumps(
            {
                "port": 9000,
                "readOnly": True,
                "token": "from-file",
                "approval": {"mode": "auto", "timeoutMs": 500},
                "workspaces": [{"path": "project", "name": "Main", "baseUrl": "http://engine.test"}],
                "authorizedRoots": ["."],
            }
        )
    )

    settings = GatewaySettings(config_path=str(server_file)).load_server_file()

    assert settings.port == 9000
    assert settings.read_only is True
    assert settings.approval_mode == "auto"
    assert settings.approval_timeout_ms == 500
    assert settings.token == "from-file"
    assert settings.token_source == "file"
    assert settings.host_token_source == "generated"
    assert settings.host_token
    (spec,) = settings.workspace_specs
    assert spec.path == str(project.resolve())
    assert spec.name == "Main"
    assert spec.base_url == "http://engine.test"
    assert settings.authorized_roots == [str(tmp_path.resolve())]


def test_env_wins_over_server_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    server_file = tmp_path / "server.json"
    server_file.write_text(json.dumps({"port": 9000, "token": "from-file", "corsOrigins": ["http://a.test"]}))
    monkeypatch.setenv("DESKGATE_CONFIG_PATH", str(server_file))
    monkeypatch.setenv("DESKGATE_PORT", "9100")
    monkeypatch.setenv("DESKGATE_TOKEN", "from-env")
    monkeypatch.setenv("DESKGATE_CORS_ORIGINS", "http://b.test,http://c.test")

    settings = get_settings()

    assert settings.port == 9100
    assert settings.token == "from-env"
    assert settings.token_source == "env"
    assert settings.cors_origins == ["http://b.test", "http://c.test"]
    assert get_settings() is settings


def test_engine_env_applies_to_first_workspace(tmp_path: Path) -> None:
    first, second = tmp_path / "a", tmp_path / "b"
    settings = GatewaySettings(
        config_path=str(tmp_path / "missing.json"),
        workspaces=[str(first), str(second)],
        opencode_base_url="http://engine.test",
        opencode_directory="/srv/a",
    ).load_server_file()

    assert [s.base_url for s in settings.workspace_specs] == ["http://engine.test", None]
    assert settings.workspace_specs[0].directory == "/srv/a"
