"""Service configuration loaded from DESKGATE_* environment variables.

An optional JSON server file (``DESKGATE_CONFIG_PATH``) provides defaults for
the same fields; environment variables always win over the file.
"""

from __future__ import annotations

import json
import secrets
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

TokenSource = Literal["env", "file", "generated"]

DEFAULT_CONFIG_PATH = Path("~/.config/deskgate/server.json")


def _split_list(value: Any) -> Any:
    """Accept ``a,b,c`` strings as well as JSON lists for list settings."""
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.startswith("["):
            return json.loads(stripped)
        return [item.strip() for item in stripped.split(",") if item.strip()]
    return value


class WorkspaceSpec(BaseModel):
    """One workspace entry as written in the server file."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    path: str
    name: str | None = None
    workspace_type: Literal["local", "remote"] = Field(default="local", alias="workspaceType")
    base_url: str | None = Field(default=None, alias="baseUrl")
    directory: str | None = None
    opencode_username: str | None = Field(default=None, alias="opencodeUsername")
    opencode_password: str | None = Field(default=None, alias="opencodePassword")


class GatewaySettings(BaseSettings):
    """deskgate control-plane settings.

    All fields are read from environment variables with the ``DESKGATE_`` prefix.
    For example, ``DESKGATE_APPROVAL_MODE=auto`` maps to ``approval_mode``.

    Provider API keys are **not** managed here -- they live in the provider
    secrets file under ``provider_config_dir``.
    """

    model_config = SettingsConfigDict(
        env_prefix="DESKGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "INFO"
    log_format: Literal["text", "json"] = "text"
    log_requests: bool = True

    # -- Server ----------------------------------------------------------------
    host: str = "127.0.0.1"
    port: int = 8787
    config_path: str | None = None
    """Optional JSON server file; defaults to ``~/.config/deskgate/server.json``."""

    # -- Auth ------------------------------------------------------------------
    token: str | None = None
    """Client bearer token.  Auto-generated at startup if empty."""

    host_token: str | None = None
    """Host approval token.  Auto-generated at startup if empty."""

    # -- Approvals -------------------------------------------------------------
    approval_mode: Literal["manual", "auto"] = "manual"
    approval_timeout_ms: int = Field(default=30_000, ge=0)

    # -- Access ----------------------------------------------------------------
    cors_origins: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["*"])
    read_only: bool = False
    authorized_roots: Annotated[list[str], NoDecode] = Field(default_factory=list)

    # -- Workspaces ------------------------------------------------------------
    workspaces: Annotated[list[str], NoDecode] = Field(default_factory=list)
    """Workspace root paths; the first one is active at startup."""

    opencode_base_url: str | None = None
    opencode_directory: str | None = None

    # -- Providers -------------------------------------------------------------
    provider_config_dir: str = "~/.config/deskgate"
    image_poll_interval: float = 1.5
    image_poll_max_attempts: int = 40

    # -- Populated by ``load_server_file`` -------------------------------------
    workspace_specs: list[WorkspaceSpec] = Field(default_factory=list, exclude=True)
    token_source: TokenSource = "env"
    host_token_source: TokenSource = "env"

    @field_validator("cors_origins", "authorized_roots", "workspaces", mode="before")
    @classmethod
    def _coerce_lists(cls, value: Any) -> Any:
        return _split_list(value)

    # -- Helpers ---------------------------------------------------------------

    @property
    def resolved_config_path(self) -> Path:
        return Path(self.config_path).expanduser() if self.config_path else DEFAULT_CONFIG_PATH.expanduser()

    def load_server_file(self) -> GatewaySettings:
        """Merge the JSON server file into unset fields and resolve tokens.

        Returns a new settings object; the receiver is left untouched.
        """
        path = self.resolved_config_path
        file_config: dict[str, Any] = {}
        if path.is_file():
            file_config = json.loads(path.read_text(encoding="utf-8") or "{}")
        config_dir = path.parent

        explicit = self.model_fields_set
        updates: dict[str, Any] = {}

        for field, key in (
            ("host", "host"),
            ("port", "port"),
            ("cors_origins", "corsOrigins"),
            ("read_only", "readOnly"),
        ):
            if field not in explicit and key in file_config:
                updates[field] = file_config[key]

        approval = file_config.get("approval") or {}
        if "approval_mode" not in explicit and approval.get("mode") in ("manual", "auto"):
            updates["approval_mode"] = approval["mode"]
        if "approval_timeout_ms" not in explicit and isinstance(approval.get("timeoutMs"), int):
            updates["approval_timeout_ms"] = approval["timeoutMs"]

        if self.workspaces:
            specs = [WorkspaceSpec(path=p) for p in self.workspaces]
        else:
            specs = [
                WorkspaceSpec.model_validate(
                    {**item, "path": str((config_dir / Path(item["path"]).expanduser()).resolve())}
                )
                for item in file_config.get("workspaces", [])
                if isinstance(item, dict) and item.get("path")
            ]
        if specs and (self.opencode_base_url or self.opencode_directory):
            first = specs[0]
            specs[0] = first.model_copy(
                update={
                    "base_url": self.opencode_base_url or first.base_url,
                    "directory": self.opencode_directory or first.directory,
                }
            )
        updates["workspace_specs"] = specs

        if not self.authorized_roots and file_config.get("authorizedRoots"):
            updates["authorized_roots"] = [
                str((config_dir / Path(root).expanduser()).resolve()) for root in file_config["authorizedRoots"]
            ]

        token, token_source = _resolve_token(self.token, file_config.get("token"))
        host_token, host_token_source = _resolve_token(self.host_token, file_config.get("hostToken"))
        updates.update(
            token=token,
            token_source=token_source,
            host_token=host_token,
            host_token_source=host_token_source,
        )
        return self.model_copy(update=updates)


def _resolve_token(env_value: str | None, file_value: Any) -> tuple[str, TokenSource]:
    """Return the configured token or generate a random one."""
    if env_value:
        return env_value, "env"
    if isinstance(file_value, str) and file_value:
        return file_value, "file"
    return secrets.token_urlsafe(24), "generated"


def get_settings() -> GatewaySettings:
    """Return a cached settings instance.

    Reads from environment variables, ``.env`` and the server file on first
    call, then returns the same object.  Call ``_get_settings_cached.cache_clear()``
    in tests to force a re-read after overriding env vars.
    """
    return _get_settings_cached()


def _get_settings_cached() -> GatewaySettings:
    """Inner function wrapped by lru_cache (allows type-safe cache_clear)."""
    return GatewaySettings().load_server_file()


# Apply lru_cache at runtime so the function is only called once.
from functools import lru_cache  # noqa: E402

_get_settings_cached = lru_cache(maxsize=1)(_get_settings_cached)
