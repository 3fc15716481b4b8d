"""API request schemas.

These thin schemas sit between HTTP and the managers / proxies.  Validation
failures surface as ``400 invalid_payload`` through the app's exception
handlers.  Engine and app config bodies stay free-form dicts because their
shape belongs to the engine, not to us.
"""

from __future__ import annotations

from typing import Any

from pydantic import Field

from deskgate.control_plane.models.base import WireModel
from deskgate.control_plane.models.enums import ImportMode

# ---------------------------------------------------------------------------
# Workspace config
# ---------------------------------------------------------------------------


class ConfigPatch(WireModel):
    """Partial update; each top-level key of ``opencode`` is replaced in place."""

    opencode: dict[str, Any] | None = None
    openwork: dict[str, Any] | None = None


class PluginAdd(WireModel):
    spec: str = Field(min_length=1)


class McpAdd(WireModel):
    name: str
    config: dict[str, Any]


class SkillUpsert(WireModel):
    name: str
    content: str
    description: str | None = None


class CommandUpsert(WireModel):
    name: str
    template: str = ""
    description: str | None = None
    agent: str | None = None
    model: str | None = None
    subtask: bool | None = None


class CommandImport(CommandUpsert):
    """Imported command; ``content`` (markdown with frontmatter) wins over fields."""

    name: str = ""
    content: str | None = None


# ---------------------------------------------------------------------------
# Export / import
# ---------------------------------------------------------------------------


class ImportModes(WireModel):
    opencode: ImportMode = ImportMode.MERGE
    openwork: ImportMode = ImportMode.MERGE
    skills: ImportMode = ImportMode.MERGE
    commands: ImportMode = ImportMode.MERGE


class ImportPayload(WireModel):
    mode: ImportModes = Field(default_factory=ImportModes)
    opencode: dict[str, Any] | None = None
    openwork: dict[str, Any] | None = None
    skills: list[SkillUpsert] = Field(default_factory=list)
    commands: list[CommandImport] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Approvals
# ---------------------------------------------------------------------------


class ApprovalReplyBody(WireModel):
    reply: str = "deny"
    """``allow`` approves; anything else denies."""


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


class RegistryPut(WireModel):
    """Registry entries are normalised by the provider store, not here."""

    registry: dict[str, Any]


class SecretSet(WireModel):
    api_key: str = ""


class ProviderCredentials(WireModel):
    """Either a registered ``provider_id`` or explicit overrides (or both)."""

    provider_id: str | None = None
    base_url: str | None = None
    api_key: str | None = None


class ChatBody(ProviderCredentials):
    provider_id: str = Field(min_length=1)
    model: str = Field(min_length=1)
    messages: list[Any]
    temperature: float | None = None
    top_p: float | None = Field(default=None, alias="top_p")
    max_tokens: int | None = Field(default=None, alias="max_tokens")


class ImageBody(ProviderCredentials):
    provider_id: str = Field(min_length=1)
    prompt: str = Field(min_length=1)
    model: str | None = None
    size: str | None = None
    n: int | None = None
