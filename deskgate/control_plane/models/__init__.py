"""Data models for the control plane."""

from deskgate.control_plane.models.api import (
    ApprovalReplyBody,
    ChatBody,
    CommandImport,
    CommandUpsert,
    ConfigPatch,
    ImageBody,
    ImportModes,
    ImportPayload,
    McpAdd,
    PluginAdd,
    ProviderCredentials,
    RegistryPut,
    SecretSet,
    SkillUpsert,
)
from deskgate.control_plane.models.approval import ApprovalRequest, ApprovalResult
from deskgate.control_plane.models.audit import Actor, AuditEntry
from deskgate.control_plane.models.enums import (
    ActorType,
    ApprovalMode,
    ApprovalOutcome,
    ApprovalReply,
    AuthTier,
    ImportMode,
    ReloadReason,
    TriggerAction,
    TriggerType,
    WorkspaceType,
)
from deskgate.control_plane.models.events import ReloadEvent, ReloadTrigger
from deskgate.control_plane.models.provider import (
    DefaultModels,
    ModelRef,
    ProviderDefaults,
    ProviderEntry,
    ProviderRegistry,
    ProviderSecret,
    ProviderSecrets,
)
from deskgate.control_plane.models.workspace import Workspace

__all__ = [
    # Audit
    "Actor",
    # Enums
    "ActorType",
    "ApprovalMode",
    "ApprovalOutcome",
    "ApprovalReply",
    # API schemas
    "ApprovalReplyBody",
    # Approvals
    "ApprovalRequest",
    "ApprovalResult",
    "AuditEntry",
    "AuthTier",
    "ChatBody",
    "CommandImport",
    "CommandUpsert",
    "ConfigPatch",
    # Providers
    "DefaultModels",
    "ImageBody",
    "ImportMode",
    "ImportModes",
    "ImportPayload",
    "McpAdd",
    "ModelRef",
    "PluginAdd",
    "ProviderCredentials",
    "ProviderDefaults",
    "ProviderEntry",
    "ProviderRegistry",
    "ProviderSecret",
    "ProviderSecrets",
    "RegistryPut",
    # Events
    "ReloadEvent",
    "ReloadReason",
    "ReloadTrigger",
    "SecretSet",
    "SkillUpsert",
    "TriggerAction",
    "TriggerType",
    # Workspace
    "Workspace",
    "WorkspaceType",
]
