"""Shared enumerations used across the control plane."""

from __future__ import annotations

from enum import StrEnum

# -- Auth --------------------------------------------------------------------


class AuthTier(StrEnum):
    """Credential a route demands."""

    NONE = "none"
    CLIENT = "client"
    HOST = "host"


class ActorType(StrEnum):
    HOST = "host"
    REMOTE = "remote"


# -- Workspace ---------------------------------------------------------------


class WorkspaceType(StrEnum):
    LOCAL = "local"
    REMOTE = "remote"


class ImportMode(StrEnum):
    """Per-section behaviour of a workspace import."""

    REPLACE = "replace"
    MERGE = "merge"


# -- Approvals ---------------------------------------------------------------


class ApprovalMode(StrEnum):
    MANUAL = "manual"
    AUTO = "auto"


class ApprovalOutcome(StrEnum):
    """Lifecycle of an approval request.  Only PENDING is non-terminal."""

    PENDING = "pending"
    ALLOWED = "allowed"
    DENIED = "denied"
    TIMED_OUT = "timedOut"


class ApprovalReply(StrEnum):
    ALLOW = "allow"
    DENY = "deny"


# -- Reload events -----------------------------------------------------------


class ReloadReason(StrEnum):
    CONFIG = "config"
    PLUGINS = "plugins"
    SKILLS = "skills"
    MCP = "mcp"


class TriggerType(StrEnum):
    CONFIG = "config"
    PLUGIN = "plugin"
    SKILL = "skill"
    MCP = "mcp"


class TriggerAction(StrEnum):
    ADDED = "added"
    REMOVED = "removed"
    UPDATED = "updated"
