"""File-backed stores for workspace config and provider credentials."""

from deskgate.control_plane.store.config import ConfigParseError, ConfigStore
from deskgate.control_plane.store.providers import InvalidProviderError, InvalidSecretError, ProviderStore

__all__ = ["ConfigParseError", "ConfigStore", "InvalidProviderError", "InvalidSecretError", "ProviderStore"]
