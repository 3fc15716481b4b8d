"""Provider registry and secrets files.

Layout::

    {config_dir}/providers.json     registry (safe to show to clients)
    {config_dir}/secrets.json       API keys, mode 0600, host-only

A missing registry reads as the built-in default registry.  Every write
stamps ``updatedAt`` and re-normalises the whole document.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import ValidationError

from deskgate.control_plane.models.audit import now_ms
from deskgate.control_plane.models.provider import (
    DEFAULT_REGISTRY,
    ProviderEntry,
    ProviderRegistry,
    ProviderSecret,
    ProviderSecrets,
)
from deskgate.control_plane.store.local import read_text, write_text

SECRETS_MODE = 0o600


class InvalidProviderError(ValueError):
    """Raised when a registry document or entry fails normalisation."""


class InvalidSecretError(ValueError):
    """Raised when a secret is set without a provider id or key."""


class ProviderStore:
    def __init__(self, config_dir: str | Path) -> None:
        self._dir = Path(config_dir).expanduser()

    @property
    def config_dir(self) -> Path:
        return self._dir

    @property
    def registry_path(self) -> Path:
        return self._dir / "providers.json"

    @property
    def secrets_path(self) -> Path:
        return self._dir / "secrets.json"

    # -- Registry --------------------------------------------------------------

    async def read_registry(self) -> ProviderRegistry:
        data = await _read_json(self.registry_path)
        if data is None:
            return DEFAULT_REGISTRY.model_copy(deep=True)
        return _validate_registry(data)

    async def write_registry(self, data: dict[str, Any] | ProviderRegistry) -> ProviderRegistry:
        registry = data if isinstance(data, ProviderRegistry) else _validate_registry(data)
        registry = registry.model_copy(update={"updated_at": now_ms()})
        await write_text(self.registry_path, _dump(registry.to_wire()))
        logger.info("Providers: wrote registry ({} providers)", len(registry.providers))
        return registry

    async def upsert_provider(self, entry: dict[str, Any] | ProviderEntry) -> ProviderRegistry:
        try:
            provider = entry if isinstance(entry, ProviderEntry) else ProviderEntry.model_validate(entry)
        except ValidationError as exc:
            raise InvalidProviderError(_first_error(exc)) from None
        registry = await self.read_registry()
        providers = [p for p in registry.providers if p.id != provider.id]
        providers.append(provider)
        providers.sort(key=lambda p: p.name.lower())
        return await self.write_registry(registry.model_copy(update={"providers": providers}))

    async def remove_provider(self, provider_id: str) -> ProviderRegistry:
        """Drop a provider and every default that points at it."""
        provider_id = provider_id.strip()
        registry = await self.read_registry()
        providers = [p for p in registry.providers if p.id != provider_id]
        defaults = registry.defaults.without_provider(provider_id) if registry.defaults else None
        return await self.write_registry(registry.model_copy(update={"providers": providers, "defaults": defaults}))

    # -- Secrets ---------------------------------------------------------------

    async def read_secrets(self) -> ProviderSecrets:
        data = await _read_json(self.secrets_path)
        if data is None:
            return ProviderSecrets()
        try:
            return ProviderSecrets.model_validate(data)
        except ValidationError:
            logger.warning("Providers: ignoring malformed secrets file {}", self.secrets_path)
            return ProviderSecrets()

    async def set_secret(self, provider_id: str, api_key: str) -> ProviderSecrets:
        provider_id, api_key = provider_id.strip(), api_key.strip()
        if not provider_id or not api_key:
            msg = "Provider id and apiKey are required"
            raise InvalidSecretError(msg)
        secrets = await self.read_secrets()
        entries = {**secrets.secrets, provider_id: ProviderSecret(api_key=api_key)}
        return await self._write_secrets(secrets.model_copy(update={"secrets": entries}))

    async def remove_secret(self, provider_id: str) -> ProviderSecrets:
        provider_id = provider_id.strip()
        secrets = await self.read_secrets()
        if provider_id not in secrets.secrets:
            return secrets
        entries = {key: value for key, value in secrets.secrets.items() if key != provider_id}
        return await self._write_secrets(secrets.model_copy(update={"secrets": entries}))

    async def read_secret_value(self, provider_id: str) -> str | None:
        secrets = await self.read_secrets()
        entry = secrets.secrets.get(provider_id)
        return entry.api_key if entry and entry.api_key else None

    async def _write_secrets(self, secrets: ProviderSecrets) -> ProviderSecrets:
        secrets = secrets.model_copy(update={"updated_at": now_ms()})
        await write_text(self.secrets_path, _dump(secrets.to_wire()), mode=SECRETS_MODE)
        logger.info("Providers: wrote secrets ({} keys)", len(secrets.secrets))
        return secrets


# -- Helpers -------------------------------------------------------------------


def _validate_registry(data: Any) -> ProviderRegistry:
    if not isinstance(data, dict):
        msg = "Provider registry must be an object"
        raise InvalidProviderError(msg)
    try:
        return ProviderRegistry.model_validate(data)
    except ValidationError as exc:
        raise InvalidProviderError(_first_error(exc)) from None


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid provider"
    # Value errors raised by our validators carry a "Value error, " prefix.
    return str(errors[0].get("msg", "Invalid provider")).removeprefix("Value error, ")


async def _read_json(path: Path) -> Any:
    try:
        text = await read_text(path)
    except UnicodeDecodeError:
        logger.warning("Providers: {} is not UTF-8, using defaults", path)
        return None
    if text is None or not text.strip():
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        logger.warning("Providers: {} is not valid JSON, using defaults", path)
        return None


def _dump(data: dict[str, Any]) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"
