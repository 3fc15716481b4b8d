"""Provider registry, secrets, and the chat / image relay."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from deskgate.control_plane.deps import ClientActor, HostActor, ProviderGateway, Providers, Writable, require_host
from deskgate.control_plane.errors import ApiError
from deskgate.control_plane.models.api import ChatBody, ImageBody, ProviderCredentials, RegistryPut, SecretSet
from deskgate.control_plane.models.provider import ProviderRegistry
from deskgate.control_plane.store.providers import InvalidProviderError, InvalidSecretError, ProviderStore

router = APIRouter(tags=["providers"])

# Host auth runs before the read-only check.
HostOnly = Depends(require_host)


def _registry_body(store: ProviderStore, registry: ProviderRegistry) -> dict[str, Any]:
    return {"registry": registry.to_wire(), "configDir": str(store.config_dir)}


# -- Registry ------------------------------------------------------------------


@router.get("/providers")
async def get_providers(_actor: ClientActor, store: Providers) -> dict[str, Any]:
    return _registry_body(store, await store.read_registry())


@router.put("/providers", dependencies=[HostOnly, Writable])
async def put_providers(body: RegistryPut, store: Providers) -> dict[str, Any]:
    try:
        registry = await store.write_registry(body.registry)
    except InvalidProviderError as exc:
        raise ApiError(400, "invalid_provider", str(exc)) from exc
    return _registry_body(store, registry)


@router.delete("/providers/{provider_id}", dependencies=[HostOnly, Writable])
async def delete_provider(provider_id: str, store: Providers) -> dict[str, Any]:
    """Remove a provider, its defaults and its stored key."""
    registry = await store.remove_provider(provider_id)
    await store.remove_secret(provider_id)
    return _registry_body(store, registry)


# -- Secrets -------------------------------------------------------------------


@router.get("/providers/secrets")
async def get_secrets(_actor: HostActor, store: Providers) -> dict[str, Any]:
    return {"secrets": (await store.read_secrets()).to_wire(), "path": str(store.secrets_path)}


@router.post("/providers/{provider_id}/secret", dependencies=[HostOnly, Writable])
async def set_secret(provider_id: str, body: SecretSet, store: Providers) -> dict[str, Any]:
    try:
        await store.set_secret(provider_id, body.api_key)
    except InvalidSecretError as exc:
        raise ApiError(400, "invalid_secret", str(exc)) from exc
    return {"ok": True}


@router.delete("/providers/{provider_id}/secret", dependencies=[HostOnly, Writable])
async def delete_secret(provider_id: str, store: Providers) -> dict[str, Any]:
    await store.remove_secret(provider_id)
    return {"ok": True}


# -- Relay ---------------------------------------------------------------------


@router.post("/providers/test")
async def test_provider(body: ProviderCredentials, _actor: ClientActor, proxy: ProviderGateway) -> dict[str, Any]:
    return await proxy.test_connection(body)


@router.post("/cowork/chat")
async def cowork_chat(body: ChatBody, _actor: ClientActor, proxy: ProviderGateway) -> StreamingResponse:
    """Relay a streaming chat completion; the upstream body is piped through untouched."""
    return await proxy.chat(body)


@router.post("/cowork/images")
async def cowork_images(body: ImageBody, _actor: ClientActor, proxy: ProviderGateway) -> dict[str, Any]:
    return await proxy.generate_image(body)
