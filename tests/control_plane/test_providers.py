"""Unit tests for the provider store and the chat / image relay.

Upstream providers are simulated with ``httpx.MockTransport``.
"""

from __future__ import annotations

import json
import stat
from pathlib import Path

import httpx
import pytest

from deskgate.control_plane.errors import ApiError
from deskgate.control_plane.models.api import ChatBody, ImageBody, ProviderCredentials
from deskgate.control_plane.proxy.providers import (
    ProviderProxy,
    api_base,
    is_async_task_endpoint,
    to_openai_image_payload,
)
from deskgate.control_plane.store.providers import InvalidProviderError, InvalidSecretError, ProviderStore

ACME = {"id": "acme", "name": "Acme", "baseUrl": "https://api.acme.test/", "modelCatalog": ["m1", "m1", " "]}


@pytest.fixture
def store(tmp_path: Path) -> ProviderStore:
    return ProviderStore(tmp_path / "providers")


async def _no_sleep(_seconds: float) -> None:
    return None


def _proxy(store: ProviderStore, handler, **kwargs) -> ProviderProxy:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ProviderProxy(store, client, sleep=_no_sleep, **kwargs)


# -- Store ---------------------------------------------------------------------


async def test_missing_registry_reads_default(store: ProviderStore) -> None:
    registry = await store.read_registry()
    assert registry.get("nvidia-integrate") is not None
    assert not store.registry_path.exists()


async def test_upsert_normalises_entry(store: ProviderStore) -> None:
    registry = await store.upsert_provider(ACME)
    entry = registry.get("acme")
    assert entry.base_url == "https://api.acme.test"
    assert entry.model_catalog == ["m1"]
    assert registry.updated_at is not None

    on_disk = json.loads(store.registry_path.read_text())
    assert any(p["id"] == "acme" for p in on_disk["providers"])


async def test_write_registry_rejects_bad_entry(store: ProviderStore) -> None:
    with pytest.raises(InvalidProviderError):
        await store.write_registry({"providers": [{"id": " ", "baseUrl": "x"}]})


async def test_remove_provider_clears_defaults(store: ProviderStore) -> None:
    registry = await store.remove_provider("nvidia-integrate")
    assert registry.get("nvidia-integrate") is None
    assert registry.defaults.chat is None


async def test_secrets_file_is_private(store: ProviderStore) -> None:
    await store.set_secret("acme", "  sk-1  ")
    assert await store.read_secret_value("acme") == "sk-1"
    assert stat.S_IMODE(store.secrets_path.stat().st_mode) == 0o600

    await store.remove_secret("acme")
    assert await store.read_secret_value("acme") is None


async def test_empty_secret_rejected(store: ProviderStore) -> None:
    with pytest.raises(InvalidSecretError):
        await store.set_secret("acme", "   ")


# -- Helpers -------------------------------------------------------------------


def test_api_base_adds_single_v1() -> None:
    assert api_base("https://x.test/") == "https://x.test/v1"
    assert api_base("https://x.test/v1/") == "https://x.test/v1"


def test_async_task_endpoint_detection() -> None:
    assert is_async_task_endpoint("https://api-inference.modelscope.cn/v1")
    assert not is_async_task_endpoint("https://api.openai.com/v1")


def test_image_payload_merges_sources() -> None:
    payload = {"data": [{"b64_json": "AAA"}, {"other": 1}], "output_images": ["https://img/1.png", ""]}
    assert to_openai_image_payload(payload) == {"data": [{"b64_json": "AAA"}, {"url": "https://img/1.png"}]}


def test_image_payload_without_images_fails() -> None:
    with pytest.raises(ApiError) as excinfo:
        to_openai_image_payload({"data": []})
    assert excinfo.value.status == 502


# -- Credentials ---------------------------------------------------------------


async def test_resolve_uses_stored_key(store: ProviderStore) -> None:
    await store.upsert_provider(ACME)
    await store.set_secret("acme", "sk-stored")
    proxy = _proxy(store, lambda request: httpx.Response(200))

    resolved = await proxy.resolve_auth("acme")
    assert resolved.base_url == "https://api.acme.test"
    assert resolved.headers() == {"Authorization": "Bearer sk-stored"}


async def test_resolve_missing_key_without_fallback(store: ProviderStore) -> None:
    await store.upsert_provider(ACME)
    proxy = _proxy(store, lambda request: httpx.Response(200))

    with pytest.raises(ApiError) as excinfo:
        await proxy.resolve_auth("acme", allow_fallback=False)
    assert excinfo.value.code == "provider_missing_key"

    resolved = await proxy.resolve_auth("acme", "https://alt.test", "sk-override")
    assert resolved.api_key == "sk-override"


async def test_resolve_unknown_provider(store: ProviderStore) -> None:
    proxy = _proxy(store, lambda request: httpx.Response(200))
    with pytest.raises(ApiError) as excinfo:
        await proxy.resolve_auth("ghost")
    assert excinfo.value.status == 404


# -- Relay ---------------------------------------------------------------------


async def test_test_connection(store: ProviderStore) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"data": []})

    proxy = _proxy(store, handler)
    body = ProviderCredentials(base_url="https://x.test", api_key="sk")
    assert await proxy.test_connection(body) == {"ok": True, "message": "Connected"}
    assert str(seen[0].url) == "https://x.test/v1/models"


async def test_chat_streams_upstream_body(store: ProviderStore) -> None:
    await store.upsert_provider(ACME)
    await store.set_secret("acme", "sk")
    sse = b'data: {"choices":[]}\n\ndata: [DONE]\n\n'
    sent: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(json.loads(request.content))
        return httpx.Response(200, stream=httpx.ByteStream(sse), headers={"content-type": "text/event-stream"})

    proxy = _proxy(store, handler)
    response = await proxy.chat(ChatBody(provider_id="acme", model="m1", messages=[{"role": "user", "content": "hi"}]))
    chunks = [chunk async for chunk in response.body_iterator]

    assert b"".join(chunks) == sse
    assert sent[0] == {"model": "m1", "messages": [{"role": "user", "content": "hi"}], "stream": True}


async def test_chat_upstream_error_is_forwarded(store: ProviderStore) -> None:
    await store.upsert_provider(ACME)
    await store.set_secret("acme", "sk")
    proxy = _proxy(store, lambda request: httpx.Response(429, text="slow down"))

    with pytest.raises(ApiError) as excinfo:
        await proxy.chat(ChatBody(provider_id="acme", model="m1", messages=[]))
    assert excinfo.value.status == 429
    assert excinfo.value.message == "slow down"


async def test_image_sync_provider_defaults(store: ProviderStore) -> None:
    await store.upsert_provider(ACME)
    await store.set_secret("acme", "sk")
    sent: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(json.loads(request.content))
        return httpx.Response(200, json={"data": [{"b64_json": "AAA"}]})

    proxy = _proxy(store, handler)
    result = await proxy.generate_image(ImageBody(provider_id="acme", prompt="cat", model="img"))

    assert result == {"data": [{"b64_json": "AAA"}]}
    assert sent[0] == {"model": "img", "prompt": "cat", "n": 1, "size": "1024x1024", "response_format": "b64_json"}


async def test_image_task_is_polled_until_success(store: ProviderStore) -> None:
    await store.upsert_provider({"id": "ms", "baseUrl": "https://api-inference.modelscope.cn"})
    await store.set_secret("ms", "sk")
    polls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/images/generations"):
            assert request.headers["X-ModelScope-Async-Mode"] == "true"
            return httpx.Response(200, json={"task_id": "t-1"})
        polls.append(request)
        if len(polls) < 3:
            return httpx.Response(200, json={"task_status": "RUNNING"})
        return httpx.Response(200, json={"task_status": "SUCCEED", "output_images": ["https://img/cat.png"]})

    proxy = _proxy(store, handler)
    result = await proxy.generate_image(ImageBody(provider_id="ms", prompt="cat"))

    assert result == {"data": [{"url": "https://img/cat.png"}]}
    assert len(polls) == 3
    assert polls[0].url.path == "/v1/tasks/t-1"
    assert polls[0].headers["X-ModelScope-Task-Type"] == "image_generation"


async def test_image_task_failure(store: ProviderStore) -> None:
    await store.upsert_provider({"id": "ms", "baseUrl": "https://api-inference.modelscope.cn"})
    await store.set_secret("ms", "sk")

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/images/generations"):
            return httpx.Response(200, json={"task_id": "t-1"})
        return httpx.Response(200, json={"task_status": "FAILED", "error": "nsfw"})

    proxy = _proxy(store, handler)
    with pytest.raises(ApiError) as excinfo:
        await proxy.generate_image(ImageBody(provider_id="ms", prompt="cat"))
    assert excinfo.value.code == "provider_image_failed"
    assert excinfo.value.message == "nsfw"


async def test_image_task_times_out(store: ProviderStore) -> None:
    await store.upsert_provider({"id": "ms", "baseUrl": "https://api-inference.modelscope.cn"})
    await store.set_secret("ms", "sk")

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/images/generations"):
            return httpx.Response(200, json={"task_id": "t-1"})
        return httpx.Response(200, json={"task_status": "PENDING"})

    proxy = _proxy(store, handler, poll_max_attempts=4)
    with pytest.raises(ApiError) as excinfo:
        await proxy.generate_image(ImageBody(provider_id="ms", prompt="cat"))
    assert excinfo.value.status == 504
    assert excinfo.value.code == "provider_image_timeout"


async def test_unreachable_provider_is_502(store: ProviderStore) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    proxy = _proxy(store, handler)
    with pytest.raises(ApiError) as excinfo:
        await proxy.test_connection(ProviderCredentials(base_url="https://x.test", api_key="sk"))
    assert excinfo.value.status == 502
