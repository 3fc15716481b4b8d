"""Credential-injecting proxy for OpenAI-compatible providers.

API keys stay on the desktop: clients name a registered provider and the
proxy attaches the stored key.  Three calls are supported:

- ``test_connection``: ``GET {api}/models``
- ``chat``: ``POST {api}/chat/completions`` with ``stream: true``, piped
  back unbuffered
- ``generate_image``: ``POST {api}/images/generations``; async task
  providers return a ``task_id`` that is polled until it settles

Image results are normalised to ``{"data": [{"b64_json"?, "url"?}]}``.
"""

from __future__ import annotations

import json
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import anyio
import httpx
from fastapi.responses import StreamingResponse
from loguru import logger
from starlette.background import BackgroundTask

from deskgate.control_plane.errors import ApiError
from deskgate.control_plane.models.api import ChatBody, ImageBody, ProviderCredentials
from deskgate.control_plane.models.provider import normalize_base_url
from deskgate.control_plane.store.providers import ProviderStore

DEFAULT_POLL_INTERVAL = 1.5
DEFAULT_POLL_MAX_ATTEMPTS = 40
DEFAULT_IMAGE_SIZE = "1024x1024"

ASYNC_MODE_HEADER = "X-ModelScope-Async-Mode"
TASK_TYPE_HEADER = "X-ModelScope-Task-Type"

_ASYNC_TASK_HOST_RE = re.compile(r"modelscope\.cn", re.IGNORECASE)

SleepFn = Callable[[float], Awaitable[Any]]


def api_base(base_url: str) -> str:
    """Trimmed base URL ending in exactly one ``/v1``."""
    trimmed = normalize_base_url(base_url)
    return trimmed if trimmed.endswith("/v1") else f"{trimmed}/v1"


def is_async_task_endpoint(base_url: str) -> bool:
    """Providers that answer image generation with a task to poll."""
    return bool(_ASYNC_TASK_HOST_RE.search(base_url))


@dataclass(frozen=True)
class ResolvedProvider:
    base_url: str
    api_key: str

    @property
    def api_base(self) -> str:
        return api_base(self.base_url)

    def headers(self, **extra: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}", **extra}


class ProviderProxy:
    def __init__(
        self,
        store: ProviderStore,
        client: httpx.AsyncClient,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        poll_max_attempts: int = DEFAULT_POLL_MAX_ATTEMPTS,
        sleep: SleepFn = anyio.sleep,
    ) -> None:
        self._store = store
        self._client = client
        self.poll_interval = poll_interval
        self.poll_max_attempts = poll_max_attempts
        self._sleep = sleep

    # -- Credentials -----------------------------------------------------------

    async def resolve_auth(
        self,
        provider_id: str | None = None,
        base_url: str | None = None,
        api_key: str | None = None,
        *,
        allow_fallback: bool = True,
    ) -> ResolvedProvider:
        """Pick base URL and key from the registry, or from explicit overrides.

        With ``allow_fallback``, a registered provider that is missing (or has
        no stored key) falls back to the overrides when both are given.
        """
        provider_id = (provider_id or "").strip()
        override_url = (base_url or "").strip()
        override_key = (api_key or "").strip()
        fallback = ResolvedProvider(override_url, override_key) if override_url and override_key else None

        if provider_id:
            registry = await self._store.read_registry()
            provider = registry.get(provider_id)
            if provider is None:
                if allow_fallback and fallback:
                    return fallback
                raise ApiError(404, "provider_not_found", "Provider not found")
            stored_key = await self._store.read_secret_value(provider.id)
            if not stored_key:
                if allow_fallback and fallback:
                    return fallback
                raise ApiError(400, "provider_missing_key", "API key missing for provider")
            return ResolvedProvider(provider.base_url, stored_key)

        if fallback is None:
            raise ApiError(400, "invalid_provider", "Provider baseUrl and apiKey are required")
        return fallback

    async def _resolve(self, body: ProviderCredentials) -> ResolvedProvider:
        return await self.resolve_auth(body.provider_id, body.base_url, body.api_key, allow_fallback=True)

    # -- Connection test -------------------------------------------------------

    async def test_connection(self, body: ProviderCredentials) -> dict[str, Any]:
        provider = await self._resolve(body)
        response = await self._send("provider_test_failed", "GET", f"{provider.api_base}/models", provider.headers())
        if response.is_error:
            raise ApiError(response.status_code, "provider_test_failed", response.text or response.reason_phrase)
        return {"ok": True, "message": "Connected"}

    # -- Chat ------------------------------------------------------------------

    async def chat(self, body: ChatBody) -> StreamingResponse:
        """Stream chat completions straight through to the caller."""
        provider = await self._resolve(body)
        payload = {
            "model": body.model,
            "messages": body.messages,
            "temperature": body.temperature,
            "top_p": body.top_p,
            "max_tokens": body.max_tokens,
            "stream": True,
        }
        request = self._client.build_request(
            "POST",
            f"{provider.api_base}/chat/completions",
            json={key: value for key, value in payload.items() if value is not None},
            headers=provider.headers(),
        )
        try:
            response = await self._client.send(request, stream=True)
        except httpx.RequestError as exc:
            raise ApiError(502, "provider_chat_failed", f"Provider unreachable: {exc}") from None

        if response.is_error:
            text = (await response.aread()).decode("utf-8", errors="replace")
            await response.aclose()
            raise ApiError(response.status_code, "provider_chat_failed", text or response.reason_phrase)

        logger.debug("Providers: streaming chat from {} (model={})", provider.api_base, body.model)
        return StreamingResponse(
            response.aiter_raw(),
            status_code=response.status_code,
            media_type=response.headers.get("content-type", "text/event-stream"),
            headers={"Cache-Control": "no-cache"},
            background=BackgroundTask(response.aclose),
        )

    # -- Images ----------------------------------------------------------------

    async def generate_image(self, body: ImageBody) -> dict[str, Any]:
        provider = await self._resolve(body)
        async_task = is_async_task_endpoint(provider.base_url)

        generation: dict[str, Any] = {"model": body.model, "prompt": body.prompt}
        if async_task:
            if body.n is not None:
                generation["n"] = body.n
            if body.size:
                generation["size"] = body.size
            headers = provider.headers(**{ASYNC_MODE_HEADER: "true"})
        else:
            generation["n"] = body.n if body.n is not None else 1
            generation["size"] = body.size or DEFAULT_IMAGE_SIZE
            generation["response_format"] = "b64_json"
            headers = provider.headers()

        response = await self._send(
            "provider_image_failed",
            "POST",
            f"{provider.api_base}/images/generations",
            headers,
            body={key: value for key, value in generation.items() if value is not None},
        )
        payload = _as_payload(_parse_json(response.text))
        if response.is_error:
            message = payload.get("message")
            if not isinstance(message, str) or not message.strip():
                message = response.reason_phrase
            raise ApiError(response.status_code, "provider_image_failed", message, payload or None)

        task_id = payload.get("task_id")
        if task_id:
            logger.info("Providers: image task {} accepted by {}", task_id, provider.api_base)
            payload = await self.poll_image_task(provider, str(task_id))
        return to_openai_image_payload(payload)

    async def poll_image_task(self, provider: ResolvedProvider, task_id: str) -> dict[str, Any]:
        """Poll a generation task until it succeeds, fails or attempts run out."""
        url = f"{provider.api_base}/tasks/{quote(task_id, safe='')}"
        headers = provider.headers(**{TASK_TYPE_HEADER: "image_generation"})
        for attempt in range(self.poll_max_attempts):
            response = await self._send("provider_image_failed", "GET", url, headers)
            payload = _as_payload(_parse_json(response.text))
            if response.is_error:
                raise ApiError(
                    response.status_code,
                    "provider_image_failed",
                    response.text or response.reason_phrase,
                    payload or None,
                )
            status = payload.get("task_status")
            if status == "SUCCEED":
                return payload
            if status == "FAILED":
                message = payload.get("error") or payload.get("message") or "Image generation failed"
                raise ApiError(502, "provider_image_failed", str(message), payload)
            if attempt < self.poll_max_attempts - 1:
                await self._sleep(self.poll_interval)

        logger.warning("Providers: image task {} still pending after {} polls", task_id, self.poll_max_attempts)
        raise ApiError(504, "provider_image_timeout", "Image generation timed out")

    # -- Transport -------------------------------------------------------------

    async def _send(
        self,
        code: str,
        method: str,
        url: str,
        headers: dict[str, str],
        *,
        body: Any = None,
    ) -> httpx.Response:
        try:
            return await self._client.request(method, url, headers=headers, json=body)
        except httpx.RequestError as exc:
            raise ApiError(502, code, f"Provider unreachable: {exc}") from None


# -- Payload helpers -----------------------------------------------------------


def _parse_json(text: str) -> Any:
    trimmed = text.strip()
    if not trimmed:
        return None
    try:
        return json.loads(trimmed)
    except json.JSONDecodeError:
        return trimmed


def _as_payload(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def to_openai_image_payload(payload: dict[str, Any]) -> dict[str, Any]:
    """Merge ``data[]`` and ``output_images[]`` into one OpenAI-style list."""
    data: list[dict[str, str]] = []
    for item in payload.get("data") or []:
        if not isinstance(item, dict):
            continue
        entry = {key: item[key] for key in ("b64_json", "url") if item.get(key)}
        if entry:
            data.append(entry)
    for image_url in payload.get("output_images") or []:
        if isinstance(image_url, str) and image_url.strip():
            data.append({"url": image_url})
    if not data:
        raise ApiError(502, "provider_image_failed", "No image data returned", payload or None)
    return {"data": data}
