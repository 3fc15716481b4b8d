"""OpenAI-compatible provider registry and secrets.

The registry is safe to show to clients; the secrets file is host-only and
is never echoed through client-tier endpoints.
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field, field_validator, model_validator

from deskgate.control_plane.models.base import WireModel


def normalize_base_url(value: str) -> str:
    return value.strip().rstrip("/")


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class DefaultModels(WireModel):
    chat: str | None = None
    vision: str | None = None
    image: str | None = None

    @field_validator("chat", "vision", "image")
    @classmethod
    def _strip(cls, value: str | None) -> str | None:
        return _blank_to_none(value)


class ModelRef(WireModel):
    provider_id: str
    model_id: str


class ProviderDefaults(WireModel):
    chat: ModelRef | None = None
    vision: ModelRef | None = None
    image: ModelRef | None = None

    @field_validator("chat", "vision", "image", mode="before")
    @classmethod
    def _drop_incomplete(cls, value: object) -> object:
        if isinstance(value, dict):
            provider_id = str(value.get("providerId", value.get("provider_id", "")) or "").strip()
            model_id = str(value.get("modelId", value.get("model_id", "")) or "").strip()
            if not provider_id or not model_id:
                return None
            return {"providerId": provider_id, "modelId": model_id}
        return value

    def without_provider(self, provider_id: str) -> ProviderDefaults:
        """Drop every default that points at ``provider_id``."""
        return ProviderDefaults(
            chat=None if self.chat and self.chat.provider_id == provider_id else self.chat,
            vision=None if self.vision and self.vision.provider_id == provider_id else self.vision,
            image=None if self.image and self.image.provider_id == provider_id else self.image,
        )


class ProviderEntry(WireModel):
    id: str
    name: str = ""
    kind: Literal["openai_compatible"] = "openai_compatible"
    base_url: str
    model_catalog: list[str] = Field(default_factory=list)
    default_models: DefaultModels | None = None

    @field_validator("id")
    @classmethod
    def _require_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            msg = "Provider id is required"
            raise ValueError(msg)
        return value

    @field_validator("base_url")
    @classmethod
    def _require_base_url(cls, value: str) -> str:
        value = normalize_base_url(value)
        if not value:
            msg = "Provider baseUrl is required"
            raise ValueError(msg)
        return value

    @field_validator("model_catalog", mode="before")
    @classmethod
    def _dedupe_models(cls, value: object) -> list[str]:
        if not isinstance(value, list):
            return []
        seen: dict[str, None] = {}
        for item in value:
            text = str(item).strip()
            if text:
                seen.setdefault(text, None)
        return list(seen)

    @model_validator(mode="after")
    def _default_name(self) -> ProviderEntry:
        if not self.name.strip():
            self.name = self.id
        else:
            self.name = self.name.strip()
        return self


class ProviderRegistry(WireModel):
    version: int = 1
    updated_at: int | None = None
    providers: list[ProviderEntry] = Field(default_factory=list)
    defaults: ProviderDefaults | None = None

    def get(self, provider_id: str) -> ProviderEntry | None:
        return next((p for p in self.providers if p.id == provider_id), None)


class ProviderSecret(WireModel):
    api_key: str

    @field_validator("api_key")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()


class ProviderSecrets(WireModel):
    version: int = 1
    updated_at: int | None = None
    secrets: dict[str, ProviderSecret] = Field(default_factory=dict)

    @field_validator("secrets", mode="before")
    @classmethod
    def _drop_empty(cls, value: object) -> object:
        if not isinstance(value, dict):
            return {}
        kept = {}
        for key, entry in value.items():
            api_key = entry.get("apiKey", entry.get("api_key")) if isinstance(entry, dict) else None
            if isinstance(api_key, str) and api_key.strip():
                kept[key] = {"apiKey": api_key.strip()}
        return kept


DEFAULT_REGISTRY = ProviderRegistry(
    version=1,
    providers=[
        ProviderEntry(
            id="nvidia-integrate",
            name="NVIDIA Integrate",
            base_url="https://integrate.api.nvidia.com/v1",
            model_catalog=["deepseek-ai/deepseek-v3.2", "stepfun-ai/step-3.5-flash"],
            default_models=DefaultModels(chat="deepseek-ai/deepseek-v3.2"),
        )
    ],
    defaults=ProviderDefaults(chat=ModelRef(provider_id="nvidia-integrate", model_id="deepseek-ai/deepseek-v3.2")),
)
