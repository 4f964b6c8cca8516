"""Video provider implementations.

Each provider module implements the async generation pattern:
  submit job → poll until terminal → resolve a downloadable asset

``build_providers`` wires one adapter per ``ProviderKind`` from settings;
``resolve_provider_kind`` picks the active variant for a request.
"""

from __future__ import annotations

import httpx

from videoproxy.config import Settings
from videoproxy.services.errors import InvalidRequestError
from videoproxy.services.providers.base import ProviderKind, VideoProvider
from videoproxy.services.providers.gemini_video import GeminiVideoProvider
from videoproxy.services.providers.sora_video import SoraVideoProvider

_PROVIDER_ALIASES = {
    "openai": ProviderKind.OPENAI,
    "sora": ProviderKind.OPENAI,
    "gemini": ProviderKind.GEMINI,
    "google": ProviderKind.GEMINI,
    "veo": ProviderKind.GEMINI,
}

_GEMINI_MODEL_PREFIXES = ("veo", "gemini")


def resolve_provider_kind(provider: str | None, model: str | None) -> ProviderKind:
    """Normalize an explicit provider name, or infer it from the model name."""
    name = (provider or "").strip().lower()
    if name:
        kind = _PROVIDER_ALIASES.get(name)
        if kind is None:
            raise InvalidRequestError(f"Unsupported provider: {provider}")
        return kind

    model_name = (model or "").strip().lower()
    if model_name.startswith(_GEMINI_MODEL_PREFIXES):
        return ProviderKind.GEMINI
    return ProviderKind.OPENAI


def build_providers(
    settings: Settings, http_client: httpx.AsyncClient
) -> dict[ProviderKind, VideoProvider]:
    return {
        ProviderKind.OPENAI: SoraVideoProvider(
            http_client=http_client,
            base_url=settings.OPENAI_BASE_URL,
            poll_interval=settings.OPENAI_POLL_INTERVAL_MS / 1000,
            poll_timeout=settings.OPENAI_POLL_TIMEOUT_MS / 1000,
            retry_transient_errors=settings.OPENAI_POLL_RETRY_ERRORS,
        ),
        ProviderKind.GEMINI: GeminiVideoProvider(
            http_client=http_client,
            base_url=settings.GEMINI_BASE_URL,
            poll_interval=settings.GEMINI_POLL_INTERVAL_MS / 1000,
            poll_timeout=settings.GEMINI_POLL_TIMEOUT_MS / 1000,
            retry_transient_errors=settings.GEMINI_POLL_RETRY_ERRORS,
        ),
    }


def default_model(settings: Settings, kind: ProviderKind) -> str:
    if kind is ProviderKind.GEMINI:
        return settings.GEMINI_VIDEO_MODEL
    return settings.OPENAI_VIDEO_MODEL


def default_api_key(settings: Settings, kind: ProviderKind) -> str:
    if kind is ProviderKind.GEMINI:
        return settings.GEMINI_API_KEY
    return settings.OPENAI_API_KEY


__all__ = [
    "GeminiVideoProvider",
    "ProviderKind",
    "SoraVideoProvider",
    "VideoProvider",
    "build_providers",
    "default_api_key",
    "default_model",
    "resolve_provider_kind",
]
