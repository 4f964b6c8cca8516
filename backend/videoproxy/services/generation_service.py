from __future__ import annotations
"""Generation service: validates a request and drives it end to end.

Flow for one request:
1. Resolve the reference image (upload, saved pointer, or none)
2. Submit to the selected provider and poll until terminal
3. Stream the finished asset to the videos directory
4. Record the entry in the ledger (evicting overflow)

Also exposes the OpenAI-only remote listing and remote download operations.
"""

import asyncio
import logging
import math
import re
from datetime import datetime, timezone
from typing import Any

from videoproxy.config import Settings
from videoproxy.services.asset_downloader import AssetDownloader
from videoproxy.services.errors import InvalidRequestError
from videoproxy.services.generation_ledger import GenerationEntry, GenerationLedger
from videoproxy.services.providers import (
    default_api_key,
    default_model,
    resolve_provider_kind,
)
from videoproxy.services.providers.base import GenerationRequest, ProviderKind, VideoProvider
from videoproxy.services.providers.sora_video import SoraVideoProvider, remote_prompt
from videoproxy.services.reference_resolver import (
    SOURCE_UPLOAD,
    IncomingUpload,
    ReferenceResolver,
)
from videoproxy.services.reference_store import ReferenceStore, SavedReference

logger = logging.getLogger(__name__)

_SIZE_PATTERN = re.compile(r"^(\d+)x(\d+)$", re.IGNORECASE)

_KEY_HINTS = {
    ProviderKind.OPENAI: ("OpenAI", "OPENAI_API_KEY"),
    ProviderKind.GEMINI: ("Gemini", "GEMINI_API_KEY"),
}


class GenerationService:
    """Owns the per-request pipeline; shared state lives in the injected ledger."""

    def __init__(
        self,
        *,
        settings: Settings,
        providers: dict[ProviderKind, VideoProvider],
        ledger: GenerationLedger,
        downloader: AssetDownloader,
        resolver: ReferenceResolver,
        references: ReferenceStore,
    ) -> None:
        self.settings = settings
        self.providers = providers
        self.ledger = ledger
        self.downloader = downloader
        self.resolver = resolver
        self.references = references

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def build_request(
        self,
        *,
        prompt: str | None,
        provider: str | None = None,
        model: str | None = None,
        seconds: str | None = None,
        size: str | None = None,
        api_key: str | None = None,
        save_reference: bool = True,
    ) -> GenerationRequest:
        """Normalize raw form fields into a GenerationRequest or raise InvalidRequestError."""
        prompt = (prompt or "").strip()
        if not prompt:
            raise InvalidRequestError("Prompt is required.")

        model = (model or "").strip()
        kind = resolve_provider_kind(provider, model)

        return GenerationRequest(
            prompt=prompt,
            provider=kind,
            model=model or default_model(self.settings, kind),
            api_key=self.resolve_api_key(kind, api_key),
            duration_seconds=_normalize_seconds(seconds),
            output_size=_normalize_size(size),
            save_reference=save_reference,
        )

    def resolve_api_key(self, kind: ProviderKind, provided: str | None) -> str:
        key = (provided or "").strip() or default_api_key(self.settings, kind)
        if not key:
            label, env_name = _KEY_HINTS[kind]
            raise InvalidRequestError(
                f"{label} API key is required. Provide one in the request or set {env_name}."
            )
        return key

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate(
        self,
        request: GenerationRequest,
        *,
        upload: IncomingUpload | None = None,
        reference: str | None = None,
    ) -> GenerationEntry:
        provider = self.providers[request.provider]
        target_size = request.dimensions if provider.resizes_reference else None

        async with self.resolver.resolve(upload, reference, target_size) as resolved:
            payload = await asyncio.to_thread(resolved.read_payload) if resolved else None
            job, asset = await provider.generate(request, payload)
            downloaded = await self.downloader.fetch(job.video_id, asset)

            reference_url = resolved.saved_url if resolved else None
            if resolved and resolved.source == SOURCE_UPLOAD and request.save_reference:
                try:
                    saved = await self.resolver.persist(resolved)
                    reference_url = saved.url
                except OSError as e:
                    logger.warning("Could not save reference for %s: %s", job.video_id, e)

        entry = GenerationEntry(
            video_id=job.video_id,
            prompt=request.prompt,
            model=request.model,
            provider=request.provider.value,
            created_at=datetime.now(timezone.utc),
            local_path=downloaded.local_path,
            url=downloaded.url,
            content_type=downloaded.content_type,
            byte_size=downloaded.byte_size,
            reference_url=reference_url,
        )
        return await self.ledger.record(entry)

    # ------------------------------------------------------------------
    # History & references
    # ------------------------------------------------------------------

    async def history(self) -> list[GenerationEntry]:
        return await self.ledger.list_history()

    async def saved_references(self) -> list[SavedReference]:
        return await asyncio.to_thread(self.references.list_references)

    # ------------------------------------------------------------------
    # Remote (OpenAI only)
    # ------------------------------------------------------------------

    @property
    def sora(self) -> SoraVideoProvider:
        provider = self.providers.get(ProviderKind.OPENAI)
        if not isinstance(provider, SoraVideoProvider):
            raise InvalidRequestError("Remote video operations require the OpenAI provider.")
        return provider

    async def list_remote(self, api_key: str | None) -> list[dict[str, Any]]:
        """List remote videos annotated with whether they exist locally."""
        key = self.resolve_api_key(ProviderKind.OPENAI, api_key)
        remote_videos = await self.sora.list_remote(key)
        local = await self.ledger.list_history()

        annotated = []
        for video in remote_videos:
            match = _find_local(local, video.get("id"))
            annotated.append({
                **video,
                "downloaded": match is not None,
                "local_url": match.url if match else None,
            })
        return annotated

    async def download_remote(self, video_id: str | None, api_key: str | None) -> GenerationEntry:
        """Download and record a remote job that may never have gone through this service."""
        video_id = (video_id or "").strip()
        if not video_id:
            raise InvalidRequestError("videoId is required.")
        key = self.resolve_api_key(ProviderKind.OPENAI, api_key)

        details = await self.sora.get_details(key, video_id)
        metadata = details.get("metadata") or {}
        prompt = remote_prompt(details) or f"Remote video {video_id}"
        model = details.get("model") or metadata.get("model") or self.settings.OPENAI_VIDEO_MODEL

        downloaded = await self.downloader.fetch(video_id, self.sora.content_asset(key, video_id))
        entry = GenerationEntry(
            video_id=video_id,
            prompt=prompt,
            model=model,
            provider=ProviderKind.OPENAI.value,
            created_at=datetime.now(timezone.utc),
            local_path=downloaded.local_path,
            url=downloaded.url,
            content_type=downloaded.content_type,
            byte_size=downloaded.byte_size,
        )
        return await self.ledger.record(entry)


def _find_local(entries: list[GenerationEntry], video_id: str | None) -> GenerationEntry | None:
    if not video_id:
        return None
    for entry in entries:
        if entry.video_id == video_id or entry.file_name.startswith(f"{video_id}-"):
            return entry
    return None


def _normalize_seconds(seconds: str | None) -> str | None:
    raw = (seconds or "").strip()
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        raise InvalidRequestError("seconds must be a positive number.") from None
    if not math.isfinite(value) or value <= 0:
        raise InvalidRequestError("seconds must be a positive number.")
    return str(int(value)) if value.is_integer() else raw


def _normalize_size(size: str | None) -> str | None:
    raw = (size or "").strip()
    if not raw:
        return None
    match = _SIZE_PATTERN.match(raw)
    if not match or int(match.group(1)) <= 0 or int(match.group(2)) <= 0:
        raise InvalidRequestError("size must look like WIDTHxHEIGHT, e.g. 1280x720.")
    return f"{int(match.group(1))}x{int(match.group(2))}"
