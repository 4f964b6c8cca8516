"""OpenAI Sora video generation provider.

Job-polling flow:
  POST /videos → GET /videos/{id} until terminal → GET /videos/{id}/content

Supports: sora-2, sora-2-pro.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from videoproxy.services.errors import UpstreamError
from videoproxy.services.poller import PollResult, poll_until_complete
from videoproxy.services.providers.base import (
    GenerationRequest,
    JobStatus,
    ProviderKind,
    ReferencePayload,
    RemoteJob,
    ResolvedAsset,
    VideoProvider,
    raise_for_upstream,
)

logger = logging.getLogger(__name__)

_PENDING_STATUSES = ("queued", "processing", "in_progress")
_COMPLETED_STATUSES = ("completed", "succeeded")


class SoraVideoProvider(VideoProvider):
    """REST job adapter for the OpenAI videos API."""

    kind = ProviderKind.OPENAI
    resizes_reference = True

    def auth_headers(self, api_key: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {api_key}"}

    async def submit(
        self, request: GenerationRequest, reference: ReferencePayload | None = None
    ) -> RemoteJob:
        if not request.api_key:
            raise ValueError("OpenAI API key is required")

        # Always multipart: plain fields are sent as file-less parts
        form: dict[str, tuple[Any, ...]] = {
            "prompt": (None, request.prompt),
            "model": (None, request.model),
        }
        if request.duration_seconds:
            form["seconds"] = (None, request.duration_seconds)
        if request.output_size:
            form["size"] = (None, request.output_size)
        if reference is not None:
            form["input_reference"] = (
                reference.file_name or "reference",
                reference.data,
                reference.content_type or "application/octet-stream",
            )

        resp = await self.http_client.post(
            f"{self.base_url}/videos",
            files=form,
            headers=self.auth_headers(request.api_key),
        )
        raise_for_upstream(resp, "Video creation")

        creation = resp.json()
        video_id = creation.get("id")
        if not video_id:
            raise UpstreamError("Missing video ID in create response.")

        return RemoteJob(
            id=video_id,
            provider=self.kind,
            api_key=request.api_key,
            status=_normalize_status(creation.get("status")),
        )

    async def await_completion(self, job: RemoteJob) -> ResolvedAsset:
        poll_url = f"{self.base_url}/videos/{job.id}"
        headers = {**self.auth_headers(job.api_key), "Accept": "application/json"}

        async def check() -> PollResult[ResolvedAsset]:
            resp = await self.http_client.get(poll_url, headers=headers)
            raise_for_upstream(resp, "Polling")
            payload = resp.json()

            raw = payload.get("status") or ""
            job.status = _normalize_status(raw)
            logger.debug("Sora video %s: %s", job.id, raw)

            if raw in _PENDING_STATUSES:
                return PollResult.pending()
            if raw in _COMPLETED_STATUSES:
                return PollResult.success(ResolvedAsset(
                    job_id=job.id,
                    locator=f"{self.base_url}/videos/{job.id}/content",
                    headers={**self.auth_headers(job.api_key), "Accept": "*/*"},
                ))

            job.status = JobStatus.FAILED
            err = payload.get("error") or {}
            job.error = (
                err.get("message") if isinstance(err, dict) else None
            ) or f"Generation finished with status: {raw or 'unknown'}"
            return PollResult.failure(job.error)

        return await poll_until_complete(
            check,
            interval=self.poll_interval,
            timeout=self.poll_timeout,
            label=f"Sora video {job.id}",
            retry_transient_errors=self.retry_transient_errors,
        )

    async def list_remote(self, api_key: str) -> list[dict[str, Any]]:
        """List videos known to the OpenAI account."""
        resp = await self.http_client.get(
            f"{self.base_url}/videos",
            headers={**self.auth_headers(api_key), "Accept": "application/json"},
        )
        raise_for_upstream(resp, "Listing videos")
        payload = resp.json()

        items = payload.get("data")
        if not isinstance(items, list):
            items = payload.get("videos")
        if not isinstance(items, list):
            items = []

        return [
            {
                "id": item.get("id"),
                "status": item.get("status"),
                "model": item.get("model"),
                "duration": item.get("duration") or item.get("seconds"),
                "aspect_ratio": item.get("aspect_ratio") or item.get("size"),
                "created_at": normalize_timestamp(item.get("created_at") or item.get("createdAt")),
                "prompt": remote_prompt(item) or "",
            }
            for item in items
            if isinstance(item, dict)
        ]

    async def get_details(self, api_key: str, video_id: str) -> dict[str, Any]:
        """Fetch the raw job description for ``video_id``."""
        resp = await self.http_client.get(
            f"{self.base_url}/videos/{video_id}",
            headers={**self.auth_headers(api_key), "Accept": "application/json"},
        )
        raise_for_upstream(resp, "Fetching video details")
        return resp.json()

    def content_asset(self, api_key: str, video_id: str) -> ResolvedAsset:
        """Asset for a job that is already known to be complete."""
        return ResolvedAsset(
            job_id=video_id,
            locator=f"{self.base_url}/videos/{video_id}/content",
            headers={**self.auth_headers(api_key), "Accept": "*/*"},
        )


def _normalize_status(raw: str | None) -> JobStatus:
    if raw == "queued":
        return JobStatus.QUEUED
    if raw in _PENDING_STATUSES:
        return JobStatus.PROCESSING
    if raw in _COMPLETED_STATUSES:
        return JobStatus.COMPLETED
    if not raw:
        return JobStatus.QUEUED
    return JobStatus.FAILED


def remote_prompt(item: dict[str, Any]) -> str | None:
    metadata = item.get("metadata") or {}
    return item.get("prompt") or metadata.get("prompt") or item.get("description")


def normalize_timestamp(value: Any) -> str | None:
    """Normalize epoch seconds or ISO strings to an ISO-8601 UTC string."""
    if not value:
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc).isoformat().replace("+00:00", "Z")
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
