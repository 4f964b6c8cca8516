"""Gemini Veo video generation provider.

Supports Veo 3.1, 3.0, 2.0 models via Google AI API.

Long-running operation flow:
  POST models/{model}:predictLongRunning → GET {operation} until done →
  fetch the generated sample's download URI with the same API key.
"""

from __future__ import annotations

import base64
import logging
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

_TERMINAL_FAILURE_STATES = ("FAILED", "CANCELLED", "STATE_FAILED", "STATE_CANCELLED")


class GeminiVideoProvider(VideoProvider):
    """Operation-object adapter for the Gemini Veo API."""

    kind = ProviderKind.GEMINI
    resizes_reference = False

    def auth_headers(self, api_key: str) -> dict[str, str]:
        return {"x-goog-api-key": api_key}

    async def submit(
        self, request: GenerationRequest, reference: ReferencePayload | None = None
    ) -> RemoteJob:
        if not request.api_key:
            raise ValueError("Gemini API key is required")

        instance: dict[str, Any] = {"prompt": request.prompt}
        if reference is not None:
            instance["image"] = {
                "bytesBase64Encoded": base64.b64encode(reference.data).decode("utf-8"),
                "mimeType": reference.content_type or "image/png",
            }

        body = {
            "instances": [instance],
            "parameters": _build_parameters(request),
        }

        resp = await self.http_client.post(
            f"{self.base_url}/models/{request.model}:predictLongRunning",
            json=body,
            headers=self.auth_headers(request.api_key),
        )
        raise_for_upstream(resp, "Veo generation")
        result = resp.json()

        operation_name = result.get("name")
        if not operation_name:
            raise UpstreamError("Missing operation name in Veo response.")

        return RemoteJob(
            id=operation_name,
            provider=self.kind,
            api_key=request.api_key,
            status=JobStatus.PROCESSING if not result.get("done") else JobStatus.COMPLETED,
        )

    async def await_completion(self, job: RemoteJob) -> ResolvedAsset:
        poll_url = f"{self.base_url}/{job.id}"
        headers = self.auth_headers(job.api_key)

        async def check() -> PollResult[ResolvedAsset]:
            resp = await self.http_client.get(poll_url, headers=headers)
            raise_for_upstream(resp, "Veo operation polling")
            operation = resp.json()

            if operation.get("error"):
                err = operation["error"]
                message = err.get("message") if isinstance(err, dict) else str(err)
                return self._fail(job, f"Gemini Veo failed: {message or 'unknown'}")

            state = str((operation.get("metadata") or {}).get("state") or "").upper()
            if state in _TERMINAL_FAILURE_STATES:
                return self._fail(job, f"Gemini Veo operation ended with state: {state}")

            if not operation.get("done"):
                job.status = JobStatus.PROCESSING
                logger.debug("Gemini Veo operation %s: polling...", job.id)
                return PollResult.pending()

            video = _extract_video(operation.get("response") or {})
            if not video:
                reasons = _filtered_reasons(operation.get("response") or {})
                return self._fail(job, reasons or "Gemini Veo: no video in response")

            job.status = JobStatus.COMPLETED
            return PollResult.success(ResolvedAsset(
                job_id=job.id,
                locator=video["uri"],
                headers=self.auth_headers(job.api_key),
                content_type=video.get("mimeType"),
            ))

        return await poll_until_complete(
            check,
            interval=self.poll_interval,
            timeout=self.poll_timeout,
            label=f"Gemini Veo operation {job.video_id}",
            retry_transient_errors=self.retry_transient_errors,
        )

    @staticmethod
    def _fail(job: RemoteJob, message: str) -> PollResult[Any]:
        job.status = JobStatus.FAILED
        job.error = message
        return PollResult.failure(message)


def _build_parameters(request: GenerationRequest) -> dict[str, Any]:
    params: dict[str, Any] = {}
    if request.duration_seconds:
        params["durationSeconds"] = int(float(request.duration_seconds))
    dims = request.dimensions
    if dims:
        width, height = dims
        params["aspectRatio"] = "16:9" if width >= height else "9:16"
        params["resolution"] = "1080p" if min(width, height) >= 1080 else "720p"
    return params


def _extract_video(response: dict[str, Any]) -> dict[str, Any] | None:
    """First generated sample video (``uri`` plus optional ``mimeType``) of a finished operation."""
    video_response = response.get("generateVideoResponse") or response
    samples = video_response.get("generatedSamples") or video_response.get("generatedVideos") or []
    for sample in samples:
        video = sample.get("video") or {}
        if video.get("uri"):
            return video
    return None


def _filtered_reasons(response: dict[str, Any]) -> str:
    video_response = response.get("generateVideoResponse") or response
    reasons = video_response.get("raiMediaFilteredReasons") or []
    return "; ".join(str(r) for r in reasons)
