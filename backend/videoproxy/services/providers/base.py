from __future__ import annotations
"""Provider contract shared by every video-generation backend.

Each adapter turns a provider-specific asynchronous job API into the same
two steps: ``submit`` returns a RemoteJob, ``await_completion`` suspends
until that job is terminal and returns a ResolvedAsset describing how to
fetch the finished bytes.
"""

import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx

from videoproxy.services.errors import UpstreamError

logger = logging.getLogger(__name__)


class ProviderKind(str, enum.Enum):
    """Supported video providers."""

    OPENAI = "openai"
    GEMINI = "gemini"


class JobStatus(str, enum.Enum):
    """Normalized remote job lifecycle."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class GenerationRequest:
    """A validated generation request, ready for a provider."""
    prompt: str
    provider: ProviderKind
    model: str
    api_key: str
    duration_seconds: str | None = None
    output_size: str | None = None
    save_reference: bool = True

    @property
    def dimensions(self) -> tuple[int, int] | None:
        if not self.output_size:
            return None
        width, height = self.output_size.lower().split("x", 1)
        return int(width), int(height)


@dataclass
class RemoteJob:
    """A provider-side asynchronous unit of work."""
    id: str
    provider: ProviderKind
    api_key: str
    status: JobStatus = JobStatus.QUEUED
    error: str | None = None

    @property
    def video_id(self) -> str:
        """Identifier used for the local file name and ledger key."""
        return self.id.rsplit("/", 1)[-1]


@dataclass
class ResolvedAsset:
    """Where and how to fetch a finished job's bytes."""
    job_id: str
    locator: str
    headers: dict[str, str] = field(default_factory=dict)
    content_type: str | None = None


@dataclass
class ReferencePayload:
    """Image bytes handed to a provider alongside the prompt."""
    file_name: str
    content_type: str
    data: bytes


class VideoProvider(ABC):
    """Abstract base class for provider adapters.

    Subclasses set ``kind`` and ``resizes_reference`` and implement
    ``submit`` and ``await_completion``.
    """

    kind: ProviderKind
    resizes_reference: bool = False

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        base_url: str,
        poll_interval: float,
        poll_timeout: float,
        retry_transient_errors: bool = False,
    ) -> None:
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")
        self.poll_interval = poll_interval
        self.poll_timeout = poll_timeout
        self.retry_transient_errors = retry_transient_errors

    @abstractmethod
    async def submit(
        self, request: GenerationRequest, reference: ReferencePayload | None = None
    ) -> RemoteJob:
        """Create the remote job and return it without waiting."""
        ...

    @abstractmethod
    async def await_completion(self, job: RemoteJob) -> ResolvedAsset:
        """Suspend until ``job`` is terminal; raise on failure or timeout."""
        ...

    @abstractmethod
    def auth_headers(self, api_key: str) -> dict[str, str]:
        ...

    async def generate(
        self, request: GenerationRequest, reference: ReferencePayload | None = None
    ) -> tuple[RemoteJob, ResolvedAsset]:
        job = await self.submit(request, reference)
        logger.info("%s job created: %s (model=%s)", self.kind.value, job.id, request.model)
        asset = await self.await_completion(job)
        return job, asset


def error_message(response: httpx.Response, fallback: str) -> str:
    """Extract the provider's own error message from a failed response."""
    try:
        payload: Any = response.json()
    except ValueError:
        return fallback
    if isinstance(payload, dict):
        err = payload.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str) and err:
            return err
    return fallback


def raise_for_upstream(response: httpx.Response, action: str) -> None:
    """Raise UpstreamError for a non-2xx response.

    5xx and 429 responses are flagged retriable so pollers configured to
    tolerate transient errors keep going.
    """
    if response.is_success:
        return
    message = error_message(response, f"{action} failed with status {response.status_code}")
    retriable = response.status_code >= 500 or response.status_code == 429
    raise UpstreamError(message, retriable=retriable)
