from __future__ import annotations
"""Pydantic v2 schemas for generation entries, references and remote videos."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Serializes to camelCase; accepts either spelling on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerationEntryRead(CamelModel):
    """A generated video as shown in history."""

    video_id: str
    prompt: str
    model: str
    provider: str
    created_at: datetime
    url: str
    content_type: str
    size: int
    reference_url: str | None = None

    @classmethod
    def from_entry(cls, entry) -> GenerationEntryRead:
        return cls(
            video_id=entry.video_id,
            prompt=entry.prompt,
            model=entry.model,
            provider=entry.provider,
            created_at=entry.created_at,
            url=entry.url,
            content_type=entry.content_type,
            size=entry.byte_size,
            reference_url=entry.reference_url,
        )


class HistoryResponse(BaseModel):
    videos: list[GenerationEntryRead]


class RemoteDownloadResponse(BaseModel):
    video: GenerationEntryRead


class SavedReferenceRead(CamelModel):
    file_name: str
    url: str
    created_at: datetime
    size: int

    @classmethod
    def from_reference(cls, ref) -> SavedReferenceRead:
        return cls(
            file_name=ref.file_name,
            url=ref.url,
            created_at=ref.created_at,
            size=ref.byte_size,
        )


class ReferencesResponse(BaseModel):
    references: list[SavedReferenceRead]


class RemoteVideoRead(CamelModel):
    """A job known to the provider account."""

    id: str | None = None
    status: str | None = None
    model: str | None = None
    duration: int | float | str | None = None
    # the remote listing keeps this one key snake_case on the wire
    aspect_ratio: str | None = Field(default=None, serialization_alias="aspect_ratio")
    created_at: str | None = None
    prompt: str = ""
    downloaded: bool = False
    local_url: str | None = None


class RemoteListResponse(BaseModel):
    videos: list[RemoteVideoRead]


class RemoteListRequest(CamelModel):
    api_key: str | None = None


class RemoteDownloadRequest(CamelModel):
    video_id: str | None = None
    api_key: str | None = None


class ErrorResponse(BaseModel):
    error: str
