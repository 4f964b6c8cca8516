from __future__ import annotations
"""Video history and OpenAI remote job endpoints."""

from fastapi import APIRouter, Depends

from videoproxy.api.deps import get_service
from videoproxy.schemas import (
    GenerationEntryRead,
    HistoryResponse,
    RemoteDownloadRequest,
    RemoteDownloadResponse,
    RemoteListRequest,
    RemoteListResponse,
    RemoteVideoRead,
)
from videoproxy.services.generation_service import GenerationService

router = APIRouter()


@router.get("", response_model=HistoryResponse)
async def list_videos(service: GenerationService = Depends(get_service)):
    """All videos on disk, newest first, with ledger metadata where known."""
    entries = await service.history()
    return HistoryResponse(videos=[GenerationEntryRead.from_entry(e) for e in entries])


@router.post("/remote/list", response_model=RemoteListResponse)
async def list_remote_videos(
    req: RemoteListRequest | None = None,
    service: GenerationService = Depends(get_service),
):
    """List jobs on the OpenAI account, flagged with local download state."""
    videos = await service.list_remote(req.api_key if req else None)
    return RemoteListResponse(videos=[RemoteVideoRead(**v) for v in videos])


@router.post("/remote/download", response_model=RemoteDownloadResponse)
async def download_remote_video(
    req: RemoteDownloadRequest,
    service: GenerationService = Depends(get_service),
):
    """Download an OpenAI job by id and add it to the local history."""
    entry = await service.download_remote(req.video_id, req.api_key)
    return RemoteDownloadResponse(video=GenerationEntryRead.from_entry(entry))
