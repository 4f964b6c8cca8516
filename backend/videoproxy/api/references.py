"""Saved reference image listing."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from videoproxy.api.deps import get_service
from videoproxy.schemas import ReferencesResponse, SavedReferenceRead
from videoproxy.services.generation_service import GenerationService

router = APIRouter()


@router.get("", response_model=ReferencesResponse)
async def list_references(service: GenerationService = Depends(get_service)):
    refs = await service.saved_references()
    return ReferencesResponse(references=[SavedReferenceRead.from_reference(r) for r in refs])
