from __future__ import annotations
"""Generation endpoint: multipart form in, ledger entry out."""

import logging

from fastapi import APIRouter, Depends, File, Form, UploadFile

from videoproxy.api.deps import get_service
from videoproxy.schemas import GenerationEntryRead
from videoproxy.services.generation_service import GenerationService
from videoproxy.services.reference_resolver import IncomingUpload

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/generate", response_model=GenerationEntryRead)
async def generate_video(
    prompt: str = Form(""),
    provider: str = Form(""),
    model: str = Form(""),
    seconds: str = Form(""),
    size: str = Form(""),
    reference: str = Form(""),
    api_key: str = Form("", alias="apiKey"),
    save_reference: bool = Form(True, alias="saveReference"),
    input_reference: UploadFile | None = File(None),
    service: GenerationService = Depends(get_service),
):
    """Generate a video and block until it is downloaded locally.

    The reference image is either uploaded as ``input_reference`` or named by
    ``reference`` (a saved reference URL or file name); an upload wins.
    """
    request = service.build_request(
        prompt=prompt,
        provider=provider,
        model=model,
        seconds=seconds,
        size=size,
        api_key=api_key,
        save_reference=save_reference,
    )

    upload = None
    if input_reference is not None and input_reference.filename:
        upload = IncomingUpload(
            file_name=input_reference.filename,
            content_type=input_reference.content_type or "",
            stream=input_reference.file,
        )

    logger.info(
        "Generate request: provider=%s model=%s reference=%s",
        request.provider.value, request.model,
        "upload" if upload else ("saved" if reference.strip() else "none"),
    )
    entry = await service.generate(request, upload=upload, reference=reference)
    return GenerationEntryRead.from_entry(entry)
