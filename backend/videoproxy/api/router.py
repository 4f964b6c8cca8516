from __future__ import annotations
"""Master API router — mounts all sub-routers."""

from fastapi import APIRouter

from videoproxy.api.generate import router as generate_router
from videoproxy.api.references import router as references_router
from videoproxy.api.videos import router as videos_router
from videoproxy.schemas import ErrorResponse

api_router = APIRouter(
    prefix="/api",
    redirect_slashes=False,
    responses={
        400: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        504: {"model": ErrorResponse},
    },
)

api_router.include_router(generate_router, tags=["Generation"])
api_router.include_router(videos_router, prefix="/videos", tags=["Videos"])
api_router.include_router(references_router, prefix="/references", tags=["References"])
