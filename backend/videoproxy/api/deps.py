"""FastAPI dependency providers for objects created in the app lifespan."""

from __future__ import annotations

from fastapi import Request

from videoproxy.services.generation_service import GenerationService


def get_service(request: Request) -> GenerationService:
    return request.app.state.service
