from __future__ import annotations
"""VideoProxy — FastAPI application entry point.

Builds the generation service, mounts the API routes, serves generated
videos and saved references as static files, and converts pipeline errors
into JSON error responses.

Run with ``videoproxy`` (HTTP, plus HTTPS when certificates are present) or
``uvicorn videoproxy.main:create_app --factory``.
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from videoproxy.api.router import api_router
from videoproxy.config import Settings, get_settings
from videoproxy.services.asset_downloader import AssetDownloader
from videoproxy.services.errors import GenerationError
from videoproxy.services.generation_ledger import GenerationLedger
from videoproxy.services.generation_service import GenerationService
from videoproxy.services.providers import build_providers
from videoproxy.services.reference_resolver import ReferenceResolver
from videoproxy.services.reference_store import ReferenceStore

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.DEBUG else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def build_service(settings: Settings, http_client: httpx.AsyncClient) -> GenerationService:
    """Wire the generation pipeline from settings."""
    references = ReferenceStore(settings.REFERENCES_DIR)
    return GenerationService(
        settings=settings,
        providers=build_providers(settings, http_client),
        ledger=GenerationLedger(
            settings.VIDEOS_DIR,
            limit=settings.VIDEO_HISTORY_LIMIT,
            default_model=settings.OPENAI_VIDEO_MODEL,
        ),
        downloader=AssetDownloader(settings.VIDEOS_DIR, http_client),
        resolver=ReferenceResolver(references, settings.UPLOADS_DIR),
        references=references,
    )


def create_app(
    settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Application factory. Pass ``http_client`` to inject a custom transport."""
    settings = settings or get_settings()
    configure_logging(settings)

    own_client = http_client is None
    client = http_client or httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("%s starting up...", settings.APP_NAME)
        logger.info("Videos: %s, references: %s", settings.VIDEOS_DIR, settings.REFERENCES_DIR)
        yield
        if own_client:
            await client.aclose()
        logger.info("%s shut down", settings.APP_NAME)

    app = FastAPI(
        title="VideoProxy API",
        description="Prompt-to-video proxy for OpenAI Sora and Google Veo",
        version="0.1.0",
        lifespan=lifespan,
        redirect_slashes=False,
    )
    app.state.settings = settings
    app.state.service = build_service(settings, client)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_error_handlers(app)

    app.include_router(api_router)

    # Static byte serving for generated videos and saved references
    os.makedirs(settings.VIDEOS_DIR, exist_ok=True)
    os.makedirs(settings.REFERENCES_DIR, exist_ok=True)
    app.mount("/videos", StaticFiles(directory=settings.VIDEOS_DIR), name="videos")
    app.mount("/references", StaticFiles(directory=settings.REFERENCES_DIR), name="references")

    @app.get("/health")
    async def health():
        """Service status."""
        return {
            "service": settings.APP_NAME,
            "status": "healthy",
            "history": len(app.state.service.ledger),
            "history_limit": settings.VIDEO_HISTORY_LIMIT,
        }

    return app


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(GenerationError)
    async def generation_error_handler(request: Request, exc: GenerationError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        else:
            logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}"
            for err in exc.errors()
        )
        return JSONResponse(status_code=400, content={"error": details or "Invalid request."})

    @app.exception_handler(httpx.HTTPError)
    async def upstream_http_error_handler(request: Request, exc: httpx.HTTPError):
        logger.error("%s %s upstream request failed: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=502,
            content={"error": f"Upstream request failed: {exc}"},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("%s %s crashed", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": str(exc) or "Internal error."})


# ---------------------------------------------------------------------------
# Server bootstrap
# ---------------------------------------------------------------------------

def can_start_https(settings: Settings) -> bool:
    if not settings.SSL_CERT_PATH or not settings.SSL_KEY_PATH:
        return False
    return os.path.isfile(settings.SSL_CERT_PATH) and os.path.isfile(settings.SSL_KEY_PATH)


async def serve(settings: Settings) -> None:
    """Run the HTTP listener, and an HTTPS listener when TLS material exists."""
    app = create_app(settings)
    servers = [
        uvicorn.Server(uvicorn.Config(
            app, host=settings.HOST, port=settings.PORT, log_config=None,
        )),
    ]
    logger.info("Listening on http://%s:%d", settings.HOST, settings.PORT)

    if can_start_https(settings):
        servers.append(uvicorn.Server(uvicorn.Config(
            app,
            host=settings.HOST,
            port=settings.HTTPS_PORT,
            ssl_certfile=settings.SSL_CERT_PATH,
            ssl_keyfile=settings.SSL_KEY_PATH,
            lifespan="off",
            log_config=None,
        )))
        logger.info("Listening on https://%s:%d", settings.HOST, settings.HTTPS_PORT)
    else:
        logger.warning(
            "HTTPS not started. Ensure SSL_CERT_PATH and SSL_KEY_PATH point to readable files."
        )

    await asyncio.gather(*(server.serve() for server in servers))


def run() -> None:
    asyncio.run(serve(get_settings()))


if __name__ == "__main__":
    run()
