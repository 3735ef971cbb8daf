"""
Deferlink: deferred deep linking and referral attribution.
Main application entry point.
"""

import asyncio
import contextlib
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from deferlink.api.deeplink import router as deeplink_router
from deferlink.api.pending import router as pending_router
from deferlink.api.referrals import router as referrals_router
from deferlink.api.well_known import router as well_known_router
from deferlink.config import get_settings
from deferlink.core.deferred import DeferredLinker
from deferlink.middleware.security import SecurityHeadersMiddleware
from deferlink.storage.base import LinkStorage, StorageError, run_expiry_sweeper
from deferlink.storage.factory import build_storage

import structlog

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.dev.ConsoleRenderer() if get_settings().debug else structlog.processors.JSONRenderer(),
    ],
)

logger = structlog.get_logger()

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    linker: DeferredLinker = app.state.linker
    logger.info("deferlink_starting", base_url=settings.base_url, storage=settings.storage_backend)

    sweeper = asyncio.create_task(run_expiry_sweeper(linker.storage, settings.sweep_interval_seconds))
    yield
    sweeper.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweeper
    await linker.storage.close()
    logger.info("deferlink_shutting_down")


async def storage_error_handler(request: Request, exc: StorageError):
    logger.error("storage_error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=503, content={"detail": "Storage unavailable"})


def create_app(storage: LinkStorage | None = None) -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="Deferlink",
        description="Deferred deep links and referral attribution.",
        version=VERSION,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
    )
    app.state.linker = DeferredLinker(
        storage if storage is not None else build_storage(settings),
        ttl_seconds=settings.pending_link_ttl_seconds,
    )

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [settings.base_url],
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "X-Device-Id"],
    )
    app.add_exception_handler(StorageError, storage_error_handler)

    # --- Routes ---
    app.include_router(well_known_router)
    app.include_router(deeplink_router)
    app.include_router(pending_router)
    app.include_router(referrals_router)

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": "deferlink", "version": VERSION}

    return app


app = create_app()
