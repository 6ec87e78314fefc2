"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from flitevault import __version__
from flitevault.api.routes import router as admin_router
from flitevault.config import settings
from flitevault.logging import configure_logging, is_configured

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None]:
    """Log the configured store on startup."""
    if not settings.supabase_url:
        log.warning("Store URL not configured; snapshot endpoints will return 503")
    else:
        log.info("Admin API ready", store=settings.supabase_url)
    yield


def create_api_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI app with the admin routes and CORS for the portal.
    """
    if not is_configured():
        configure_logging(service_name="api", level=settings.log_level)

    app = FastAPI(
        title="FliteVault API",
        description="Snapshot export and restore for the b4flite crew portal",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(admin_router)

    @app.get("/")
    async def root() -> dict[str, str]:
        """API root - basic info."""
        return {"name": "FliteVault API", "version": __version__, "docs": "/docs"}

    return app
