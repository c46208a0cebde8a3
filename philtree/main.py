"""
PhilTree - Main Application Entry Point
=======================================

Initializes the FastAPI application with routes, middleware and lifecycle
handlers for the concept graph service.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from philtree import __version__
from philtree.api.v1.metrics import router as metrics_router
from philtree.api.v1.router import api_router
from philtree.core.config import settings
from philtree.core.database import create_db_and_tables, engine
from philtree.core.logging import configure_logging
from philtree.middleware import PrometheusMiddleware, RequestIdMiddleware, RequestLoggingMiddleware

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    - Startup: create tables in development (production uses Alembic)
    - Shutdown: dispose the connection pool
    """
    if settings.APP_ENV != "test":
        if settings.is_development:
            try:
                await create_db_and_tables()
            except Exception as e:
                logger.warning(f"Could not create database tables: {e} - continuing without database")

    yield

    if settings.APP_ENV != "test":
        await engine.dispose()


def create_application() -> FastAPI:
    """
    Application factory function.

    Returns:
        FastAPI: Configured application instance
    """
    configure_logging()

    app = FastAPI(
        title=settings.APP_NAME,
        description="Shared, procedurally grown graph of philosophical concepts",
        version=__version__,
        openapi_url=f"{settings.API_PREFIX}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # ---------------------------------------------------------------------------
    # Middleware (order matters - first added = last executed)
    # ---------------------------------------------------------------------------

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(PrometheusMiddleware)
    # Outermost, so the request id is set before logging runs.
    app.add_middleware(RequestIdMiddleware)

    # ---------------------------------------------------------------------------
    # Routes
    # ---------------------------------------------------------------------------

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Liveness probe for container orchestration."""
        return {
            "status": "healthy",
            "app": settings.APP_NAME,
            "version": __version__,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    app.include_router(metrics_router, prefix="")
    app.include_router(api_router, prefix=settings.API_PREFIX)

    return app


# Create application instance
app = create_application()
