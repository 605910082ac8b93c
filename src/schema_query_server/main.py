"""
Application Entry Point

Defines the FastAPI application, registers routers, configures logging and
global exception handling, and provides a test-friendly application factory.
"""

from __future__ import annotations

import logging
from fastapi import FastAPI

from .config import settings
from .core.errors import unhandled_exception_handler

from .api import (
    health_routes,
    synthesis_routes,
)


logger = logging.getLogger("sqs.app")


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="schema-query-server",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(health_routes.router)
    app.include_router(synthesis_routes.router)

    @app.on_event("startup")
    async def _startup() -> None:
        logger.info("Starting schema-query-server")
        if not settings.openai_api_key.get_secret_value():
            logger.warning("OPENAI_API_KEY is not set; generation requests will fail")

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        logger.info("Shutting down schema-query-server")

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn/Gunicorn)
# ---------------------------------------------------------------------

app = create_app()
