"""FastAPI web application for ChainLens.

Serves MCP over HTTP and a few maintenance routes.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config import configure_logging, load_settings
from .routes import mcp, sources

logger = logging.getLogger(__name__)


def create_app(services=None, http_transport=None) -> FastAPI:
    """Build the application.

    Args:
        services: Pre-built Services; when omitted they are created from
            settings at startup and closed at shutdown
        http_transport: Optional httpx transport for outbound URL checks
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler for startup/shutdown events."""
        owned = services is None
        if owned:
            from ..services import Services

            settings = load_settings()
            configure_logging(settings.logging)
            app.state.services = await Services.create(settings)
        else:
            app.state.services = services

        logger.info("ChainLens web server starting up...")
        yield
        logger.info("ChainLens web server shutting down...")

        if owned:
            await app.state.services.close()

    app = FastAPI(
        title="ChainLens",
        description="Documentation knowledge base served over MCP",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.http_transport = http_transport
    if services is not None:
        app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(mcp.router, prefix="/api/mcp", tags=["mcp"])
    app.include_router(sources.router, prefix="/api", tags=["sources"])

    @app.get("/api/health")
    async def health_check(request: Request) -> dict[str, bool]:
        """Database and embedding provider status."""
        state_services = request.app.state.services
        return {
            "db": await state_services.store.ping(),
            "embeddings": state_services.embedder.configured,
        }

    return app


app = create_app()
