"""
Unified Inbox - main API.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from inbox.api.error_handlers import register_exception_handlers
from inbox.api.routes import auto_reply, dashboard, feed, gmail, health, social, sync
from inbox.container import Container, build_container
from inbox.core.config import settings
from inbox.core.logging import setup_logging
from inbox.services.http_client import close_http_client

# Configure logging
setup_logging()

logger = logging.getLogger(__name__)


def create_app(container: Optional[Container] = None) -> FastAPI:
    """
    Build the application.

    Args:
        container: prebuilt services (tests); built from settings on startup
            when omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown."""
        logger.info(f"Starting {settings.APP_NAME}...")
        if getattr(app.state, "container", None) is None:
            app.state.container = build_container()
        services = app.state.container

        for service in services.sync_services.values():
            service.after_pass = services.reply_to_recent
            if services.settings.SYNC_AUTOSTART and service.has_fetchers:
                service.start()

        yield

        logger.info(f"Shutting down {settings.APP_NAME}...")
        services.stop()
        await close_http_client()

    app = FastAPI(
        title=settings.APP_NAME,
        description="Unified inbox for Facebook, Instagram and Gmail",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Gmail before the {platform} routes so /api/gmail/messages is not captured
    app.include_router(health.router, tags=["Health"])
    app.include_router(gmail.router)
    app.include_router(feed.router)
    app.include_router(social.router)
    app.include_router(sync.router)
    app.include_router(auto_reply.router)
    app.include_router(dashboard.router)

    @app.get("/")
    async def root():
        return {
            "app": settings.APP_NAME,
            "status": "running",
            "docs": "/docs",
        }

    return app


app = create_app()
