"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from mailsync.infrastructure import get_settings
from mailsync.infrastructure.factory import MailsyncServices, build_services
from mailsync.infrastructure.log_config import configure_logging


def create_app(services: MailsyncServices | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Pass ``services`` to run against prebuilt stores (tests); otherwise they
    are built from settings at startup and closed at shutdown.
    """
    settings = services.settings if services else get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler for startup/shutdown."""
        configure_logging(settings.log_level)
        logger.info(f"Starting {settings.app_name} v{settings.app_version}")
        logger.info(f"Environment: {settings.environment}")

        owned = services is None
        app.state.services = services or build_services(settings)

        yield

        logger.info("Shutting down...")
        if owned:
            app.state.services.close()
        logger.info("Shutdown complete")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Gmail mailbox sync and content normalization",
        lifespan=lifespan,
    )

    # Register routes
    from mailsync.api.routes import router
    from mailsync.infrastructure.http.gmail_push import router as push_router

    app.include_router(router)
    app.include_router(push_router)

    return app


# Create app instance
app = create_app()
