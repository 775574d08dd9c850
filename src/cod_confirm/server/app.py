"""FastAPI application setup and configuration."""

from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cod_confirm.config.settings import settings
from cod_confirm.core.logger import setup_logger
from cod_confirm.core.monitoring import init_monitoring
from cod_confirm.server.context import AppContext

logger = setup_logger(__name__)


def create_app(context: Optional[AppContext] = None) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        context: Pre-built application context. Built from settings at
            startup when omitted.
    """
    app = FastAPI(
        title="COD Order Confirmation",
        version="1.0.0",
        description="Receives Shopify orders and confirms them with the customer over WhatsApp",
    )
    app.state.context = context

    # Initialize GlitchTip error monitoring (Sentry-compatible)
    init_monitoring(settings.glitchtip_dsn, settings.environment)

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from cod_confirm.server import routes

    app.include_router(routes.router)

    @app.on_event("startup")
    async def startup_handler():
        """
        Initialize resources on application startup.

        Creates tables, seeds default templates, bootstraps Shopify
        credentials, checks the WhatsApp gateway and starts the reminder sweep.
        """
        logger.info("=" * 60)
        logger.info("Starting COD Order Confirmation...")
        logger.info("=" * 60)

        try:
            if app.state.context is None:
                app.state.context = AppContext.build(settings)
            await app.state.context.start()
        except Exception as e:
            logger.error(f"Failed to start application: {e}", exc_info=True)
            raise

        logger.info("Application startup completed")

    @app.on_event("shutdown")
    async def shutdown_handler():
        """
        Gracefully shut down all resources.

        Stops the sweep, waits for pending reply and tag-update tasks, then
        closes the gateway client, Redis and the database engine.
        """
        logger.info("Starting graceful shutdown...")

        try:
            if app.state.context is not None:
                await app.state.context.close()
        except Exception as e:
            logger.error(f"Error during shutdown: {e}", exc_info=True)

        logger.info("Graceful shutdown completed")

    return app
