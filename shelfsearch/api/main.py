"""
ShelfSearch API

FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from fastapi import FastAPI, Request
from loguru import logger

from shelfsearch import __version__
from shelfsearch.exceptions import IndexUnavailableError

from .schemas import HealthResponse
from .routes import search
from .middleware import (
    setup_logging,
    setup_exception_handlers,
    LoggingConfig,
)
from .dependencies import (
    get_settings,
    init_services,
    ServiceContainer,
    Settings,
)

# Configure stdlib logging (request middleware); library code logs via loguru
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


# =============================================================================
# Application Lifespan
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Handles startup and shutdown tasks:
    - Build the service container
    - Ensure the books index exists (failure -> degraded mode, search 503)
    - Close network clients on shutdown
    """
    settings: Settings = app.state.settings
    logger.info(f"Starting ShelfSearch in {settings.environment} mode")

    services: Optional[ServiceContainer] = getattr(app.state, "services", None)
    if services is None:
        services = init_services(settings)
        app.state.services = services

    try:
        try:
            created = await services.index_manager.ensure_index()
            app.state.search_available = True
            if created:
                logger.info(
                    f"Index '{settings.books_index}' created; "
                    f"run a sync to populate it"
                )
        except IndexUnavailableError as e:
            app.state.search_available = False
            logger.error(f"Search index unavailable, starting in degraded mode: {e}")

        logger.info("ShelfSearch started successfully")

        yield

    finally:
        logger.info("Shutting down ShelfSearch...")
        await services.close()
        logger.info("Shutdown complete")


# =============================================================================
# Application Factory
# =============================================================================

def create_app(
    settings: Settings = None,
    services: Optional[ServiceContainer] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Application settings. If None, loads from environment.
        services: Pre-built service container (tests). Built lazily otherwise.

    Returns:
        Configured FastAPI application.
    """
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title="ShelfSearch",
        description="Hybrid search for a personal library catalog.",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.services = services
    app.state.search_available = True

    # ==========================================================================
    # Middleware
    # ==========================================================================

    setup_logging(
        app,
        config=LoggingConfig(enabled=True),
        structured=settings.environment not in ("development", "test"),
    )

    setup_exception_handlers(app)

    # ==========================================================================
    # Routers
    # ==========================================================================

    api_prefix = "/api/v1"

    app.include_router(
        search.router,
        prefix=api_prefix,
    )

    # ==========================================================================
    # Root Routes
    # ==========================================================================

    @app.get("/", include_in_schema=False)
    async def root():
        """Root endpoint with API info."""
        return {
            "name": "ShelfSearch",
            "version": __version__,
            "status": "running",
            "docs": "/docs" if settings.debug else None,
        }

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health_check(request: Request) -> HealthResponse:
        """
        Health check endpoint.

        Reports whether search is being served and the state of each
        backing component.
        """
        search_available = getattr(request.app.state, "search_available", False)
        services = request.app.state.services

        components = {
            "search_index": "healthy" if search_available else "unavailable",
        }

        if services is not None and services.settings.embeddings_api_key:
            components["embeddings"] = "configured"
        else:
            components["embeddings"] = "not_configured"

        return HealthResponse(
            status="healthy" if search_available else "degraded",
            version=__version__,
            search_available=search_available,
            components=components,
        )

    return app


# =============================================================================
# Application Instance
# =============================================================================

app = create_app()


# =============================================================================
# CLI Entry Point
# =============================================================================

def main():
    """Run the application using uvicorn."""
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "shelfsearch.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        workers=1 if settings.debug else 4,
        log_level="debug" if settings.debug else "info",
    )


if __name__ == "__main__":
    main()
