"""FastAPI server for the Sankhya sales-force API.

Main entry point for the API server.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes import health, products, orders, cache
from connectors.sankhya import (
    SankhyaConnector,
    SankhyaApiError,
    SankhyaServiceUnavailableError,
    SankhyaValidationError,
)
from core.cache import CacheSweeper, create_cache_backend
from core.config import SankhyaSettings, load_settings
from core.observability.logging import configure_logging, get_logger, with_correlation

logger = get_logger(__name__)


def error_status(error: SankhyaApiError) -> int:
    """HTTP status for a connector error."""
    if isinstance(error, SankhyaValidationError):
        return 400
    if isinstance(error, SankhyaServiceUnavailableError):
        return 503
    # Credential and unexpected-response failures are upstream problems
    return 502


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    settings: SankhyaSettings = app.state.settings
    owns_connector = app.state.connector is None

    # Startup
    if owns_connector:
        missing = settings.validate()
        if missing:
            logger.warning(f"Missing Sankhya credentials: {', '.join(missing)}")
        cache_backend = await create_cache_backend(settings)
        app.state.connector = SankhyaConnector(settings, cache=cache_backend)
        await app.state.connector.connect()

    sweeper = CacheSweeper(app.state.connector.cache, settings.cache_sweep_interval)
    sweeper.start()
    logger.info("Sankhya sales-force API starting up...")

    yield

    # Shutdown
    logger.info("Sankhya sales-force API shutting down...")
    await sweeper.stop()
    if owns_connector:
        await app.state.connector.disconnect()
        await app.state.connector.cache.close()
        app.state.connector = None


def create_app(
    settings: Optional[SankhyaSettings] = None,
    connector: Optional[SankhyaConnector] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Configuration (read from the environment when omitted)
        connector: Pre-built connector; when omitted one is created at startup
    """
    settings = settings or load_settings()
    configure_logging(
        level=getattr(logging, settings.log_level, logging.INFO),
        json_format=settings.log_json,
    )

    app = FastAPI(
        title="Sankhya Sales-Force API",
        description="Products, stock, prices and orders from the Sankhya ERP",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.settings = settings
    app.state.connector = connector

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def correlate_request(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        with with_correlation(request_id=request_id):
            response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(SankhyaApiError)
    async def sankhya_error_handler(request: Request, exc: SankhyaApiError) -> JSONResponse:
        status = error_status(exc)
        logger.warning(
            f"{request.method} {request.url.path} failed: {exc.message}",
            extra_fields={"status": status, "error_type": type(exc).__name__},
        )
        return JSONResponse(status_code=status, content={"error": exc.message})

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(products.router, prefix="/api/sankhya/produtos", tags=["Products"])
    app.include_router(orders.router, prefix="/api/sankhya/pedidos", tags=["Orders"])
    app.include_router(cache.router, prefix="/cache", tags=["Cache"])

    return app


# Default app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.server:app", host="0.0.0.0", port=8000, reload=True)
