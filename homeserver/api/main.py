"""
FastAPI application factory and configuration.

This module creates the FastAPI application instance,
configures exception handlers, and lifespan events.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from psycopg_pool import ConnectionPool

from homeserver.adapters.repository.memory import InMemoryRegistrationStore
from homeserver.adapters.repository.postgres import PostgresRegistrationStore, run_migrations
from homeserver.api.dependencies import create_auth_flow_engine
from homeserver.api.errors import install_exception_handlers
from homeserver.api.v3 import router as client_router
from homeserver.config.settings import Settings, get_settings
from homeserver.domain.exceptions import StorageFailure

logger = logging.getLogger(__name__)

CLIENT_API_PREFIX = "/_matrix/client/v3"

# OpenAPI tags for documentation grouping
tags_metadata = [
    {
        "name": "registration",
        "description": "Account registration - username availability, "
        "User-Interactive Authentication, guest accounts and access tokens",
    },
]


def configure_logging(settings: Settings) -> None:
    """Process-wide logging setup; uvicorn config can override this."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI lifespan context manager.

    Manages application startup and shutdown:
    - Creates the store (connection pool and migrations for PostgreSQL)
    - Creates the shared auth flow engine
    - Closes the connection pool on shutdown
    """
    settings = get_settings()
    configure_logging(settings)

    logger.info("Starting application for %s...", settings.server_name)

    pool = None
    if settings.storage_backend == "memory":
        logger.info("Using in-memory store")
        app.state.store = InMemoryRegistrationStore()
    else:
        logger.info("Connecting to database...")
        timeout_ms = int(settings.request_timeout_seconds * 1000)
        pool = ConnectionPool(
            conninfo=settings.database_url,
            min_size=settings.pool_min_size,
            max_size=settings.pool_max_size,
            timeout=settings.request_timeout_seconds,
            kwargs={"options": f"-c statement_timeout={timeout_ms}"},
            open=True,
        )

        logger.info("Running database migrations...")
        run_migrations(pool)

        app.state.store = PostgresRegistrationStore(pool, timeout=settings.request_timeout_seconds)

    app.state.auth_flow = create_auth_flow_engine(settings)
    app.state.registration_config = settings.registration_config()

    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Shutting down application...")
    if pool is not None:
        pool.close()
        logger.info("Database connection pool closed")


app = FastAPI(
    title="homeserver-registration",
    description="Homeserver account registration API - username availability, "
    "User-Interactive Authentication and access token issuance",
    version="0.1.0",
    openapi_tags=tags_metadata,
    lifespan=lifespan,
)

install_exception_handlers(app)

app.include_router(client_router, prefix=CLIENT_API_PREFIX)


@app.get("/health")
def health_check(request: Request) -> JSONResponse:
    """
    Health check endpoint with storage validation.

    Returns 200 OK if application and storage are healthy, 503 otherwise.
    """
    try:
        request.app.state.store.ping()
    except StorageFailure:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy"},
        )

    return JSONResponse(content={"status": "healthy"})
