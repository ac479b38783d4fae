"""
FastAPI application factory and configuration.

This module creates the FastAPI application instance,
configures exception handlers and lifespan events.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from psycopg_pool import ConnectionPool

from src.adapters.kyc.didit import DiditClient
from src.adapters.registry.browser import BrowserPool
from src.adapters.repository.postgres import run_migrations
from src.api.errors import register_exception_handlers
from src.api.v1 import router as v1_router
from src.config.settings import get_settings

logger = logging.getLogger(__name__)

# OpenAPI tags for documentation grouping
tags_metadata = [
    {
        "name": "registrations",
        "description": "Registration drafts: email verification, readiness and completion",
    },
    {
        "name": "license",
        "description": "Professional license lookup against the health professional registry",
    },
    {
        "name": "identity",
        "description": "Identity verification sessions, provider webhook and redirect",
    },
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI lifespan context manager.

    Manages application startup and shutdown:
    - Creates database connection pool and runs migrations
    - Creates the shared browser pool (launched lazily on first lookup)
    - Creates the identity provider client
    - Closes all of them on shutdown
    """
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    logger.info("Starting application...")
    logger.info("Connecting to database...")

    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
    )

    logger.info("Running database migrations...")
    run_migrations(pool)

    app.state.pool = pool
    app.state.browser_pool = BrowserPool(
        headless=settings.registry_headless,
        user_agent=settings.registry_user_agent,
        max_concurrent=settings.max_concurrent_lookups,
        admission_timeout=settings.lookup_admission_timeout,
    )
    app.state.kyc_client = DiditClient(
        api_key=settings.kyc_api_key,
        base_url=settings.kyc_base_url,
        timeout=settings.kyc_timeout,
        max_retries=settings.kyc_max_retries,
        retry_delay=settings.kyc_retry_delay,
    )
    if not settings.kyc_api_key:
        logger.warning("Identity provider API key not configured; identity routes will answer 503")

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down application...")
    await app.state.browser_pool.close()
    app.state.kyc_client.close()
    pool.close()
    logger.info("Browser, provider client and database pool closed")


app = FastAPI(
    title="credentia",
    description="Professional credential verification - registration, license lookup and identity checks",
    version="0.1.0",
    openapi_tags=tags_metadata,
    lifespan=lifespan,
)

register_exception_handlers(app)

# Include v1 API routes
app.include_router(v1_router, prefix="/v1")


@app.get("/health")
async def health_check(request: Request) -> dict[str, str]:
    """
    Health check endpoint with database validation.

    Returns 200 OK if application and database are healthy.
    Raises exception if database connection fails.
    """
    pool = request.app.state.pool
    with pool.connection() as conn:
        conn.execute("SELECT 1")

    return {"status": "healthy"}
