"""FastAPI application entrypoint: shared clients, routers, middleware."""

import logging
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager

import httpx
from fastapi import FastAPI
from redis.asyncio import Redis
from sqlalchemy import text

from restock.config import Settings, get_settings
from restock.database import engine
from restock.middleware.logging import RequestLoggingMiddleware, configure_structured_logging
from restock.routes import precompute
from restock.services.fetch_client import RetryingFetchClient
from restock.services.token_provider import OAuthTokenProvider

API_VERSION = "0.1.0"

logger = logging.getLogger("restock")


async def _check_database() -> None:
    async with engine.connect() as connection:
        await connection.execute(text("SELECT 1"))


async def _open_status_cache(settings: Settings, stack: AsyncExitStack) -> Redis:
    redis = Redis.from_url(settings.redis_url, decode_responses=True)
    stack.push_async_callback(redis.aclose)
    await redis.ping()
    return redis


async def _open_provider(app: FastAPI, settings: Settings, stack: AsyncExitStack) -> None:
    """One pooled HTTP client, retry wrapper and token cache per process."""
    http_client = await stack.enter_async_context(
        httpx.AsyncClient(timeout=settings.provider_timeout_seconds)
    )
    fetcher = RetryingFetchClient(http_client)
    app.state.fetcher = fetcher
    app.state.token_provider = OAuthTokenProvider(fetcher, settings)
    if not settings.zoho_org_id:
        logger.warning("provider organization id is not configured; chunk runs will fail")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup verifies Postgres, connects the Redis status cache and opens
    the provider client; shutdown closes them in reverse order."""
    settings = get_settings()
    configure_structured_logging(settings)
    logger.info(
        "Restock API starting",
        extra={
            "inventory_base": settings.zoho_inventory_base,
            "batch_size": settings.precompute_batch_size,
            "concurrency": settings.precompute_concurrency,
        },
    )

    async with AsyncExitStack() as stack:
        stack.push_async_callback(engine.dispose)
        try:
            await _check_database()
            app.state.redis = await _open_status_cache(settings, stack)
            await _open_provider(app, settings, stack)
        except Exception:
            logger.exception("Restock API failed to start")
            raise

        yield
        logger.info("Restock API shutting down")


app = FastAPI(
    title="Restock API",
    description=(
        "Resumable, chunked precompute of purchase-order reorder suggestions "
        "from inventory provider catalog and sales history."
    ),
    version=API_VERSION,
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)


@app.get("/health", tags=["system"])
async def health_check() -> dict[str, str]:
    """Liveness only; dependencies are verified at startup."""
    return {"status": "ok", "service": "restock", "version": API_VERSION}


app.include_router(precompute.router, prefix="/api/v1")
