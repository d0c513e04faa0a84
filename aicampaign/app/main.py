from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from aicampaign.app.api.campaign import router as campaign_router
from aicampaign.app.core.cache import RedisCache, get_cache
from aicampaign.app.core.config import settings
from aicampaign.app.core.logging import get_logger, setup_logging
from aicampaign.app.db.async_session import (
    close_async_engine,
    get_async_engine,
    init_async_db,
)
from aicampaign.app.exceptions import CampaignServiceError
from aicampaign.app.services.campaign_quota import SlotReconciler, get_campaign_quota_service


def create_app() -> FastAPI:
    """Build the app: logging, lifespan hooks, routes and error mapping."""
    setup_logging()
    logger = get_logger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Create tables, start the optional reconciler, clean up on shutdown."""
        await init_async_db()

        reconciler = SlotReconciler(get_campaign_quota_service())
        await reconciler.start()

        logger.info(
            "Application startup complete",
            extra={
                "redis_enabled": settings.redis_enabled,
                "reconcile_enabled": settings.campaign_reconcile_enabled,
                "debug_mode": settings.debug,
            },
        )

        yield

        await reconciler.stop()

        await get_cache().close()

        await close_async_engine()

        logger.info("Application shutdown complete")

    app = FastAPI(
        title="AI Campaign Service",
        description="Shared AI campaign slot quota with atomic reservations",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.include_router(campaign_router)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        """Report database and cache reachability."""
        components = {
            "database": await _check_database(),
            "cache": await _check_cache(),
        }
        degraded = any(c["status"] != "ok" for c in components.values())
        return {"status": "degraded" if degraded else "ok", "components": components}

    @app.exception_handler(CampaignServiceError)
    async def campaign_error_handler(request: Request, exc: CampaignServiceError) -> JSONResponse:
        """Map campaign errors to their HTTP status and a stable error code."""
        if exc.status_code >= 500:
            logger.error(f"Campaign service error [{exc.code}]: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_response())

    return app


async def _check_database() -> dict[str, Any]:
    try:
        async with get_async_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        return {"status": "error", "error": str(e)[:100]}
    return {"status": "ok"}


async def _check_cache() -> dict[str, Any]:
    cache = get_cache()
    probe_key = "ai_campaign:health"
    try:
        await cache.set(probe_key, b"ping", ttl=5)
        value = await cache.get(probe_key)
        await cache.delete(probe_key)
    except Exception as e:
        return {"status": "error", "error": str(e)[:100]}
    if value != b"ping":
        return {"status": "error", "error": "Unexpected value"}
    return {"status": "ok", "type": "redis" if isinstance(cache, RedisCache) else "memory"}


# Create the application instance
app = create_app()
