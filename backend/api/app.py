"""FastAPI application factory"""

import asyncio
import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from api.core.config import get_settings
from api.core.database import get_database_manager, init_database_manager
from api.core.dependencies import build_drop_engine, reset_services
from api.core.logging import setup_logging
from api.routers import drops_router, queues_router
from shared.database import DatabaseManager

logger = logging.getLogger(__name__)

_start_time: float = 0.0
_db_retry_task: asyncio.Task | None = None


async def _restore_drop_results(db_manager: DatabaseManager) -> None:
    """Reload the picked-up / missed lists so a restart does not lose them."""
    try:
        await build_drop_engine(db_manager.pool).load_recent()
    except Exception as e:
        logger.warning(f"Could not restore drop results: {type(e).__name__}: {e}")


async def _db_retry_loop(db_manager: DatabaseManager) -> None:
    """Background loop to retry DB connection after startup failure."""
    delay = 5
    max_delay = 60
    while True:
        await asyncio.sleep(delay)
        if db_manager.is_connected:
            return
        try:
            await db_manager.connect()
        except Exception as e:
            delay = min(delay * 2, max_delay)
            logger.warning(
                f"DB background retry failed: {type(e).__name__}: {e}, next retry in {delay}s"
            )
            continue
        logger.info("Database connected (background retry)")
        await _restore_drop_results(db_manager)
        return


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle startup and shutdown"""
    global _start_time, _db_retry_task
    _start_time = time.time()

    settings = get_settings()
    logger.info("Starting guild queue API server")
    logger.info(f"Environment: {settings.environment}")

    # Wait up to 30s for the DB before accepting requests, then keep retrying
    # in the background; endpoints answer 503 until the pool exists.
    db_manager = init_database_manager(settings.database_url, settings.db_max_pool_size)
    try:
        await asyncio.wait_for(db_manager.connect(), timeout=30)
        logger.info("Database connected")
        await _restore_drop_results(db_manager)
    except Exception as e:
        logger.error(
            f"DB connection failed during startup: {type(e).__name__}: {e}, retrying in background"
        )
        _db_retry_task = asyncio.create_task(_db_retry_loop(db_manager))

    yield

    logger.info("Shutting down guild queue API server")
    if _db_retry_task:
        _db_retry_task.cancel()
    reset_services()
    await db_manager.disconnect()


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    settings = get_settings()

    setup_logging(settings)

    app = FastAPI(
        title="Guild Queue API",
        description="Queue curation and item drop runs for guild masters",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(queues_router.router)
    app.include_router(drops_router.router)

    @app.get("/")
    async def root():
        return {"service": "guild-queue-api", "status": "running"}

    # Liveness check, no DB dependency
    @app.get("/health")
    async def health():
        return {
            "status": "healthy",
            "uptime_seconds": int(time.time() - _start_time),
        }

    @app.get("/status")
    async def status():
        """Readiness / status endpoint, includes an actual DB health check"""
        try:
            db_ok = await get_database_manager().check_health()
        except RuntimeError:
            db_ok = False
        return {
            "service": "guild-queue-api",
            "version": "1.0.0",
            "uptime_seconds": int(time.time() - _start_time),
            "db_connected": db_ok,
            "environment": settings.environment,
        }

    @app.api_route("/ping", methods=["GET", "HEAD"], response_class=PlainTextResponse)
    async def ping():
        return "pong"

    logger.info("FastAPI application configured")

    return app
