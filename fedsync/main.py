from pathlib import Path
from contextlib import asynccontextmanager
import asyncio
from typing import Optional

from alembic import command
from alembic.config import Config
from fastapi import FastAPI

from fedsync.api.deps import get_sync_service
from fedsync.api.routes import health, stats, sync
from fedsync.core.config import settings
from fedsync.core.logging import get_logger


log = get_logger("fedsync")

# Background task handle
_sync_task: Optional[asyncio.Task] = None


def run_migrations() -> None:
    """Execute Alembic migrations programmatically on startup."""
    project_root = Path(__file__).resolve().parent.parent
    alembic_cfg = Config(str(project_root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.DATABASE_URL)
    log.info("Running Alembic migrations to head")
    command.upgrade(alembic_cfg, "head")
    log.info("Alembic migrations applied")


async def run_sync_pipeline() -> None:
    """Run one engine pass over every registered dataset."""
    log.info("Starting scheduled sync run...")
    try:
        summary = await get_sync_service().run()
        log.info(f"Scheduled sync finished: synced={summary.synced} skipped={summary.skipped} failed={summary.failed}")
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        log.exception(f"Scheduled sync run failed: {exc}")


async def scheduled_sync_task() -> None:
    """Background task that runs the engine at the configured interval.

    Datasets decide for themselves whether they are due, so the interval only
    bounds how quickly a newly due dataset gets picked up.
    """
    interval = settings.SYNC_INTERVAL_SECONDS
    log.info(f"Scheduled sync task started (interval: {interval}s)")

    while True:
        try:
            await run_sync_pipeline()
            await asyncio.sleep(interval)
        except asyncio.CancelledError:
            log.info("Scheduled sync task cancelled")
            break


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _sync_task

    log.info(f"Starting application in {settings.ENV.upper()} mode")

    try:
        run_migrations()
    except Exception:
        log.exception("Failed to apply migrations on startup")
        raise

    if settings.SYNC_ENABLED:
        log.info("Starting scheduled sync background task...")
        _sync_task = asyncio.create_task(scheduled_sync_task())
    else:
        log.info("Scheduled sync is disabled (SYNC_ENABLED=false)")

    yield

    log.info("Shutting down services...")
    if _sync_task:
        log.info("Cancelling scheduled sync task...")
        _sync_task.cancel()
        try:
            await _sync_task
        except asyncio.CancelledError:
            pass
        _sync_task = None

    log.info("Application shutdown complete")


app = FastAPI(
    title="Federal Dataset Sync",
    description="Scheduled ingestion of federal datasets with a durable sync log",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.docs_enabled else None,
    redoc_url="/redoc" if settings.docs_enabled else None,
    openapi_url="/openapi.json" if settings.docs_enabled else None,
    debug=settings.debug_enabled,
)


app.include_router(health.router)
app.include_router(stats.router)
app.include_router(sync.router)
