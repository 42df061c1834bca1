"""FastAPI app: market pricing API, manual sync triggers and the scheduled worker."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Response
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from resale_market.api.routes import market
from resale_market.config import settings
from resale_market.db.models import Base
from resale_market.db.session import engine
from resale_market.logging_config import setup_logging
from resale_market.worker.scheduler import setup_scheduler
from resale_market.worker.sync_lock import sync_lock_manager

setup_logging()
logger = logging.getLogger(__name__)

scheduler = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    global scheduler

    logger.info("Starting resale market service...")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    if settings.scheduler_enabled:
        scheduler = setup_scheduler()
        scheduler.start()
        logger.info("Market sync scheduler started")
    else:
        logger.info("Scheduler disabled; syncs run only when triggered through the API")

    yield

    logger.info("Shutting down...")
    if scheduler:
        scheduler.shutdown(wait=False)
    await sync_lock_manager.close()
    await engine.dispose()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Resale Market Sync",
    description="StockX and Alias market data with fee-adjusted resale pricing",
    version="0.1.0",
    lifespan=lifespan,
)

Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    excluded_handlers=["/metrics", "/health", "/favicon.ico"],
).instrument(app).expose(app, include_in_schema=True, tags=["monitoring"])

app.include_router(market.router)


@app.get("/health")
async def health(response: Response):
    """Database reachability plus the next scheduled sync."""
    checks = {"database": "ok"}
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Health check: database unreachable: {e}")
        checks["database"] = "unreachable"
        response.status_code = 503

    next_sync = None
    if scheduler is not None:
        job = scheduler.get_job("market_sync")
        if job is not None and job.next_run_time is not None:
            next_sync = job.next_run_time.isoformat()

    status = "healthy" if checks["database"] == "ok" else "degraded"
    return {"status": status, "checks": checks, "next_sync": next_sync}


@app.get("/favicon.ico")
async def favicon():
    return Response(status_code=204)


if __name__ == "__main__":
    uvicorn.run(
        "resale_market.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
    )
