"""FastAPI dependencies."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from resale_market.db.cache_store import CacheStore
from resale_market.db.session import AsyncSessionLocal, get_db
from resale_market.pricing.service import PricingService
from resale_market.worker.sync_lock import sync_lock_manager
from resale_market.worker.tasks import build_orchestrators


async def get_database() -> AsyncSession:
    """Dependency for database session."""
    async for session in get_db():
        yield session
        break  # Only yield once, as FastAPI handles the session lifecycle


def get_cache_store() -> CacheStore:
    return CacheStore(AsyncSessionLocal)


def get_pricing_service(store: CacheStore = Depends(get_cache_store)) -> PricingService:
    return PricingService(store)


def get_lock_manager():
    return sync_lock_manager


async def get_orchestrators(store: CacheStore = Depends(get_cache_store)):
    """Per-request orchestrators; their HTTP clients are closed afterwards."""
    orchestrators = build_orchestrators(store)
    try:
        yield orchestrators
    finally:
        for orchestrator in orchestrators:
            await orchestrator.client.close()
