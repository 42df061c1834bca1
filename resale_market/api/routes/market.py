"""Market data and pricing API endpoints."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from resale_market.api.deps import (
    get_cache_store,
    get_database,
    get_lock_manager,
    get_orchestrators,
    get_pricing_service,
)
from resale_market.config import settings
from resale_market.db.cache_store import CacheStore
from resale_market.db.models import SyncRun
from resale_market.ingest.credentials import MissingCredentialsError
from resale_market.pricing.fees import build_fee_profile
from resale_market.pricing.fx import FxRates, UnsupportedCurrencyError
from resale_market.pricing.service import PricingService
from resale_market.sync.orchestrator import SyncOrchestrator
from resale_market.worker.tasks import SyncJob

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/market", tags=["market"])


# Response models
class PricingResponse(BaseModel):
    sku: str
    size: str
    best_platform_to_sell: Optional[str] = None
    best_net_proceeds: Optional[Decimal] = None
    currency: Optional[str] = None
    real_profit: Optional[Decimal] = None
    real_profit_percent: Optional[Decimal] = None
    platform_advantage: Optional[Decimal] = None
    best_bid_platform: Optional[str] = None
    best_bid_net_proceeds: Optional[Decimal] = None
    net_proceeds: dict[str, Decimal] = {}
    stale_platforms: List[str] = []


class SyncResponse(BaseModel):
    sku: str
    results: List[dict]
    skipped: List[str] = []


class SyncRunResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    run_id: str
    trigger: str
    status: str
    started_at: datetime
    completed_at: Optional[datetime]
    items_total: int
    items_refreshed: int
    items_failed: int
    items_skipped: int
    market_rows_refreshed: int
    rate_limited: int
    error_message: Optional[str]
    duration_seconds: Optional[float]


class TriggerRunResponse(BaseModel):
    run_id: str
    status: str
    items_total: int
    items_refreshed: int
    items_failed: int
    items_skipped: int
    errors: List[str]


@router.get("/runs", response_model=List[SyncRunResponse])
async def list_sync_runs(limit: int = 20, db: AsyncSession = Depends(get_database)):
    """List recent sync runs, newest first."""
    result = await db.execute(
        select(SyncRun).order_by(SyncRun.started_at.desc(), SyncRun.id.desc()).limit(limit)
    )
    return [SyncRunResponse.model_validate(run) for run in result.scalars().all()]


@router.post("/runs", response_model=TriggerRunResponse)
async def trigger_sync_run(
    max_items: Optional[int] = None,
    store: CacheStore = Depends(get_cache_store),
    orchestrators: list[SyncOrchestrator] = Depends(get_orchestrators),
    lock_manager=Depends(get_lock_manager),
):
    """Run the stale-item sync now; skipped if a scheduled run holds the lock."""
    job = SyncJob(orchestrators, store, lock_manager=lock_manager)
    summary = await job.run(
        trigger="manual",
        budget_seconds=settings.sync_budget_seconds,
        max_items=max_items,
    )
    return TriggerRunResponse(
        run_id=summary.run_id,
        status=summary.status,
        items_total=summary.items_total,
        items_refreshed=summary.items_refreshed,
        items_failed=summary.items_failed,
        items_skipped=summary.items_skipped,
        errors=summary.errors,
    )


@router.get("/{sku}/pricing", response_model=PricingResponse)
async def get_pricing(
    sku: str,
    size: str = Query(..., description="Size label, e.g. 'US 10' or '10'"),
    cost_basis: Optional[Decimal] = None,
    cost_currency: Optional[str] = None,
    display_currency: str = "GBP",
    gbp_rate: Optional[Decimal] = Query(None, description="1 GBP in display currency"),
    usd_rate: Optional[Decimal] = Query(None, description="1 USD in display currency"),
    eur_rate: Optional[Decimal] = Query(None, description="1 EUR in display currency"),
    stockx_seller_level: Optional[int] = None,
    stockx_shipping_fee: Optional[Decimal] = None,
    alias_commission_fee: Optional[Decimal] = Query(None, description="Percent, e.g. 9.5"),
    alias_region: Optional[str] = None,
    alias_shipping_method: Optional[str] = None,
    service: PricingService = Depends(get_pricing_service),
):
    """Fee-adjusted proceeds per marketplace and the best place to sell."""
    multipliers = {
        currency: rate
        for currency, rate in (("GBP", gbp_rate), ("USD", usd_rate), ("EUR", eur_rate))
        if rate is not None
    }
    fx_rates = FxRates(display_currency=display_currency.upper(), multipliers=multipliers)
    fee_profile = build_fee_profile({
        "stockx_seller_level": stockx_seller_level,
        "stockx_shipping_fee": stockx_shipping_fee,
        "alias_commission_fee": alias_commission_fee,
        "alias_region": alias_region,
        "alias_shipping_method": alias_shipping_method,
    })

    try:
        result = await service.price_for(
            sku,
            size,
            cost_basis=cost_basis,
            fee_profile=fee_profile,
            fx_rates=fx_rates,
            cost_currency=cost_currency.upper() if cost_currency else None,
        )
    except UnsupportedCurrencyError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return PricingResponse(
        sku=sku,
        size=size,
        best_platform_to_sell=result.best_platform_to_sell,
        best_net_proceeds=result.best_net_proceeds,
        currency=result.currency,
        real_profit=result.real_profit,
        real_profit_percent=result.real_profit_percent,
        platform_advantage=result.platform_advantage,
        best_bid_platform=result.best_bid_platform,
        best_bid_net_proceeds=result.best_bid_net_proceeds,
        net_proceeds={
            marketplace: proceeds.net_receive_display
            for marketplace, proceeds in result.net_proceeds.items()
        },
        stale_platforms=result.stale_platforms,
    )


@router.post("/{sku}/sync", response_model=SyncResponse)
async def sync_sku(
    sku: str,
    orchestrators: list[SyncOrchestrator] = Depends(get_orchestrators),
):
    """Sync one SKU on every marketplace that has credentials."""
    results = []
    skipped = []
    for orchestrator in orchestrators:
        try:
            result = await orchestrator.sync(sku)
        except MissingCredentialsError as e:
            logger.warning(f"Skipping {e.marketplace} sync for {sku}: no credentials")
            skipped.append(e.marketplace)
            continue
        results.append(result.to_dict())

    if not results and skipped:
        raise HTTPException(status_code=503, detail="No marketplace credentials configured")

    return SyncResponse(sku=sku, results=results, skipped=skipped)
