"""Pricing lookups for one SKU and size over the market data cache."""

import logging
import re
from datetime import datetime
from decimal import Decimal
from typing import Mapping, Optional

from resale_market.config import settings
from resale_market.db.cache_store import CacheStore
from resale_market.db.models import utcnow
from resale_market.ingest.base import Marketplace
from resale_market.pricing.fees import FeeProfile, FeeSchedule
from resale_market.pricing.fx import FxRates
from resale_market.pricing.resolver import (
    MARKETPLACE_ORDER,
    MarketSide,
    PricingResult,
    resolve_pricing,
)

logger = logging.getLogger(__name__)

_PREFIX = re.compile(r"^(US|UK)\s*", re.IGNORECASE)
_SUFFIX = re.compile(r"\s*(W|Y)$", re.IGNORECASE)


def normalize_size(label) -> str:
    """
    Best-effort canonical size so both marketplaces line up.

    "US 10", "10W", "10.0" and "10" all become "10".
    """
    text = str(label).strip()
    text = _PREFIX.sub("", text)
    text = _SUFFIX.sub("", text)
    if text.endswith(".0"):
        text = text[:-2]
    return text


class PricingService:
    """Reads the latest cached quotes and hands them to the resolver."""

    def __init__(
        self,
        store: CacheStore,
        primary_currencies: Optional[Mapping[str, str]] = None,
    ):
        self.store = store
        self.primary_currencies = dict(
            primary_currencies
            or {
                Marketplace.STOCKX.value: settings.stockx_primary_currency,
                Marketplace.ALIAS.value: settings.alias_currency,
            }
        )

    async def market_sides(
        self, sku: str, size: str, now: Optional[datetime] = None
    ) -> list[MarketSide]:
        """Latest quote per marketplace for ``size``; expired rows count but are flagged."""
        now = now or utcnow()
        item = await self.store.get_catalog_item(sku)
        if item is None:
            return []

        wanted = normalize_size(size)
        sides = []
        for marketplace in MARKETPLACE_ORDER:
            currency = self.primary_currencies[marketplace]
            pairs = await self.store.snapshots_for_item(item.id, marketplace, currency)
            matches = [
                snapshot
                for variant, snapshot in pairs
                if normalize_size(variant.size_label) == wanted
            ]
            if not matches:
                continue

            # Alias can hold several rows per size (regions); newest wins
            snapshot = max(matches, key=lambda s: s.updated_at)
            sides.append(
                MarketSide(
                    marketplace=marketplace,
                    currency=snapshot.currency,
                    lowest_ask=snapshot.lowest_ask,
                    highest_bid=snapshot.highest_bid,
                    updated_at=snapshot.updated_at,
                    stale=snapshot.expires_at <= now,
                )
            )
        return sides

    async def price_for(
        self,
        sku: str,
        size: str,
        cost_basis: Optional[Decimal],
        fee_profile: Optional[FeeProfile],
        fx_rates: FxRates,
        fee_schedules: Optional[Mapping[str, FeeSchedule]] = None,
        cost_currency: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PricingResult:
        sides = await self.market_sides(sku, size, now=now)
        if not sides:
            logger.debug(f"No cached market data for {sku} size {size}")

        return resolve_pricing(
            sides,
            fx_rates,
            fee_profile=fee_profile,
            fee_schedules=fee_schedules,
            cost_basis=cost_basis,
            cost_currency=cost_currency,
        )
