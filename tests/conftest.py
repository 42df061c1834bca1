"""Shared fixtures: temporary SQLite database and a scriptable marketplace."""

from decimal import Decimal
from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from resale_market.db.cache_store import CacheStore
from resale_market.db.models import Base
from resale_market.ingest.base import (
    CatalogProduct,
    Marketplace,
    MarketplaceClient,
    MarketQuote,
    RateLimitConfig,
    VariantInfo,
)


class FakeMarketplaceClient(MarketplaceClient):
    """In-memory marketplace with per-unit failure injection."""

    def __init__(
        self,
        sizes: list[str],
        marketplace: Marketplace = Marketplace.STOCKX,
        primary: str = "GBP",
        supported: Optional[list[str]] = None,
        failures: Optional[dict] = None,
        search_error: Optional[Exception] = None,
        variants_error: Optional[Exception] = None,
        ask: Decimal = Decimal("100.00"),
        bid: Decimal = Decimal("90.00"),
        per_sku: bool = False,
    ):
        self.marketplace = marketplace
        self.sizes = sizes
        self._primary = primary
        self._supported = supported or [primary]
        # (variant_id, currency) -> exception
        self.failures = failures or {}
        self.search_error = search_error
        self.variants_error = variants_error
        self.ask = ask
        self.bid = bid
        # Distinct product and variant ids per SKU instead of one shared product
        self.per_sku = per_sku
        self.calls: list[tuple[str, ...]] = []
        self.closed = False

    async def search_catalog(self, sku: str) -> str:
        self.calls.append(("search", sku))
        if self.search_error:
            raise self.search_error
        if self.per_sku:
            return f"{self.marketplace.value}-{sku}"
        return f"{self.marketplace.value}-prod-1"

    async def fetch_product(self, product_id: str) -> CatalogProduct:
        self.calls.append(("product", product_id))
        return CatalogProduct(
            product_id=product_id,
            sku="DD1391-100",
            brand="Nike",
            title="Dunk Low Panda",
            image_url="https://img.example/dunk.jpg",
        )

    async def fetch_variants(self, product_id: str) -> list[VariantInfo]:
        self.calls.append(("variants", product_id))
        if self.variants_error:
            raise self.variants_error
        prefix = product_id if self.per_sku else self.marketplace.value
        return [
            VariantInfo(variant_id=f"{prefix}-v{i}", size_label=size, barcodes=[f"0000{i}"])
            for i, size in enumerate(self.sizes)
        ]

    async def fetch_market_data(self, product_id: str, variant: VariantInfo, currency: str) -> MarketQuote:
        self.calls.append(("market", variant.variant_id, currency))
        error = self.failures.get((variant.variant_id, currency))
        if error is not None:
            raise error
        return MarketQuote(
            variant_id=variant.variant_id,
            currency=currency,
            lowest_ask=self.ask,
            highest_bid=self.bid,
        )

    @property
    def primary_currency(self) -> str:
        return self._primary

    @property
    def supported_currencies(self) -> list[str]:
        return list(self._supported)

    def get_rate_limit(self) -> RateLimitConfig:
        return RateLimitConfig(min_interval_seconds=0.0, batch_size=5)

    async def close(self) -> None:
        self.closed = True

    def market_calls(self) -> list[tuple[str, ...]]:
        return [c for c in self.calls if c[0] == "market"]


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'market.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def store(session_factory):
    return CacheStore(session_factory)


@pytest.fixture
def sizes_10():
    return ["7", "7.5", "8", "8.5", "9", "9.5", "10", "10.5", "11", "12"]
