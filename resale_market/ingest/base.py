"""Base marketplace client interface and normalized catalog types."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from resale_market.db.models import utcnow


class Marketplace(str, Enum):
    """Supported resale marketplaces."""

    STOCKX = "stockx"
    ALIAS = "alias"


@dataclass
class RateLimitConfig:
    """Rate limiting configuration for a marketplace client."""

    min_interval_seconds: float = 1.1
    batch_size: int = 5


@dataclass
class CatalogProduct:
    """Product details resolved from a marketplace catalog."""

    product_id: str
    sku: Optional[str]
    brand: Optional[str] = None
    title: Optional[str] = None
    image_url: Optional[str] = None


@dataclass
class VariantInfo:
    """One size of a product as the marketplace identifies it."""

    variant_id: str
    size_label: str
    barcodes: list[str] = field(default_factory=list)
    region: Optional[str] = None
    consigned: bool = False


@dataclass
class MarketQuote:
    """Normalized price quote for one (variant, currency)."""

    variant_id: str
    currency: str
    lowest_ask: Optional[Decimal]
    highest_bid: Optional[Decimal]
    last_sale: Optional[Decimal] = None
    flex_lowest_ask: Optional[Decimal] = None
    global_indicator_price: Optional[Decimal] = None
    captured_at: datetime = None
    # Raw fields the normalizer rejected, e.g. "lowest_ask: unparseable price 'abc'"
    warnings: list[str] = field(default_factory=list)

    def __post_init__(self):
        if self.captured_at is None:
            self.captured_at = utcnow()


class MarketplaceClient(ABC):
    """Abstract base class for marketplace catalog and pricing clients."""

    marketplace: Marketplace

    @abstractmethod
    async def search_catalog(self, sku: str) -> str:
        """
        Resolve a style/SKU to the marketplace's product identifier.

        Raises:
            NotFoundError: If the catalog has no match
            FetchError: On any other request failure
        """
        pass

    @abstractmethod
    async def fetch_product(self, product_id: str) -> CatalogProduct:
        """Fetch product details for a resolved product id."""
        pass

    @abstractmethod
    async def fetch_variants(self, product_id: str) -> list[VariantInfo]:
        """Fetch the sellable variants of a product."""
        pass

    @abstractmethod
    async def fetch_market_data(
        self, product_id: str, variant: VariantInfo, currency: str
    ) -> MarketQuote:
        """Fetch the current quote for one variant in one currency."""
        pass

    @property
    @abstractmethod
    def primary_currency(self) -> str:
        """Currency whose coverage decides whether a sync succeeded."""
        pass

    @property
    @abstractmethod
    def supported_currencies(self) -> list[str]:
        """Every currency the provider can quote in, primary first."""
        pass

    @abstractmethod
    def get_rate_limit(self) -> RateLimitConfig:
        """Get rate limiting configuration for this client."""
        pass

    async def close(self) -> None:
        pass
