"""StockX catalog and market-data client."""

import logging
from decimal import Decimal
from typing import Optional

import httpx

from resale_market.config import settings
from resale_market.ingest.base import (
    CatalogProduct,
    Marketplace,
    MarketplaceClient,
    MarketQuote,
    RateLimitConfig,
    VariantInfo,
)
from resale_market.ingest.credentials import TokenProvider
from resale_market.ingest.http_client import (
    MalformedResponseError,
    MarketplaceHttpClient,
    MarketplacePolicy,
    NotFoundError,
)
from resale_market.ingest.rate_limiter import RateLimiter
from resale_market.ingest.schemas import (
    StockxMarketData,
    StockxProduct,
    StockxSearchResponse,
    StockxVariant,
    parse_market_payload,
    parse_payload,
)
from resale_market.normalize.processor import PriceUnit, price_normalizer

logger = logging.getLogger(__name__)


class StockxClient(MarketplaceClient):
    """StockX public API v2 client. Prices arrive as major-unit decimal strings."""

    marketplace = Marketplace.STOCKX

    def __init__(
        self,
        token_provider: Optional[TokenProvider] = None,
        limiter: Optional[RateLimiter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        min_interval: Optional[float] = None,
        primary_currency: Optional[str] = None,
        supported_currencies: Optional[list[str]] = None,
    ):
        self._primary_currency = primary_currency or settings.stockx_primary_currency
        currencies = supported_currencies or settings.stockx_supported_currencies
        # Primary first, then the rest in configured order
        self._supported = [self._primary_currency] + [
            c for c in currencies if c != self._primary_currency
        ]
        self._rate_limit = RateLimitConfig(
            min_interval_seconds=(
                settings.stockx_rate_limit_seconds if min_interval is None else min_interval
            ),
            batch_size=settings.sync_batch_size,
        )

        headers = {}
        if settings.stockx_api_key:
            headers["x-api-key"] = settings.stockx_api_key

        self.http = MarketplaceHttpClient(
            MarketplacePolicy(
                name=self.marketplace.value,
                base_url=settings.stockx_api_base_url,
                min_interval=self._rate_limit.min_interval_seconds,
                timeout=httpx.Timeout(settings.http_timeout_seconds, connect=10.0),
                headers=headers,
            ),
            token_provider or TokenProvider(),
            limiter=limiter,
            transport=transport,
        )

    @property
    def primary_currency(self) -> str:
        return self._primary_currency

    @property
    def supported_currencies(self) -> list[str]:
        return list(self._supported)

    def get_rate_limit(self) -> RateLimitConfig:
        return self._rate_limit

    async def close(self) -> None:
        await self.http.close()

    async def search_catalog(self, sku: str) -> str:
        data = await self.http.fetch("/v2/catalog/search", params={"query": sku})
        result = parse_payload(StockxSearchResponse, data, "stockx search")

        if not result.products:
            raise NotFoundError(f"stockx: no catalog match for {sku}", status_code=404)

        wanted = sku.strip().upper()
        for hit in result.products:
            if hit.style_id and hit.style_id.strip().upper() == wanted:
                return hit.product_id

        # Search is fuzzy; fall back to the top hit
        logger.debug(f"stockx: no exact styleId match for {sku}, using first result")
        return result.products[0].product_id

    async def fetch_product(self, product_id: str) -> CatalogProduct:
        data = await self.http.fetch(f"/v2/catalog/products/{product_id}")
        product = parse_payload(StockxProduct, data, "stockx product")

        image_url = None
        if product.url_key:
            image_url = f"https://images.stockx.com/images/{product.url_key}.jpg"

        return CatalogProduct(
            product_id=product.product_id,
            sku=product.style_id,
            brand=product.brand,
            title=product.title,
            image_url=image_url,
        )

    async def fetch_variants(self, product_id: str) -> list[VariantInfo]:
        data = await self.http.fetch(f"/v2/catalog/products/{product_id}/variants")
        if not isinstance(data, list):
            raise MalformedResponseError("stockx variants: expected a list")

        variants = [parse_payload(StockxVariant, item, "stockx variant") for item in data]
        return [
            VariantInfo(
                variant_id=v.variant_id,
                size_label=v.variant_value,
                barcodes=[g.identifier for g in v.gtins],
            )
            for v in variants
        ]

    async def fetch_market_data(
        self, product_id: str, variant: VariantInfo, currency: str
    ) -> MarketQuote:
        data = await self.http.fetch(
            f"/v2/catalog/products/{product_id}/variants/{variant.variant_id}/market-data",
            params={"currencyCode": currency},
        )
        payload: StockxMarketData = parse_market_payload(self.marketplace.value, data)
        if payload.currency_code and payload.currency_code.upper() != currency.upper():
            raise MalformedResponseError(
                f"stockx market data: asked for {currency}, got {payload.currency_code}"
            )

        warnings = []

        def price(field_name: str, raw) -> Optional[Decimal]:
            parsed = price_normalizer.normalize(raw, PriceUnit.MAJOR)
            if not parsed.ok:
                warnings.append(f"{field_name}: {parsed.error}")
            return parsed.value

        return MarketQuote(
            variant_id=variant.variant_id,
            currency=currency,
            lowest_ask=price("lowest_ask", payload.lowest_ask_amount),
            highest_bid=price("highest_bid", payload.highest_bid_amount),
            flex_lowest_ask=price("flex_lowest_ask", payload.flex_lowest_ask_amount),
            warnings=warnings,
        )
