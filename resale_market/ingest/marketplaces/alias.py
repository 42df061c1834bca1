"""Alias (GOAT) catalog and pricing-insights client."""

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
    MarketplaceHttpClient,
    MarketplacePolicy,
    NotFoundError,
)
from resale_market.ingest.rate_limiter import RateLimiter
from resale_market.ingest.schemas import (
    AliasAvailabilitiesResponse,
    AliasAvailability,
    AliasCatalogResponse,
    AliasSearchResponse,
    parse_market_payload,
    parse_payload,
)
from resale_market.normalize.processor import PriceUnit, price_normalizer

logger = logging.getLogger(__name__)

PRODUCT_CONDITION_NEW = "PRODUCT_CONDITION_NEW"
PACKAGING_CONDITION_GOOD = "PACKAGING_CONDITION_GOOD_CONDITION"


def format_size(value) -> str:
    """Render an Alias numeric size the way sellers write it: 10.0 -> "10"."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return str(value)
    if number.is_integer():
        return str(int(number))
    return f"{number:g}"


def build_variant_id(catalog_id: str, size: str, region_id: str, consigned: bool) -> str:
    """Alias has no variant ids; synthesize a stable one from the query key."""
    return f"{catalog_id}:{size}:{region_id}:{'c' if consigned else 'n'}"


def size_from_variant_id(variant_id: str) -> str:
    parts = variant_id.split(":")
    if len(parts) < 2:
        raise ValueError(f"Not an Alias variant id: {variant_id!r}")
    return parts[1]


class AliasClient(MarketplaceClient):
    """
    Alias API client.

    Prices are cent strings in USD and ``"0"`` means no price. Only new
    items in good packaging whose size is listed in the catalog item's
    ``allowed_sizes`` are treated as sellable variants.
    """

    marketplace = Marketplace.ALIAS

    def __init__(
        self,
        token_provider: Optional[TokenProvider] = None,
        limiter: Optional[RateLimiter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        min_interval: Optional[float] = None,
        region_id: Optional[str] = None,
        consigned: Optional[bool] = None,
    ):
        self.region_id = region_id or settings.alias_region_id
        self.consigned = settings.alias_consigned if consigned is None else consigned
        self._currency = settings.alias_currency
        self._rate_limit = RateLimitConfig(
            min_interval_seconds=(
                settings.alias_rate_limit_seconds if min_interval is None else min_interval
            ),
            batch_size=settings.sync_batch_size,
        )

        self.http = MarketplaceHttpClient(
            MarketplacePolicy(
                name=self.marketplace.value,
                base_url=settings.alias_api_base_url,
                min_interval=self._rate_limit.min_interval_seconds,
                timeout=httpx.Timeout(settings.http_timeout_seconds, connect=10.0),
            ),
            token_provider or TokenProvider(),
            limiter=limiter,
            transport=transport,
        )

    @property
    def primary_currency(self) -> str:
        return self._currency

    @property
    def supported_currencies(self) -> list[str]:
        return [self._currency]

    def get_rate_limit(self) -> RateLimitConfig:
        return self._rate_limit

    async def close(self) -> None:
        await self.http.close()

    async def search_catalog(self, sku: str) -> str:
        data = await self.http.fetch("/catalog", params={"query": sku})
        result = parse_payload(AliasSearchResponse, data, "alias search")

        if not result.catalog_items:
            raise NotFoundError(f"alias: no catalog match for {sku}", status_code=404)

        wanted = sku.strip().upper()
        for item in result.catalog_items:
            if item.sku and item.sku.strip().upper() == wanted:
                return item.catalog_id

        logger.debug(f"alias: no exact sku match for {sku}, using first result")
        return result.catalog_items[0].catalog_id

    async def fetch_product(self, product_id: str) -> CatalogProduct:
        data = await self.http.fetch(f"/catalog/{product_id}")
        item = parse_payload(AliasCatalogResponse, data, "alias catalog item").catalog_item

        return CatalogProduct(
            product_id=item.catalog_id,
            sku=item.sku,
            brand=item.brand,
            title=item.name,
            image_url=item.main_picture_url,
        )

    async def fetch_variants(self, product_id: str) -> list[VariantInfo]:
        catalog = await self.http.fetch(f"/catalog/{product_id}")
        item = parse_payload(AliasCatalogResponse, catalog, "alias catalog item").catalog_item
        labels = {
            format_size(s.value): (s.display_name or format_size(s.value))
            for s in item.allowed_sizes
        }

        data = await self.http.fetch(
            f"/pricing_insights/availabilities/{product_id}",
            params={
                "region_id": self.region_id,
                "consigned": str(self.consigned).lower(),
            },
        )
        availabilities = parse_payload(AliasAvailabilitiesResponse, data, "alias availabilities")

        variants = []
        seen = set()
        for v in availabilities.variants:
            if v.product_condition != PRODUCT_CONDITION_NEW:
                continue
            if v.packaging_condition != PACKAGING_CONDITION_GOOD:
                continue

            size = format_size(v.size)
            if size not in labels or size in seen:
                continue
            seen.add(size)

            variants.append(
                VariantInfo(
                    variant_id=build_variant_id(product_id, size, self.region_id, self.consigned),
                    size_label=labels[size],
                    region=self.region_id,
                    consigned=self.consigned,
                )
            )

        return variants

    async def fetch_market_data(
        self, product_id: str, variant: VariantInfo, currency: str
    ) -> MarketQuote:
        if currency != self._currency:
            raise ValueError(f"Alias only quotes in {self._currency}, not {currency}")

        region_id = variant.region or self.region_id
        data = await self.http.fetch(
            "/pricing_insights/availability",
            params={
                "catalog_id": product_id,
                "size": size_from_variant_id(variant.variant_id),
                "product_condition": PRODUCT_CONDITION_NEW,
                "packaging_condition": PACKAGING_CONDITION_GOOD,
                "region_id": region_id,
                "consigned": str(variant.consigned).lower(),
            },
        )
        payload: AliasAvailability = parse_market_payload(self.marketplace.value, data)
        prices = payload.availability

        warnings = []

        def price(field_name: str, raw) -> Optional[Decimal]:
            parsed = price_normalizer.normalize(raw, PriceUnit.MINOR, zero_is_missing=True)
            if not parsed.ok:
                warnings.append(f"{field_name}: {parsed.error}")
            return parsed.value

        if prices is None:
            return MarketQuote(
                variant_id=variant.variant_id,
                currency=currency,
                lowest_ask=None,
                highest_bid=None,
            )

        return MarketQuote(
            variant_id=variant.variant_id,
            currency=currency,
            lowest_ask=price("lowest_ask", prices.lowest_listing_price_cents),
            highest_bid=price("highest_bid", prices.highest_offer_price_cents),
            last_sale=price("last_sale", prices.last_sold_listing_price_cents),
            global_indicator_price=price(
                "global_indicator_price", prices.global_indicator_price_cents
            ),
            warnings=warnings,
        )
