"""Tests for the StockX and Alias clients against canned API responses."""

from decimal import Decimal

import httpx
import pytest

from resale_market.ingest.base import VariantInfo
from resale_market.ingest.credentials import MissingCredentialsError, TokenProvider
from resale_market.ingest.http_client import MalformedResponseError, NotFoundError
from resale_market.ingest.marketplaces.alias import (
    AliasClient,
    build_variant_id,
    format_size,
    size_from_variant_id,
)
from resale_market.ingest.marketplaces.stockx import StockxClient
from resale_market.ingest.rate_limiter import RateLimiter

TOKENS = {"stockx": "sx-token", "alias": "alias-pat"}


def stockx_client(routes, tokens=TOKENS, **kwargs):
    def handler(request: httpx.Request):
        body = routes.get(request.url.path)
        if body is None:
            return httpx.Response(404, json={"message": "not found"})
        return httpx.Response(200, json=body)

    return StockxClient(
        token_provider=TokenProvider(tokens),
        limiter=RateLimiter(),
        transport=httpx.MockTransport(handler),
        min_interval=0.0,
        **kwargs,
    )


def alias_client(routes, seen=None):
    def handler(request: httpx.Request):
        if seen is not None:
            seen.append(request)
        for suffix, body in routes.items():
            if request.url.path.endswith(suffix):
                return httpx.Response(200, json=body)
        return httpx.Response(404, json={"message": "not found"})

    return AliasClient(
        token_provider=TokenProvider(TOKENS),
        limiter=RateLimiter(),
        transport=httpx.MockTransport(handler),
        min_interval=0.0,
        region_id="1",
        consigned=False,
    )


# =============================================================================
# StockX
# =============================================================================


@pytest.mark.asyncio
async def test_stockx_search_prefers_exact_style_id():
    client = stockx_client(
        {
            "/v2/catalog/search": {
                "count": 2,
                "products": [
                    {"productId": "p-kids", "styleId": "DD1391-100GS"},
                    {"productId": "p-adult", "styleId": "dd1391-100"},
                ],
            }
        }
    )
    assert await client.search_catalog("DD1391-100") == "p-adult"
    await client.close()


@pytest.mark.asyncio
async def test_stockx_search_falls_back_to_first_hit():
    client = stockx_client(
        {"/v2/catalog/search": {"products": [{"productId": "p-1", "styleId": "OTHER"}]}}
    )
    assert await client.search_catalog("DD1391-100") == "p-1"
    await client.close()


@pytest.mark.asyncio
async def test_stockx_search_without_hits_is_not_found():
    client = stockx_client({"/v2/catalog/search": {"count": 0, "products": []}})
    with pytest.raises(NotFoundError):
        await client.search_catalog("DD1391-100")
    await client.close()


@pytest.mark.asyncio
async def test_stockx_product_and_variants():
    client = stockx_client(
        {
            "/v2/catalog/products/p-1": {
                "productId": "p-1",
                "brand": "Nike",
                "title": "Nike Dunk Low Retro White Black",
                "styleId": "DD1391-100",
                "urlKey": "nike-dunk-low-retro-white-black-2021",
            },
            "/v2/catalog/products/p-1/variants": [
                {
                    "variantId": "v-9",
                    "variantValue": "9",
                    "gtins": [{"identifier": "195866129384", "type": "UPC"}],
                },
                {"variantId": "v-10", "variantValue": "10"},
            ],
        }
    )

    product = await client.fetch_product("p-1")
    variants = await client.fetch_variants("p-1")
    await client.close()

    assert product.brand == "Nike"
    assert product.image_url.endswith("nike-dunk-low-retro-white-black-2021.jpg")
    assert [v.variant_id for v in variants] == ["v-9", "v-10"]
    assert variants[0].barcodes == ["195866129384"]
    assert variants[1].barcodes == []


@pytest.mark.asyncio
async def test_stockx_variants_must_be_a_list():
    client = stockx_client({"/v2/catalog/products/p-1/variants": {"variants": []}})
    with pytest.raises(MalformedResponseError):
        await client.fetch_variants("p-1")
    await client.close()


@pytest.mark.asyncio
async def test_stockx_market_data_in_major_units():
    client = stockx_client(
        {
            "/v2/catalog/products/p-1/variants/v-10/market-data": {
                "productId": "p-1",
                "variantId": "v-10",
                "currencyCode": "GBP",
                "lowestAskAmount": "105",
                "highestBidAmount": "92.5",
                "flexLowestAskAmount": None,
            }
        }
    )

    quote = await client.fetch_market_data("p-1", VariantInfo("v-10", "10"), "GBP")
    await client.close()

    assert quote.currency == "GBP"
    assert quote.lowest_ask == Decimal("105.00")
    assert quote.highest_bid == Decimal("92.50")
    assert quote.flex_lowest_ask is None
    assert quote.warnings == []


@pytest.mark.asyncio
async def test_stockx_unparseable_price_becomes_warning():
    client = stockx_client(
        {
            "/v2/catalog/products/p-1/variants/v-10/market-data": {
                "variantId": "v-10",
                "lowestAskAmount": "n/a",
                "highestBidAmount": "80",
            }
        }
    )

    quote = await client.fetch_market_data("p-1", VariantInfo("v-10", "10"), "EUR")
    await client.close()

    assert quote.currency == "EUR"
    assert quote.lowest_ask is None
    assert quote.highest_bid == Decimal("80.00")
    assert len(quote.warnings) == 1
    assert quote.warnings[0].startswith("lowest_ask:")


@pytest.mark.asyncio
async def test_stockx_market_data_without_variant_id_is_malformed():
    client = stockx_client(
        {"/v2/catalog/products/p-1/variants/v-10/market-data": {"lowestAskAmount": "100"}}
    )
    with pytest.raises(MalformedResponseError):
        await client.fetch_market_data("p-1", VariantInfo("v-10", "10"), "GBP")
    await client.close()


@pytest.mark.asyncio
async def test_stockx_market_data_in_another_currency_is_malformed():
    client = stockx_client(
        {
            "/v2/catalog/products/p-1/variants/v-10/market-data": {
                "variantId": "v-10",
                "currencyCode": "USD",
                "lowestAskAmount": "130",
            }
        }
    )
    with pytest.raises(MalformedResponseError, match="asked for GBP, got USD"):
        await client.fetch_market_data("p-1", VariantInfo("v-10", "10"), "GBP")
    await client.close()


@pytest.mark.asyncio
async def test_stockx_without_token_raises_missing_credentials():
    client = stockx_client({}, tokens={})
    with pytest.raises(MissingCredentialsError):
        await client.search_catalog("DD1391-100")
    await client.close()


def test_stockx_currencies_put_primary_first():
    client = stockx_client({}, primary_currency="EUR", supported_currencies=["GBP", "EUR", "USD"])
    assert client.primary_currency == "EUR"
    assert client.supported_currencies == ["EUR", "GBP", "USD"]


# =============================================================================
# Alias
# =============================================================================


def test_alias_variant_ids_round_trip_size():
    variant_id = build_variant_id("dunk-low-panda", "10.5", "1", False)
    assert variant_id == "dunk-low-panda:10.5:1:n"
    assert size_from_variant_id(variant_id) == "10.5"

    with pytest.raises(ValueError):
        size_from_variant_id("garbage")


@pytest.mark.parametrize("value,expected", [(10.0, "10"), (10.5, "10.5"), ("9", "9"), ("XL", "XL")])
def test_format_size(value, expected):
    assert format_size(value) == expected


@pytest.mark.asyncio
async def test_alias_search_matches_sku():
    client = alias_client(
        {
            "/catalog": {
                "catalog_items": [
                    {"catalog_id": "dunk-low-gs", "sku": "CW1590 100"},
                    {"catalog_id": "dunk-low-panda", "sku": "DD1391 100"},
                ]
            }
        }
    )
    assert await client.search_catalog("dd1391 100") == "dunk-low-panda"
    await client.close()


@pytest.mark.asyncio
async def test_alias_variants_keep_new_allowed_sizes_once():
    seen = []
    client = alias_client(
        {
            "/catalog/dunk-low-panda": {
                "catalog_item": {
                    "catalog_id": "dunk-low-panda",
                    "name": "Dunk Low Panda",
                    "allowed_sizes": [
                        {"value": 9, "display_name": "9"},
                        {"value": 10, "display_name": "10"},
                        {"value": 10.5},
                    ],
                }
            },
            "/pricing_insights/availabilities/dunk-low-panda": {
                "variants": [
                    {
                        "size": 9,
                        "product_condition": "PRODUCT_CONDITION_NEW",
                        "packaging_condition": "PACKAGING_CONDITION_GOOD_CONDITION",
                    },
                    {
                        "size": 9,
                        "product_condition": "PRODUCT_CONDITION_NEW",
                        "packaging_condition": "PACKAGING_CONDITION_GOOD_CONDITION",
                    },
                    {
                        "size": 10,
                        "product_condition": "PRODUCT_CONDITION_USED",
                        "packaging_condition": "PACKAGING_CONDITION_GOOD_CONDITION",
                    },
                    {
                        "size": 10.5,
                        "product_condition": "PRODUCT_CONDITION_NEW",
                        "packaging_condition": "PACKAGING_CONDITION_GOOD_CONDITION",
                    },
                    {
                        "size": 14,
                        "product_condition": "PRODUCT_CONDITION_NEW",
                        "packaging_condition": "PACKAGING_CONDITION_GOOD_CONDITION",
                    },
                ]
            },
        },
        seen=seen,
    )

    variants = await client.fetch_variants("dunk-low-panda")
    await client.close()

    assert [v.size_label for v in variants] == ["9", "10.5"]
    assert variants[0].variant_id == "dunk-low-panda:9:1:n"
    assert variants[0].region == "1"
    assert seen[-1].url.params["consigned"] == "false"


@pytest.mark.asyncio
async def test_alias_market_data_converts_cents_and_zero():
    seen = []
    client = alias_client(
        {
            "/pricing_insights/availability": {
                "availability": {
                    "lowest_listing_price_cents": "12000",
                    "highest_offer_price_cents": "0",
                    "last_sold_listing_price_cents": "11500",
                    "global_indicator_price_cents": "11800",
                }
            }
        },
        seen=seen,
    )
    variant = VariantInfo("dunk-low-panda:10:1:n", "10", region="1")

    quote = await client.fetch_market_data("dunk-low-panda", variant, "USD")
    await client.close()

    assert quote.currency == "USD"
    assert quote.lowest_ask == Decimal("120.00")
    assert quote.highest_bid is None
    assert quote.last_sale == Decimal("115.00")
    assert quote.global_indicator_price == Decimal("118.00")
    assert seen[0].url.params["size"] == "10"
    assert seen[0].url.params["catalog_id"] == "dunk-low-panda"


@pytest.mark.asyncio
async def test_alias_market_data_without_availability():
    client = alias_client({"/pricing_insights/availability": {}})
    variant = VariantInfo("dunk-low-panda:10:1:n", "10", region="1")

    quote = await client.fetch_market_data("dunk-low-panda", variant, "USD")
    await client.close()

    assert quote.lowest_ask is None
    assert quote.highest_bid is None


@pytest.mark.asyncio
async def test_alias_rejects_other_currencies():
    client = alias_client({})
    with pytest.raises(ValueError):
        await client.fetch_market_data(
            "dunk-low-panda", VariantInfo("dunk-low-panda:10:1:n", "10"), "GBP"
        )
    await client.close()
