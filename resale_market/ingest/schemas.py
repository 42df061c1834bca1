"""Typed marketplace response payloads.

Each provider's market-data response is validated into its own model when
it is fetched. The models share a ``marketplace`` tag so mixed collections
can be validated through ``MarketPayload`` as a discriminated union.
"""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from resale_market.ingest.http_client import MalformedResponseError

RawPrice = Optional[Union[str, int, float]]


class _StockxModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class _AliasModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


# =============================================================================
# StockX
# =============================================================================


class StockxSearchHit(_StockxModel):
    product_id: str
    style_id: Optional[str] = None
    title: Optional[str] = None


class StockxSearchResponse(_StockxModel):
    count: int = 0
    products: list[StockxSearchHit] = Field(default_factory=list)


class StockxProductAttributes(_StockxModel):
    colorway: Optional[str] = None
    gender: Optional[str] = None
    release_date: Optional[str] = None
    retail_price: Optional[float] = None


class StockxProduct(_StockxModel):
    product_id: str
    brand: Optional[str] = None
    title: Optional[str] = None
    style_id: Optional[str] = None
    product_type: Optional[str] = None
    url_key: Optional[str] = None
    product_attributes: Optional[StockxProductAttributes] = None


class StockxGtin(_StockxModel):
    identifier: str
    type: Optional[str] = None


class StockxVariant(_StockxModel):
    variant_id: str
    variant_name: Optional[str] = None
    variant_value: str
    gtins: list[StockxGtin] = Field(default_factory=list)


class StockxMarketData(_StockxModel):
    marketplace: Literal["stockx"] = "stockx"
    product_id: Optional[str] = None
    variant_id: str
    currency_code: Optional[str] = None
    highest_bid_amount: RawPrice = None
    lowest_ask_amount: RawPrice = None
    flex_lowest_ask_amount: RawPrice = None
    earn_more_amount: RawPrice = None
    sell_faster_amount: RawPrice = None


# =============================================================================
# Alias
# =============================================================================


class AliasAllowedSize(_AliasModel):
    value: float
    display_name: Optional[str] = None
    us_size_equivalent: Optional[float] = None


class AliasCatalogItem(_AliasModel):
    catalog_id: str
    brand: Optional[str] = None
    name: Optional[str] = None
    sku: Optional[str] = None
    size_unit: Optional[str] = None
    allowed_sizes: list[AliasAllowedSize] = Field(default_factory=list)
    main_picture_url: Optional[str] = None


class AliasSearchResponse(_AliasModel):
    catalog_items: list[AliasCatalogItem] = Field(default_factory=list)
    has_more: bool = False


class AliasCatalogResponse(_AliasModel):
    catalog_item: AliasCatalogItem


class AliasAvailabilityPrices(_AliasModel):
    lowest_listing_price_cents: RawPrice = None
    highest_offer_price_cents: RawPrice = None
    last_sold_listing_price_cents: RawPrice = None
    global_indicator_price_cents: RawPrice = None


class AliasAvailabilityVariant(_AliasModel):
    size: Union[str, float]
    product_condition: Optional[str] = None
    packaging_condition: Optional[str] = None
    consigned: Optional[bool] = False
    availability: Optional[AliasAvailabilityPrices] = None


class AliasAvailabilitiesResponse(_AliasModel):
    variants: list[AliasAvailabilityVariant] = Field(default_factory=list)


class AliasAvailability(_AliasModel):
    marketplace: Literal["alias"] = "alias"
    availability: Optional[AliasAvailabilityPrices] = None


MarketPayload = Annotated[
    Union[StockxMarketData, AliasAvailability],
    Field(discriminator="marketplace"),
]

_market_payload_adapter = TypeAdapter(MarketPayload)


def parse_payload(model: type[BaseModel], data, source: str) -> BaseModel:
    """Validate ``data`` into ``model`` or raise MalformedResponseError."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise MalformedResponseError(
            f"{source}: unexpected {model.__name__} payload ({e.error_count()} errors)"
        ) from e


def parse_market_payload(marketplace: str, data) -> Union[StockxMarketData, AliasAvailability]:
    """Validate a raw market-data body tagged with its marketplace."""
    if not isinstance(data, dict):
        raise MalformedResponseError(f"{marketplace}: market data is not an object")
    try:
        return _market_payload_adapter.validate_python({**data, "marketplace": marketplace})
    except ValidationError as e:
        raise MalformedResponseError(
            f"{marketplace}: unexpected market data payload ({e.error_count()} errors)"
        ) from e
