"""Marketplace fee schedules and seller fee profiles.

All arithmetic is Decimal. Percentages are stored as fractions (0.095 means
9.5%). Alias shipping is always charged in USD, StockX shipping in GBP.
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping, Optional

from resale_market.ingest.base import Marketplace

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

STOCKX_SELLER_LEVEL_FEES = {
    1: Decimal("0.09"),
    2: Decimal("0.085"),
    3: Decimal("0.08"),
    4: Decimal("0.075"),
    5: Decimal("0.07"),
}

# USD, by seller region then shipping method
ALIAS_SHIPPING_FEES_USD = {
    "us": {"dropoff": Decimal("0"), "prepaid": Decimal("5")},
    "uk": {"dropoff": Decimal("2"), "prepaid": Decimal("5")},
    "eu": {"dropoff": Decimal("5"), "prepaid": Decimal("8")},
}

DEFAULT_STOCKX_SHIPPING = Decimal("4.00")
MAX_STOCKX_SHIPPING = Decimal("50")
DEFAULT_ALIAS_COMMISSION = Decimal("0.095")
DEFAULT_ALIAS_REGION = "uk"
DEFAULT_ALIAS_SHIPPING_METHOD = "dropoff"


def round_cents(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def clamp_seller_level(level: Any) -> int:
    try:
        level = int(Decimal(str(level)).to_integral_value(rounding=ROUND_HALF_UP))
    except (ArithmeticError, ValueError, TypeError):
        return 1
    return min(5, max(1, level))


def normalize_alias_region(region: Optional[str]) -> str:
    value = (region or "").strip().lower()
    return value if value in ALIAS_SHIPPING_FEES_USD else DEFAULT_ALIAS_REGION


def normalize_alias_method(method: Optional[str]) -> str:
    value = (method or "").strip().lower()
    return value if value in ("dropoff", "prepaid") else DEFAULT_ALIAS_SHIPPING_METHOD


@dataclass(frozen=True)
class FeeProfile:
    """A seller's account settings that determine their fees."""

    stockx_seller_level: int = 1
    stockx_shipping_fee: Decimal = DEFAULT_STOCKX_SHIPPING
    alias_commission_fee: Decimal = DEFAULT_ALIAS_COMMISSION
    alias_seller_region: str = DEFAULT_ALIAS_REGION
    alias_shipping_method: str = DEFAULT_ALIAS_SHIPPING_METHOD


@dataclass(frozen=True)
class FeeBreakdown:
    platform_fee: Decimal
    payment_fee: Decimal
    shipping: Decimal
    total: Decimal


@dataclass(frozen=True)
class FeeSchedule:
    """Fees a marketplace takes from one sale."""

    seller_fee_percent: Decimal
    payment_processing_percent: Decimal = Decimal("0")
    shipping_cost: Decimal = Decimal("0")
    minimum_fee: Decimal = Decimal("0")
    currency: str = "USD"

    def fees(self, gross: Decimal) -> FeeBreakdown:
        """Fee breakdown for a sale at ``gross``; the seller fee has a floor."""
        platform_fee = max(gross * self.seller_fee_percent, self.minimum_fee)
        payment_fee = gross * self.payment_processing_percent
        total = platform_fee + payment_fee + self.shipping_cost
        return FeeBreakdown(
            platform_fee=round_cents(platform_fee),
            payment_fee=round_cents(payment_fee),
            shipping=round_cents(self.shipping_cost),
            total=round_cents(total),
        )

    def net_proceeds(self, gross: Decimal) -> Decimal:
        return round_cents(gross - self.fees(gross).total)


def fee_schedule_for(marketplace: str, profile: Optional[FeeProfile] = None) -> FeeSchedule:
    """Build the fee schedule a seller with ``profile`` pays on ``marketplace``."""
    profile = profile or FeeProfile()
    marketplace = Marketplace(marketplace)

    if marketplace is Marketplace.STOCKX:
        level = clamp_seller_level(profile.stockx_seller_level)
        shipping = Decimal(str(profile.stockx_shipping_fee))
        shipping = min(MAX_STOCKX_SHIPPING, max(Decimal("0"), shipping))
        return FeeSchedule(
            seller_fee_percent=STOCKX_SELLER_LEVEL_FEES[level],
            payment_processing_percent=Decimal("0.03"),
            shipping_cost=shipping,
            minimum_fee=Decimal("5.00"),
            currency="GBP",
        )

    commission = Decimal(str(profile.alias_commission_fee))
    commission = min(Decimal("1"), max(Decimal("0"), commission))
    region = normalize_alias_region(profile.alias_seller_region)
    method = normalize_alias_method(profile.alias_shipping_method)
    return FeeSchedule(
        seller_fee_percent=commission,
        payment_processing_percent=Decimal("0.029"),
        shipping_cost=ALIAS_SHIPPING_FEES_USD[region][method],
        minimum_fee=Decimal("0"),
        currency="USD",
    )


def build_fee_profile(user_settings: Mapping[str, Any]) -> FeeProfile:
    """
    Build a FeeProfile from stored user settings.

    ``alias_commission_fee`` is stored as a percentage (9.5) and converted
    to a fraction. Values between 0 and 1 are assumed to already be a
    fraction and are used as-is.
    """
    commission = DEFAULT_ALIAS_COMMISSION
    raw = user_settings.get("alias_commission_fee")
    if raw is not None:
        raw = Decimal(str(raw))
        if 0 < raw < 1:
            logger.warning(
                f"alias_commission_fee={raw} looks like a fraction, expected a percentage; using as-is"
            )
            commission = raw
        else:
            commission = raw / 100

    shipping = user_settings.get("stockx_shipping_fee")
    return FeeProfile(
        stockx_seller_level=clamp_seller_level(user_settings.get("stockx_seller_level") or 1),
        stockx_shipping_fee=(
            DEFAULT_STOCKX_SHIPPING if shipping is None else Decimal(str(shipping))
        ),
        alias_commission_fee=commission,
        alias_seller_region=normalize_alias_region(user_settings.get("alias_region")),
        alias_shipping_method=normalize_alias_method(user_settings.get("alias_shipping_method")),
    )
