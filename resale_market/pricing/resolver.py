"""Unified price resolution across marketplaces.

Pure functions over already-cached quotes: convert into the display
currency, subtract each marketplace's fees and pick where to sell.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping, Optional

from resale_market.ingest.base import Marketplace
from resale_market.pricing.fees import (
    FeeBreakdown,
    FeeProfile,
    FeeSchedule,
    fee_schedule_for,
    round_cents,
)
from resale_market.pricing.fx import FxRates

# Preference when net proceeds and recency are both equal
MARKETPLACE_ORDER = (Marketplace.STOCKX.value, Marketplace.ALIAS.value)

ONE_DECIMAL = Decimal("0.1")


@dataclass(frozen=True)
class MarketSide:
    """Latest cached prices of one marketplace for one size."""

    marketplace: str
    currency: str
    lowest_ask: Optional[Decimal] = None
    highest_bid: Optional[Decimal] = None
    updated_at: Optional[datetime] = None
    # Cached row is past its expiry; its prices still count
    stale: bool = False


@dataclass
class PlatformNetProceeds:
    marketplace: str
    gross_price: Decimal
    gross_currency: str
    fees: FeeBreakdown
    net_receive: Decimal
    net_receive_display: Decimal


@dataclass
class PricingResult:
    """Where to sell and what it earns. Every field is None without data."""

    best_platform_to_sell: Optional[str] = None
    best_net_proceeds: Optional[Decimal] = None
    currency: Optional[str] = None
    real_profit: Optional[Decimal] = None
    real_profit_percent: Optional[Decimal] = None
    platform_advantage: Optional[Decimal] = None
    best_bid_platform: Optional[str] = None
    best_bid_net_proceeds: Optional[Decimal] = None
    net_proceeds: dict[str, PlatformNetProceeds] = field(default_factory=dict)
    bid_net_proceeds: dict[str, PlatformNetProceeds] = field(default_factory=dict)
    stale_platforms: list[str] = field(default_factory=list)

    @property
    def has_data(self) -> bool:
        return self.best_platform_to_sell is not None

    def to_dict(self) -> dict:
        return asdict(self)


def _net_proceeds(
    side: MarketSide,
    gross: Optional[Decimal],
    schedule: FeeSchedule,
    fx_rates: FxRates,
) -> Optional[PlatformNetProceeds]:
    if gross is None or gross <= 0:
        return None

    fees = schedule.fees(gross)
    net = round_cents(gross - fees.total)
    return PlatformNetProceeds(
        marketplace=side.marketplace,
        gross_price=gross,
        gross_currency=side.currency,
        fees=fees,
        net_receive=net,
        net_receive_display=round_cents(fx_rates.convert(net, side.currency)),
    )


def _order_index(marketplace: str) -> int:
    try:
        return MARKETPLACE_ORDER.index(marketplace)
    except ValueError:
        return len(MARKETPLACE_ORDER)


def pick_best(
    proceeds: Mapping[str, PlatformNetProceeds],
    updated_at: Mapping[str, Optional[datetime]],
) -> Optional[str]:
    """
    Marketplace with the highest display-currency net proceeds.

    Ties go to the more recently refreshed snapshot, then to the earlier
    marketplace in MARKETPLACE_ORDER.
    """
    if not proceeds:
        return None

    def key(name: str):
        return (
            proceeds[name].net_receive_display,
            updated_at.get(name) or datetime.min,
            -_order_index(name),
        )

    return max(proceeds, key=key)


def real_profit(
    net_proceeds: Decimal, cost_basis: Optional[Decimal]
) -> tuple[Optional[Decimal], Optional[Decimal]]:
    """Profit and profit percent (one decimal); percent is None at zero cost."""
    if cost_basis is None:
        return None, None

    profit = round_cents(net_proceeds - cost_basis)
    if cost_basis <= 0:
        return profit, None

    percent = (profit / cost_basis * 100).quantize(ONE_DECIMAL, rounding=ROUND_HALF_UP)
    return profit, percent


def resolve_pricing(
    sides: list[MarketSide],
    fx_rates: FxRates,
    fee_profile: Optional[FeeProfile] = None,
    fee_schedules: Optional[Mapping[str, FeeSchedule]] = None,
    cost_basis: Optional[Decimal] = None,
    cost_currency: Optional[str] = None,
) -> PricingResult:
    """
    Combine each marketplace's latest quote into one recommendation.

    Args:
        sides: At most one MarketSide per marketplace
        fx_rates: Multipliers into the display currency
        fee_profile: Seller settings used to derive fee schedules
        fee_schedules: Explicit schedules overriding the profile per marketplace
        cost_basis: What the seller paid, in ``cost_currency``
        cost_currency: Defaults to the display currency

    Raises:
        UnsupportedCurrencyError: If a quote's currency has no FX multiplier
    """
    fee_schedules = fee_schedules or {}
    result = PricingResult()
    updated_at: dict[str, Optional[datetime]] = {}

    for side in sides:
        schedule = fee_schedules.get(side.marketplace) or fee_schedule_for(
            side.marketplace, fee_profile
        )
        updated_at[side.marketplace] = side.updated_at
        if side.stale:
            result.stale_platforms.append(side.marketplace)

        ask = _net_proceeds(side, side.lowest_ask, schedule, fx_rates)
        if ask is not None:
            result.net_proceeds[side.marketplace] = ask

        bid = _net_proceeds(side, side.highest_bid, schedule, fx_rates)
        if bid is not None:
            result.bid_net_proceeds[side.marketplace] = bid

    best = pick_best(result.net_proceeds, updated_at)
    if best is not None:
        result.best_platform_to_sell = best
        result.best_net_proceeds = result.net_proceeds[best].net_receive_display
        result.currency = fx_rates.display_currency

        if len(result.net_proceeds) > 1:
            values = sorted(p.net_receive_display for p in result.net_proceeds.values())
            result.platform_advantage = round_cents(values[-1] - values[-2])

        cost = cost_basis
        if cost is not None and cost_currency and cost_currency != fx_rates.display_currency:
            cost = round_cents(fx_rates.convert(cost, cost_currency))
        result.real_profit, result.real_profit_percent = real_profit(
            result.best_net_proceeds, cost
        )

    best_bid = pick_best(result.bid_net_proceeds, updated_at)
    if best_bid is not None:
        result.best_bid_platform = best_bid
        result.best_bid_net_proceeds = result.bid_net_proceeds[best_bid].net_receive_display
        result.currency = fx_rates.display_currency

    return result
