"""Tests for fee schedules, FX conversion and cross-marketplace resolution."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from resale_market.ingest.base import MarketQuote, VariantInfo
from resale_market.pricing.fees import (
    FeeProfile,
    FeeSchedule,
    build_fee_profile,
    clamp_seller_level,
    fee_schedule_for,
)
from resale_market.pricing.fx import FxRates, UnsupportedCurrencyError
from resale_market.pricing.resolver import MarketSide, real_profit, resolve_pricing
from resale_market.pricing.service import PricingService, normalize_size

T0 = datetime(2026, 3, 1, 12, 0, 0)
GBP = FxRates.identity("GBP")


def _schedules(a_percent="0.10", b_percent="0.05"):
    return {
        "stockx": FeeSchedule(seller_fee_percent=Decimal(a_percent), currency="GBP"),
        "alias": FeeSchedule(seller_fee_percent=Decimal(b_percent), currency="GBP"),
    }


def _side(marketplace, ask, bid=None, currency="GBP", updated_at=T0):
    return MarketSide(
        marketplace=marketplace,
        currency=currency,
        lowest_ask=Decimal(ask) if ask is not None else None,
        highest_bid=Decimal(bid) if bid is not None else None,
        updated_at=updated_at,
    )


class TestFeeSchedules:
    def test_default_stockx_fees(self):
        schedule = fee_schedule_for("stockx")
        assert schedule.net_proceeds(Decimal("100")) == Decimal("84.00")

    def test_stockx_minimum_fee_applies_to_cheap_items(self):
        schedule = fee_schedule_for("stockx")
        breakdown = schedule.fees(Decimal("20"))

        assert breakdown.platform_fee == Decimal("5.00")
        assert schedule.net_proceeds(Decimal("20")) == Decimal("10.40")

    def test_stockx_seller_level_lowers_fee(self):
        schedule = fee_schedule_for("stockx", FeeProfile(stockx_seller_level=5))
        assert schedule.seller_fee_percent == Decimal("0.07")

    def test_alias_uk_dropoff(self):
        schedule = fee_schedule_for("alias")
        assert schedule.currency == "USD"
        assert schedule.net_proceeds(Decimal("100")) == Decimal("85.60")

    def test_alias_prepaid_shipping(self):
        schedule = fee_schedule_for(
            "alias", FeeProfile(alias_seller_region="us", alias_shipping_method="prepaid")
        )
        assert schedule.shipping_cost == Decimal("5")

    def test_unknown_marketplace_is_rejected(self):
        with pytest.raises(ValueError):
            fee_schedule_for("ebay")


class TestFeeProfile:
    def test_commission_percentage_becomes_fraction(self):
        assert build_fee_profile({"alias_commission_fee": 9.5}).alias_commission_fee == Decimal("0.095")

    def test_commission_fraction_is_kept(self):
        assert build_fee_profile({"alias_commission_fee": 0.1}).alias_commission_fee == Decimal("0.1")

    def test_defaults(self):
        profile = build_fee_profile({})
        assert profile == FeeProfile()

    def test_out_of_range_values_are_normalized(self):
        profile = build_fee_profile(
            {"stockx_seller_level": 7, "alias_region": "mars", "alias_shipping_method": "drone"}
        )
        assert profile.stockx_seller_level == 5
        assert profile.alias_seller_region == "uk"
        assert profile.alias_shipping_method == "dropoff"

    @pytest.mark.parametrize("level,expected", [(0, 1), (2.6, 3), ("4", 4), ("junk", 1), (None, 1)])
    def test_clamp_seller_level(self, level, expected):
        assert clamp_seller_level(level) == expected


class TestFxRates:
    def test_same_currency_is_identity(self):
        assert GBP.convert(Decimal("12.34"), "GBP") == Decimal("12.34")

    def test_conversion_uses_multiplier(self):
        rates = FxRates("GBP", {"USD": Decimal("0.8")})
        assert rates.convert(Decimal("100"), "USD") == Decimal("80.0")

    def test_unsupported_currency_raises(self):
        with pytest.raises(UnsupportedCurrencyError) as exc_info:
            GBP.rate("JPY")
        assert exc_info.value.from_currency == "JPY"


class TestResolvePricing:
    def test_higher_net_proceeds_wins(self):
        result = resolve_pricing(
            [_side("stockx", "100"), _side("alias", "90")], GBP, fee_schedules=_schedules()
        )

        assert result.best_platform_to_sell == "stockx"
        assert result.best_net_proceeds == Decimal("90.00")
        assert result.platform_advantage == Decimal("4.50")
        assert result.currency == "GBP"

    def test_no_data_gives_empty_result(self):
        result = resolve_pricing([], GBP)

        assert not result.has_data
        assert result.best_platform_to_sell is None
        assert result.best_net_proceeds is None
        assert result.currency is None
        assert result.real_profit is None
        assert result.best_bid_platform is None

    def test_sides_without_prices_are_ignored(self):
        result = resolve_pricing(
            [_side("stockx", None), _side("alias", "0")], GBP, fee_schedules=_schedules()
        )
        assert not result.has_data

    def test_single_side_has_no_advantage(self):
        result = resolve_pricing([_side("alias", "90")], GBP, fee_schedules=_schedules())

        assert result.best_platform_to_sell == "alias"
        assert result.platform_advantage is None

    def test_tie_goes_to_more_recent_snapshot(self):
        result = resolve_pricing(
            [_side("stockx", "100", updated_at=T0), _side("alias", "100", updated_at=T0 + timedelta(hours=1))],
            GBP,
            fee_schedules=_schedules("0.10", "0.10"),
        )
        assert result.best_platform_to_sell == "alias"
        assert result.platform_advantage == Decimal("0.00")

    def test_full_tie_goes_to_stockx(self):
        result = resolve_pricing(
            [_side("alias", "100"), _side("stockx", "100")],
            GBP,
            fee_schedules=_schedules("0.10", "0.10"),
        )
        assert result.best_platform_to_sell == "stockx"

    def test_comparison_happens_in_display_currency(self):
        rates = FxRates("GBP", {"USD": Decimal("0.8")})
        result = resolve_pricing(
            [_side("stockx", "70"), _side("alias", "100", currency="USD")],
            rates,
            fee_profile=FeeProfile(),
        )

        assert result.net_proceeds["alias"].net_receive == Decimal("85.60")
        assert result.net_proceeds["alias"].net_receive_display == Decimal("68.48")
        assert result.net_proceeds["stockx"].net_receive_display == Decimal("57.60")
        assert result.best_platform_to_sell == "alias"

    def test_missing_fx_rate_raises(self):
        with pytest.raises(UnsupportedCurrencyError):
            resolve_pricing([_side("alias", "100", currency="USD")], GBP)

    def test_bids_are_resolved_separately(self):
        result = resolve_pricing(
            [_side("stockx", "100", bid="80"), _side("alias", "90", bid="85")],
            GBP,
            fee_schedules=_schedules(),
        )
        assert result.best_platform_to_sell == "stockx"
        assert result.best_bid_platform == "alias"
        assert result.best_bid_net_proceeds == Decimal("80.75")

    def test_profit_against_cost_basis(self):
        result = resolve_pricing(
            [_side("stockx", "100")], GBP, fee_schedules=_schedules(), cost_basis=Decimal("60")
        )
        assert result.real_profit == Decimal("30.00")
        assert result.real_profit_percent == Decimal("50.0")

    def test_cost_basis_is_converted(self):
        rates = FxRates("GBP", {"USD": Decimal("0.5")})
        result = resolve_pricing(
            [_side("stockx", "100")],
            rates,
            fee_schedules=_schedules(),
            cost_basis=Decimal("120"),
            cost_currency="USD",
        )
        assert result.real_profit == Decimal("30.00")


class TestRealProfit:
    def test_percent_rounds_to_one_decimal(self):
        profit, percent = real_profit(Decimal("90"), Decimal("70"))
        assert profit == Decimal("20.00")
        assert percent == Decimal("28.6")

    def test_zero_cost_has_no_percent(self):
        assert real_profit(Decimal("90"), Decimal("0")) == (Decimal("90.00"), None)

    def test_no_cost(self):
        assert real_profit(Decimal("90"), None) == (None, None)


@pytest.mark.parametrize(
    "label,expected",
    [("US 10", "10"), ("10W", "10"), ("10.0", "10"), ("10.5", "10.5"), ("UK 9", "9"), (" 11 ", "11")],
)
def test_normalize_size(label, expected):
    assert normalize_size(label) == expected


class TestPricingService:
    async def _seed(self, store):
        item = await store.ensure_catalog_item("DD1391-100")
        stockx = await store.upsert_variants(item.id, "stockx", [VariantInfo("sx-10", "US 10")])
        alias = await store.upsert_variants(
            item.id,
            "alias",
            [VariantInfo("al:10:uk:n", "10", region="uk"), VariantInfo("al:10:us:n", "10.0", region="us")],
        )

        ttl = timedelta(hours=24)
        await store.upsert_latest(
            stockx[0].id, MarketQuote("sx-10", "GBP", Decimal("100"), Decimal("80")), ttl, now=T0
        )
        await store.upsert_latest(
            alias[0].id, MarketQuote("al:10:uk:n", "USD", Decimal("120"), None), ttl, now=T0
        )
        await store.upsert_latest(
            alias[1].id,
            MarketQuote("al:10:us:n", "USD", Decimal("150"), None),
            ttl,
            now=T0 + timedelta(hours=2),
        )

    @pytest.mark.asyncio
    async def test_market_sides_match_normalized_sizes(self, store):
        await self._seed(store)
        service = PricingService(store, {"stockx": "GBP", "alias": "USD"})

        sides = await service.market_sides("DD1391-100", "10")

        assert [s.marketplace for s in sides] == ["stockx", "alias"]
        # Newest alias row wins
        assert sides[1].lowest_ask == Decimal("150")

    @pytest.mark.asyncio
    async def test_unknown_sku_has_no_sides(self, store):
        service = PricingService(store, {"stockx": "GBP", "alias": "USD"})
        assert await service.market_sides("NOPE", "10") == []

        result = await service.price_for("NOPE", "10", None, None, GBP)
        assert not result.has_data

    @pytest.mark.asyncio
    async def test_price_for_resolves_across_marketplaces(self, store):
        await self._seed(store)
        service = PricingService(store, {"stockx": "GBP", "alias": "USD"})

        result = await service.price_for(
            "DD1391-100",
            "US 10",
            cost_basis=Decimal("50"),
            fee_profile=FeeProfile(),
            fx_rates=FxRates("GBP", {"USD": Decimal("0.8")}),
        )

        assert set(result.net_proceeds) == {"stockx", "alias"}
        assert result.best_platform_to_sell == "alias"
        assert result.real_profit == result.best_net_proceeds - Decimal("50")

    @pytest.mark.asyncio
    async def test_expired_rows_still_price_but_are_flagged(self, store):
        await self._seed(store)
        service = PricingService(store, {"stockx": "GBP", "alias": "USD"})

        # stockx row expires at T0 + 24h, newest alias row at T0 + 26h
        result = await service.price_for(
            "DD1391-100",
            "10",
            cost_basis=None,
            fee_profile=FeeProfile(),
            fx_rates=FxRates("GBP", {"USD": Decimal("0.8")}),
            now=T0 + timedelta(hours=25),
        )

        assert set(result.net_proceeds) == {"stockx", "alias"}
        assert result.stale_platforms == ["stockx"]

        sides = await service.market_sides("DD1391-100", "10", now=T0 + timedelta(hours=1))
        assert [s.stale for s in sides] == [False, False]
