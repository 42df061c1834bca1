"""Tests for price normalization."""

from decimal import Decimal

import pytest

from resale_market.normalize.processor import PriceNormalizer, PriceUnit


@pytest.fixture
def normalizer():
    return PriceNormalizer()


def test_major_unit_string(normalizer):
    parsed = normalizer.normalize("27", PriceUnit.MAJOR)
    assert parsed.value == Decimal("27.00")
    assert parsed.ok


def test_minor_unit_integer(normalizer):
    parsed = normalizer.normalize(2700, PriceUnit.MINOR)
    assert parsed.value == Decimal("27.00")


def test_minor_unit_cents_string(normalizer):
    assert normalizer.normalize("12345", PriceUnit.MINOR).value == Decimal("123.45")


def test_none_is_missing_not_error(normalizer):
    parsed = normalizer.normalize(None)
    assert parsed.value is None
    assert parsed.ok


@pytest.mark.parametrize("raw", ["abc", "", "  ", "12,50", True, [], {"amount": 1}])
def test_unparseable_input_is_flagged(normalizer, raw):
    parsed = normalizer.normalize(raw)
    assert parsed.value is None
    assert not parsed.ok
    assert "unparseable" in parsed.error


@pytest.mark.parametrize("raw", ["NaN", "Infinity", float("inf")])
def test_non_finite_is_flagged(normalizer, raw):
    parsed = normalizer.normalize(raw)
    assert parsed.value is None
    assert not parsed.ok


def test_negative_is_flagged(normalizer):
    parsed = normalizer.normalize("-5")
    assert parsed.value is None
    assert "negative" in parsed.error


def test_zero_is_missing_for_alias_style_prices(normalizer):
    parsed = normalizer.normalize("0", PriceUnit.MINOR, zero_is_missing=True)
    assert parsed.value is None
    assert parsed.ok


def test_zero_is_a_price_by_default(normalizer):
    assert normalizer.normalize("0").value == Decimal("0.00")


def test_rounds_half_up_to_cents(normalizer):
    assert normalizer.normalize("27.005").value == Decimal("27.01")
    assert normalizer.normalize("27.004").value == Decimal("27.00")
    assert normalizer.normalize(27.5).value == Decimal("27.50")


def test_to_major_logs_rejections(normalizer, caplog):
    with caplog.at_level("WARNING"):
        assert normalizer.to_major("bogus") is None
    assert "rejected" in caplog.text
