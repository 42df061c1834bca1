"""Display-currency conversion."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping


class UnsupportedCurrencyError(ValueError):
    """No multiplier was supplied for a source currency."""

    def __init__(self, from_currency: str, to_currency: str):
        super().__init__(f"Unsupported currency conversion: {from_currency} -> {to_currency}")
        self.from_currency = from_currency
        self.to_currency = to_currency


@dataclass(frozen=True)
class FxRates:
    """
    Multipliers from source currencies into one display currency.

    ``multipliers["USD"] = Decimal("0.79")`` means 1 USD is 0.79 units of
    ``display_currency``. Amounts already in the display currency convert
    with an implicit 1.
    """

    display_currency: str
    multipliers: Mapping[str, Decimal] = field(default_factory=dict)

    def rate(self, from_currency: str) -> Decimal:
        if from_currency == self.display_currency:
            return Decimal("1")
        try:
            return Decimal(str(self.multipliers[from_currency]))
        except KeyError:
            raise UnsupportedCurrencyError(from_currency, self.display_currency) from None

    def convert(self, amount: Decimal, from_currency: str) -> Decimal:
        return amount * self.rate(from_currency)

    @classmethod
    def identity(cls, currency: str) -> "FxRates":
        return cls(display_currency=currency)
