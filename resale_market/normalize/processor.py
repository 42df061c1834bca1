"""Normalize raw marketplace prices into major-unit Decimals."""

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


class PriceUnit(str, Enum):
    """How a provider encodes a price."""

    MAJOR = "major"  # "27" -> 27.00
    MINOR = "minor"  # 2700 -> 27.00


@dataclass(frozen=True)
class ParsedPrice:
    """Result of normalizing one raw price field.

    ``value`` is None both when the provider sent no price and when the raw
    value could not be parsed; ``error`` is only set in the second case so
    callers can surface bad upstream fields without aborting a batch.
    """

    raw: Any
    value: Optional[Decimal]
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class PriceNormalizer:
    """Convert provider price representations to canonical Decimal values."""

    def normalize(
        self,
        raw: Any,
        unit: PriceUnit = PriceUnit.MAJOR,
        zero_is_missing: bool = False,
    ) -> ParsedPrice:
        """
        Normalize a raw price. Never raises.

        Args:
            raw: Decimal string, int, float or Decimal as sent by the provider
            unit: Whether ``raw`` is in major or minor (cent) units
            zero_is_missing: Treat a zero amount as "no price" (Alias sends "0")

        Returns:
            ParsedPrice with a two-decimal major-unit value or None
        """
        if raw is None:
            return ParsedPrice(raw=raw, value=None)

        amount = self._to_decimal(raw)
        if amount is None:
            return ParsedPrice(raw=raw, value=None, error=f"unparseable price {raw!r}")

        if not amount.is_finite():
            return ParsedPrice(raw=raw, value=None, error=f"non-finite price {raw!r}")

        if amount < 0:
            return ParsedPrice(raw=raw, value=None, error=f"negative price {raw!r}")

        if amount == 0 and zero_is_missing:
            return ParsedPrice(raw=raw, value=None)

        if unit == PriceUnit.MINOR:
            amount = amount / 100

        return ParsedPrice(raw=raw, value=amount.quantize(CENTS, rounding=ROUND_HALF_UP))

    def to_major(self, raw: Any, unit: PriceUnit = PriceUnit.MAJOR, **kwargs) -> Optional[Decimal]:
        """Shortcut returning only the value; rejected inputs are logged."""
        parsed = self.normalize(raw, unit, **kwargs)
        if not parsed.ok:
            logger.warning(f"Price normalization rejected input: {parsed.error}")
        return parsed.value

    @staticmethod
    def _to_decimal(raw: Any) -> Optional[Decimal]:
        # bool is an int subclass but never a price
        if isinstance(raw, bool):
            return None
        if isinstance(raw, Decimal):
            return raw
        if isinstance(raw, int):
            return Decimal(raw)
        if isinstance(raw, float):
            return Decimal(repr(raw))
        if isinstance(raw, str):
            text = raw.strip()
            if not text:
                return None
            try:
                return Decimal(text)
            except InvalidOperation:
                return None
        return None


price_normalizer = PriceNormalizer()
