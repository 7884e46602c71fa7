"""Currency helpers: exact ``Decimal`` conversion through a table of rates.

Rates are quoted against a base currency (USD unless told otherwise).  A
missing rate is not an error for callers of ``RateTable.convert``: it returns
``None`` and the aggregation layer decides on a fallback.  Rounding happens
only in ``round_for_display``.
"""

from __future__ import annotations

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Mapping, Optional

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
UNIT = Decimal("1")

# Currencies displayed without minor units.
ZERO_DECIMAL_CURRENCIES = frozenset({"TWD", "JPY", "KRW", "VND", "CLP", "ISK", "PYG", "UGX"})


class NoMatchingCurrencyRate(KeyError):
    """No exchange rate is known for a currency code."""


def to_decimal(value) -> Decimal:
    """Convert ``value`` to ``Decimal`` without going through binary floats."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class RateTable:
    """Exchange rates relative to ``base``, usable directly as a converter."""

    def __init__(self, rates: Mapping[str, object], base: str = "USD"):
        self.base = base.upper()
        self._rates: Dict[str, Decimal] = {
            code.upper(): to_decimal(rate) for code, rate in rates.items()
        }
        self._rates.setdefault(self.base, Decimal("1"))

    def __contains__(self, code: str) -> bool:
        return code.upper() in self._rates

    def rate(self, code: str) -> Decimal:
        try:
            return self._rates[code.upper()]
        except KeyError:
            raise NoMatchingCurrencyRate(code) from None

    def convert(self, amount: Decimal, from_code: str, to_code: str) -> Optional[Decimal]:
        """Return ``amount`` expressed in ``to_code``, or ``None`` without a rate."""

        if from_code.upper() == to_code.upper():
            return amount
        try:
            source = self.rate(from_code)
            target = self.rate(to_code)
        except NoMatchingCurrencyRate as exc:
            logger.debug("No exchange rate for %s", exc.args[0])
            return None
        if source <= 0 or target <= 0:
            return None
        return amount / source * target

    __call__ = convert


def same_currency_only(amount: Decimal, from_code: str, to_code: str) -> Optional[Decimal]:
    """Converter that knows no rates at all."""
    if from_code.upper() == to_code.upper():
        return amount
    return None


def has_minor_units(code: str) -> bool:
    return code.upper() not in ZERO_DECIMAL_CURRENCIES


def round_for_display(amount: Decimal, code: str) -> Decimal:
    quantum = CENT if has_minor_units(code) else UNIT
    return to_decimal(amount).quantize(quantum, rounding=ROUND_HALF_UP)


def format_amount(amount: Decimal, code: str) -> str:
    """Return e.g. ``"USD 1,234.50"`` or ``"TWD 300"``."""
    return f"{code.upper()} {round_for_display(amount, code):,}"
