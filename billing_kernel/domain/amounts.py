"""
Amounts -- minor-unit normalization, rounding and currency codes.

Responsibility:
    Converts provider integer minor units (cents) into Decimal currency
    amounts, keeping "unknown" (None) distinct from zero, and owns the
    single rounding rule used for ledger deltas.

Architecture position:
    Kernel > Domain -- pure functions, no I/O.

Invariants enforced:
    - No floats: amounts are Decimal end to end.
    - ``normalize_amount`` never raises and never substitutes zero for an
      unknown value.
    - ``round_money`` is the only rounding function applied to deltas.
"""

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from billing_kernel.exceptions import InvalidCurrencyError

MINOR_UNITS_PER_MAJOR = Decimal(100)
MONEY_DECIMAL_PLACES = 2
ZERO = Decimal("0")

ISO_4217_CURRENCIES: frozenset[str] = frozenset({
    "USD", "EUR", "GBP", "JPY", "CHF", "CAD", "AUD", "NZD",
    "AED", "ARS", "BGN", "BRL", "CLP", "CNY", "COP", "CZK",
    "DKK", "EGP", "HKD", "HUF", "IDR", "ILS", "INR", "ISK",
    "KES", "KRW", "MAD", "MXN", "MYR", "NGN", "NOK", "PEN",
    "PHP", "PKR", "PLN", "QAR", "RON", "SAR", "SEK", "SGD",
    "THB", "TRY", "TWD", "UAH", "VND", "ZAR",
})


def normalize_amount(minor_units: Any) -> Decimal | None:
    """Convert integer minor units to a Decimal major-unit amount.

    Returns None for missing, non-numeric, NaN or infinite input.

    >>> normalize_amount(12345)
    Decimal('123.45')
    >>> normalize_amount(None) is None
    True
    """
    if minor_units is None or isinstance(minor_units, bool):
        return None
    if isinstance(minor_units, Decimal):
        if not minor_units.is_finite():
            return None
        return minor_units / MINOR_UNITS_PER_MAJOR
    if isinstance(minor_units, int):
        return Decimal(minor_units) / MINOR_UNITS_PER_MAJOR
    if isinstance(minor_units, float):
        if not math.isfinite(minor_units):
            return None
        return Decimal(str(minor_units)) / MINOR_UNITS_PER_MAJOR
    # Other Real types (Fraction) have no exact decimal form.
    return None


def round_money(value: Decimal, decimal_places: int = MONEY_DECIMAL_PLACES) -> Decimal:
    """Round a monetary value half-up to ``decimal_places``."""
    quantum = Decimal(1).scaleb(-decimal_places)
    return value.quantize(quantum, rounding=ROUND_HALF_UP)


def is_zero_money(value: Decimal) -> bool:
    """True when ``value`` rounds to zero at money precision."""
    return round_money(value) == ZERO


def normalize_currency(code: Any, default: str = "USD") -> str:
    """Return an upper-case ISO 4217 code, falling back to ``default`` when absent.

    Raises:
        InvalidCurrencyError: code is present but not a known ISO 4217 code.
    """
    if code is None or (isinstance(code, str) and not code.strip()):
        code = default
    if not isinstance(code, str):
        raise InvalidCurrencyError(str(code))
    normalized = code.strip().upper()
    if len(normalized) != 3 or normalized not in ISO_4217_CURRENCIES:
        raise InvalidCurrencyError(code)
    return normalized
