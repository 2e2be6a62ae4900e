"""Conversion between native Tokens and fiat cents.

``to_fiat`` returns exact cents as a Decimal; the display rounding (half-up to
3 decimal places of the fiat amount, then half-up to whole cents) is applied
by ``round_cents``/``format_fiat``. Rounding steps run on ``Fraction`` values
so results do not depend on the Decimal context precision.
"""

import math
import re
from decimal import Decimal, InvalidOperation
from fractions import Fraction

from lnd_beacon.errors import RateUnavailable, ValidationFailure
from lnd_beacon.models import CurrencyAmount, Unit

TOKENS_PER_COIN = 100_000_000
CENTS_PER_UNIT = 100

_NON_NUMERIC = re.compile(r"[^0-9.]")


def _require_rate(cents_per_coin: int | None) -> int:
    if cents_per_coin is None or isinstance(cents_per_coin, bool) or cents_per_coin <= 0:
        raise RateUnavailable("No exchange rate available")
    return int(cents_per_coin)


def _shift(value: Decimal, places: int) -> Decimal:
    """``value * 10**places`` without going through the Decimal context."""
    sign, digits, exponent = value.as_tuple()
    return Decimal((sign, digits, exponent + places))


def _half_up(value: Fraction) -> int:
    """Nearest integer, ties away from zero."""
    magnitude = math.floor(abs(value) + Fraction(1, 2))
    return -magnitude if value < 0 else magnitude


def to_fiat(tokens: int, cents_per_coin: int | None) -> Decimal:
    """Exact fiat cents for ``tokens`` at ``cents_per_coin``."""
    rate = _require_rate(cents_per_coin)
    if tokens < 0:
        raise ValidationFailure("Tokens cannot be negative")
    return _shift(Decimal(int(tokens) * rate), -8)


def to_native(cents: int | Decimal, cents_per_coin: int | None) -> int:
    """Tokens for ``cents``, floored, never negative."""
    rate = _require_rate(cents_per_coin)
    raw = Fraction(cents) * TOKENS_PER_COIN / rate
    thousandths = _half_up(raw * 1000)
    return max(0, thousandths // 1000)


def convert(amount: CurrencyAmount, cents_per_coin: int | None) -> CurrencyAmount:
    if amount.unit is Unit.NATIVE:
        return CurrencyAmount.fiat(to_fiat(int(amount.value), cents_per_coin))
    return CurrencyAmount.native(to_native(amount.value, cents_per_coin))


def round_cents(cents: int | Decimal) -> int:
    """Whole cents for display."""
    mills = _half_up(Fraction(cents) * 10)
    return _half_up(Fraction(mills, 10))


def format_fiat(cents: int | Decimal, symbol: str = "$") -> str:
    whole = round_cents(cents)
    sign = "-" if whole < 0 else ""
    whole = abs(whole)
    return f"{sign}{symbol}{whole // CENTS_PER_UNIT:,}.{whole % CENTS_PER_UNIT:02d}"

def format_tokens(tokens: int) -> str:
    """Coin amount with 8 decimals, e.g. 12345 -> '0.00012345'."""
    return f"{tokens // TOKENS_PER_COIN}.{tokens % TOKENS_PER_COIN:08d}"


def filter_numeric(text: str | None) -> str:
    """Drop everything outside [0-9.] and keep only the first decimal point.

    '12.3.4' -> '12.34', '$1,000' -> '1000'.
    """
    digits = _NON_NUMERIC.sub("", text or "")
    if "." not in digits:
        return digits
    head, _, tail = digits.partition(".")
    return f"{head}.{tail.replace('.', '')}"


def parse_amount(text: str | None) -> Decimal:
    """Lenient parse of free text; anything unusable is zero."""
    digits = filter_numeric(text)
    if digits in ("", "."):
        return Decimal(0)
    try:
        return Decimal(digits)
    except InvalidOperation:
        return Decimal(0)


def parse_coin_amount(text: str | None) -> int:
    """Coin amount typed by the operator -> Tokens."""
    return math.floor(Fraction(parse_amount(text)) * TOKENS_PER_COIN)


def parse_fiat_amount(text: str | None) -> Decimal:
    """Fiat amount typed by the operator -> cents."""
    return _shift(parse_amount(text), 2)
