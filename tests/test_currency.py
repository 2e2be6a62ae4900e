"""
Tests for native/fiat conversion, display rounding and lenient amount parsing.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from lnd_beacon.errors import RateUnavailable
from lnd_beacon.models import CurrencyAmount, Unit
from lnd_beacon.services.currency import (
    TOKENS_PER_COIN,
    convert,
    filter_numeric,
    format_fiat,
    format_tokens,
    parse_amount,
    parse_coin_amount,
    parse_fiat_amount,
    round_cents,
    to_fiat,
    to_native,
)


def test_to_fiat_is_exact() -> None:
    """12345 tokens at $2,500/coin is 30.8625 cents before display rounding."""
    assert to_fiat(12345, 250_000) == Decimal("30.8625")
    assert to_fiat(TOKENS_PER_COIN, 250_000) == Decimal(250_000)
    assert to_fiat(0, 250_000) == 0


def test_to_native_inverts_to_fiat() -> None:
    assert to_native(Decimal("30.8625"), 250_000) == 12345
    assert to_native(1, 250_000) == 400


def test_to_native_never_negative() -> None:
    assert to_native(Decimal("-5"), 250_000) == 0


def test_to_native_clamps_below_one_token() -> None:
    assert to_native(Decimal("0.000001"), 250_000) == 0


@pytest.mark.parametrize("rate", [0, None])
def test_missing_rate_is_rate_unavailable(rate) -> None:
    """A zero or absent rate never reaches a division."""
    with pytest.raises(RateUnavailable):
        to_fiat(1000, rate)
    with pytest.raises(RateUnavailable):
        to_native(Decimal(1000), rate)


@pytest.mark.parametrize("tokens", [0, 1, 7, 12345, 99_999_999, 2_100_000_000_000_000])
@pytest.mark.parametrize("rate", [1, 3, 250_000, 3_000_000, 99_999_999])
def test_round_trip_is_exact(tokens: int, rate: int) -> None:
    assert to_native(to_fiat(tokens, rate), rate) == tokens


@pytest.mark.parametrize("tokens, rate", [(10**25, 1), (10**25 + 1, 1000), (10**40 + 7, 99_999_999)])
def test_round_trip_beyond_default_decimal_precision(tokens: int, rate: int) -> None:
    assert to_native(to_fiat(tokens, rate), rate) == tokens


def test_round_cents_rounds_at_three_places_first() -> None:
    """0.45 cents is $0.0045 -> $0.005 -> $0.01, so one whole cent."""
    assert round_cents(Decimal("0.45")) == 1
    assert round_cents(Decimal("0.4449")) == 0
    assert round_cents(Decimal("30.8625")) == 31


def test_format_fiat() -> None:
    assert format_fiat(Decimal("123456.7")) == "$1,234.57"
    assert format_fiat(5, "€") == "€0.05"
    assert format_fiat(0) == "$0.00"


def test_format_tokens() -> None:
    assert format_tokens(12345) == "0.00012345"
    assert format_tokens(150_000_000) == "1.50000000"


def test_convert_switches_units() -> None:
    fiat = convert(CurrencyAmount.native(TOKENS_PER_COIN), 250_000)
    assert fiat.unit is Unit.FIAT
    assert fiat.value == Decimal(250_000)
    native = convert(fiat, 250_000)
    assert native == CurrencyAmount.native(TOKENS_PER_COIN)


def test_convert_without_rate() -> None:
    with pytest.raises(RateUnavailable):
        convert(CurrencyAmount.native(1), None)


def test_filter_keeps_first_decimal_point_only() -> None:
    """'12.3.4' keeps the first point and drops the rest."""
    assert filter_numeric("12.3.4") == "12.34"
    assert parse_amount("12.3.4") == Decimal("12.34")
    assert parse_amount("1.2.3") == Decimal("1.23")


@pytest.mark.parametrize("text", ["", None, ".", "abc", "..."])
def test_malformed_input_is_zero(text) -> None:
    assert parse_amount(text) == 0


def test_parse_strips_non_numeric() -> None:
    assert parse_amount("$1,234.50") == Decimal("1234.50")
    assert parse_amount("-5") == Decimal(5)
    assert parse_amount(" 7 BTC ") == Decimal(7)


def test_parse_coin_amount() -> None:
    assert parse_coin_amount("0.00012345") == 12345
    assert parse_coin_amount("1") == TOKENS_PER_COIN
    assert parse_coin_amount("0.000000001") == 0
    assert parse_coin_amount("oops") == 0


def test_parse_fiat_amount() -> None:
    assert parse_fiat_amount("12.34") == Decimal("1234")


def test_long_typed_amounts_still_convert() -> None:
    typed = "1" * 30
    tokens = parse_coin_amount(typed)
    assert tokens == int(typed) * TOKENS_PER_COIN
    assert format_fiat(to_fiat(tokens, 6_000_000)) == f"${int(typed) * 60_000:,}.00"
    assert parse_fiat_amount(typed + ".25") == Decimal(typed + "25")


def test_round_cents_on_large_amounts() -> None:
    assert round_cents(Decimal("1" * 35 + ".5")) == int("1" * 35) + 1
