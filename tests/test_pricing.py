"""
Tests for PricingClient: endpoint fallback and cents conversion.
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import requests

from lnd_beacon.services.pricing import PricingClient


def _response(payload) -> MagicMock:
    response = MagicMock()
    response.json.return_value = payload
    response.raise_for_status = MagicMock()
    return response


def test_disabled_without_endpoints() -> None:
    client = PricingClient("")
    assert client.enabled is False
    assert client.fetch_cents_per_coin() is None


def test_price_converted_to_cents() -> None:
    client = PricingClient("https://primary.test/price")
    with patch(
        "lnd_beacon.services.pricing.requests.get",
        return_value=_response({"data": {"priceUSD": "2500.125"}}),
    ) as mock_get:
        cents = client.fetch_cents_per_coin()

    assert cents == 250013
    mock_get.assert_called_once_with("https://primary.test/price", timeout=3)


def test_falls_back_to_backup_endpoint() -> None:
    client = PricingClient("https://primary.test, https://backup.test")
    responses = [requests.ConnectionError("down"), _response({"price": 1234.5})]

    with patch("lnd_beacon.services.pricing.requests.get", side_effect=responses) as mock_get:
        cents = client.fetch_cents_per_coin()

    assert cents == 123450
    assert mock_get.call_count == 2


def test_unusable_prices_yield_none() -> None:
    client = PricingClient(["https://a.test", "https://b.test"])
    responses = [_response({"priceUSD": 0}), _response({"something": "else"})]

    with patch("lnd_beacon.services.pricing.requests.get", side_effect=responses):
        assert client.fetch_cents_per_coin() is None
