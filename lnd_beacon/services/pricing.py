import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

import requests

logger = logging.getLogger(__name__)

# Checked in order inside the response object
PRICE_FIELDS = ("priceUSD", "price_usd", "usd", "price")


def _decimal_or_none(val: Any) -> Decimal | None:
    if val is None or isinstance(val, bool):
        return None
    try:
        return Decimal(str(val))
    except (InvalidOperation, ValueError):
        return None


class PricingClient:
    """Coin price in fiat cents from one or more JSON price APIs.

    ``endpoints`` is a comma separated list; the first one that answers with
    a positive price wins. An empty list disables pricing.
    """

    def __init__(self, endpoints: str | list[str], timeout: float = 3) -> None:
        if isinstance(endpoints, str):
            endpoints = [e.strip() for e in endpoints.split(",")]
        self.endpoints = [e for e in endpoints if e]
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.endpoints)

    @staticmethod
    def _extract_price(raw: Any) -> Decimal | None:
        if not isinstance(raw, dict):
            return None
        d = raw.get("data") or raw
        if not isinstance(d, dict):
            return None
        for key in PRICE_FIELDS:
            price = _decimal_or_none(d.get(key))
            if price is not None:
                return price
        return None

    def fetch_cents_per_coin(self) -> int | None:
        """Return the coin price as integer cents, or None if every endpoint fails."""
        for endpoint in self.endpoints:
            try:
                response = requests.get(endpoint, timeout=self.timeout)
                response.raise_for_status()
                price = self._extract_price(response.json())
            except (requests.RequestException, ValueError) as exc:
                logger.debug("Price endpoint %s failed: %s", endpoint, exc)
                continue
            if price is None or price <= 0:
                logger.debug("Price endpoint %s returned no usable price", endpoint)
                continue
            cents = (price * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP)
            if cents > 0:
                return int(cents)
        return None
