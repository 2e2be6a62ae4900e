import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_DAEMON_URL = "http://localhost:10553"
DEFAULT_TIMEOUT = 30.0
DEFAULT_REFRESH_INTERVAL = 5.0
DEFAULT_CONF_PATH = str(Path.home() / ".config" / "lnd-beacon" / "lnd-beacon.conf")

# conf file key -> environment variable
_ENV_KEYS = {
    "daemonurl": "LND_BEACON_DAEMON_URL",
    "timeout": "LND_BEACON_TIMEOUT",
    "refreshinterval": "LND_BEACON_REFRESH_INTERVAL",
    "priceapi": "LND_BEACON_PRICE_API",
    "currencysymbol": "LND_BEACON_CURRENCY_SYMBOL",
}


def _float_or_default(value: str | None, default: float) -> float:
    if value is None:
        return default
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def _load_conf(conf_path: str) -> dict[str, str]:
    path = Path(conf_path)
    if not path.exists():
        return {}
    values: dict[str, str] = {}
    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip().lower()
        if key in _ENV_KEYS:
            values[key] = value.strip()
    return values


@dataclass(frozen=True)
class DaemonConfig:
    """Where the daemon lives and how often to poll it.

    Passed explicitly into the transport and the app; nothing here is global.
    """

    base_url: str = DEFAULT_DAEMON_URL
    timeout: float = DEFAULT_TIMEOUT
    refresh_interval: float = DEFAULT_REFRESH_INTERVAL
    price_endpoint: str = ""
    currency_symbol: str = "$"

    @classmethod
    def from_env(cls, conf_path: str | None = None) -> "DaemonConfig":
        """Build from the conf file, then let environment variables override it."""
        conf_path = conf_path or os.environ.get("LND_BEACON_CONF", DEFAULT_CONF_PATH)
        values = _load_conf(conf_path)
        for key, env_name in _ENV_KEYS.items():
            env_value = os.environ.get(env_name)
            if env_value:
                values[key] = env_value.strip()
        return cls(
            base_url=(values.get("daemonurl") or DEFAULT_DAEMON_URL).rstrip("/"),
            timeout=_float_or_default(values.get("timeout"), DEFAULT_TIMEOUT),
            refresh_interval=_float_or_default(
                values.get("refreshinterval"), DEFAULT_REFRESH_INTERVAL
            ),
            price_endpoint=values.get("priceapi", ""),
            currency_symbol=values.get("currencysymbol") or "$",
        )

    def url_for(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"
