"""
Provider Adapters.

One adapter per upstream source. Each knows its request vocabulary (URL,
parameters, interval mapping) and hands the decoded body to the normalizer:
- BinanceAdapter: /api/v3/klines, tries equivalent mirror hosts in order
- BinanceUSAdapter: same layout, single host
- YahooAdapter: v8 chart API, interval + range vocabulary
- PolygonAdapter: v2 aggregates, multiplier/timespan vocabulary, API key required
- TwelveDataAdapter: time_series, API key required

Every fetch performs exactly one round trip (Binance: one per mirror tried).
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Mapping, Optional
from urllib.parse import quote

import aiohttp

from tvlite.adapters.env_provider import MissingSecretError
from tvlite.config.configs import ProviderConfig
from tvlite.data.normalizer import normalize
from tvlite.errors.errors import MalformedResponse, MissingCredential, ProviderError
from tvlite.ports.http_transport import HttpTransport
from tvlite.ports.secrets_provider import SecretsProvider
from tvlite.types.types import BarSequence

logger = logging.getLogger(__name__)

# --- Interval vocabularies ---

YAHOO_INTERVALS: dict[str, str] = {
    "1m": "1m",
    "5m": "5m",
    "15m": "15m",
    "1h": "60m",
    "4h": "60m",
    "1d": "1d",
}
YAHOO_RANGES: dict[str, str] = {
    "1m": "1d",
    "5m": "5d",
    "15m": "1mo",
    "1h": "3mo",
    "4h": "6mo",
    "1d": "2y",
}
POLYGON_UNITS: dict[str, str] = {
    "1m": "minute",
    "5m": "minute",
    "15m": "minute",
    "1h": "hour",
    "4h": "hour",
    "1d": "day",
}
POLYGON_MULTIPLIERS: dict[str, int] = {"5m": 5, "15m": 15, "4h": 4}
TWELVEDATA_INTERVALS: dict[str, str] = {
    "1m": "1min",
    "5m": "5min",
    "15m": "15min",
    "1h": "1h",
    "4h": "4h",
    "1d": "1day",
}
TWELVEDATA_MAX_OUTPUTSIZE = 5000
POLYGON_MAX_LIMIT = 50000


def to_yahoo_symbol(symbol: str) -> str:
    """
    Map a crypto pair to Yahoo's naming: BTCUSDT -> BTC-USD, ETHUSD -> ETH-USD.
    Symbols that already carry a dash, or have no USD quote suffix, pass through.
    """
    sym = symbol.upper().replace(":", "-")
    if "-" in sym:
        return sym
    for suffix in ("USDT", "USD"):
        if sym.endswith(suffix) and len(sym) > len(suffix):
            return f"{sym[: -len(suffix)]}-USD"
    return symbol


def _one_year_before(d: dt.date) -> dt.date:
    try:
        return d.replace(year=d.year - 1)
    except ValueError:  # Feb 29
        return d.replace(year=d.year - 1, day=28)


def _utc_today() -> dt.date:
    return dt.datetime.now(dt.timezone.utc).date()


class BaseAdapter(ABC):
    """
    Abstract base class for provider adapters.

    Subclasses build the request and call `_get_json`; the base class turns
    transport failures and non-2xx answers into ProviderError and decoding
    failures into MalformedResponse.
    """

    name: str = "base"
    label: str = "Provider"  # human name used in error messages
    requires_credentials: bool = False
    secret_name: Optional[str] = None

    def __init__(
        self,
        transport: HttpTransport,
        cfg: ProviderConfig,
        secrets: Optional[SecretsProvider] = None,
    ) -> None:
        self._transport = transport
        self._cfg = cfg
        self._secrets = secrets

    @abstractmethod
    async def fetch(self, symbol: str, interval: str, limit: int) -> BarSequence: ...

    def has_credentials(self) -> bool:
        if not self.requires_credentials:
            return True
        return self._secrets is not None and self.secret_name is not None and self._secrets.has(
            self.secret_name
        )

    def _api_key(self) -> str:
        """Resolve the API key or fail fast with MissingCredential (no network call)."""
        if self.secret_name is None:
            raise MissingCredential(
                f"{self.label} has no credential configured", component=self.name
            )
        env_var = self.secret_name.upper()
        if self._secrets is None:
            raise MissingCredential(f"Missing {env_var}", env_var=env_var, component=self.name)
        try:
            return self._secrets.get(self.secret_name)
        except MissingSecretError as e:
            env_var = e.env_var or env_var
            raise MissingCredential(
                f"Missing {env_var}", env_var=env_var, component=self.name
            ) from e

    def _headers(self) -> Mapping[str, str]:
        return {"User-Agent": self._cfg.user_agent}

    async def _get_json(self, url: str, params: Optional[Mapping[str, str]] = None) -> Any:
        try:
            status, body = await self._transport.get_json(
                url, params=params, headers=self._headers()
            )
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            raise ProviderError(
                f"{self.label} request failed: {str(e) or type(e).__name__}",
                provider=self.name,
                url=url,
                component=self.name,
            ) from e
        except ValueError as e:
            raise MalformedResponse(
                f"{self.label} returned invalid JSON", provider=self.name, component=self.name
            ) from e

        if not 200 <= status < 300:
            raise ProviderError(
                f"{self.label} API {status}",
                status=status,
                provider=self.name,
                url=url,
                component=self.name,
            )
        return body

    def _normalize(self, body: Any) -> BarSequence:
        return normalize(self.name, body)


class BinanceAdapter(BaseAdapter):
    """Primary crypto venue; walks the mirror host list until one answers 2xx."""

    name = "binance"
    label = "Binance"

    def _hosts(self) -> tuple[str, ...]:
        return self._cfg.binance_hosts

    async def fetch(self, symbol: str, interval: str, limit: int) -> BarSequence:
        params = {"symbol": symbol, "interval": interval, "limit": str(limit)}
        last_err: Optional[ProviderError] = None
        for host in self._hosts():
            try:
                body = await self._get_json(f"{host}/api/v3/klines", params)
            except ProviderError as e:
                logger.debug(f"[{self.name}] mirror {host} failed: {e}")
                last_err = e
                continue
            return self._normalize(body)
        if last_err is None:
            raise ProviderError(f"{self.label} API unknown error", provider=self.name)
        raise last_err


class BinanceUSAdapter(BinanceAdapter):
    """Secondary venue with the Binance kline layout on a single host."""

    name = "binanceus"
    label = "BinanceUS"

    def _hosts(self) -> tuple[str, ...]:
        return (self._cfg.binanceus_host,)


class YahooAdapter(BaseAdapter):
    name = "yahoo"
    label = "Yahoo"

    async def fetch(self, symbol: str, interval: str, limit: int) -> BarSequence:
        params = {
            "interval": YAHOO_INTERVALS.get(interval, "1d"),
            "range": YAHOO_RANGES.get(interval, "1y"),
        }
        url = f"{self._cfg.yahoo_base}/v8/finance/chart/{quote(symbol, safe='')}"
        bars = self._normalize(await self._get_json(url, params))
        # The chart API takes a range, not a count.
        return bars[-limit:]


class PolygonAdapter(BaseAdapter):
    name = "polygon"
    label = "Polygon"
    requires_credentials = True
    secret_name = "polygon_api_key"

    def __init__(
        self,
        transport: HttpTransport,
        cfg: ProviderConfig,
        secrets: Optional[SecretsProvider] = None,
        today: Callable[[], dt.date] = _utc_today,
    ) -> None:
        super().__init__(transport, cfg, secrets)
        self._today = today

    async def fetch(self, symbol: str, interval: str, limit: int) -> BarSequence:
        key = self._api_key()
        unit = POLYGON_UNITS.get(interval, "day")
        mult = POLYGON_MULTIPLIERS.get(interval, 1)
        end = self._today()
        start = _one_year_before(end)
        url = (
            f"{self._cfg.polygon_base}/v2/aggs/ticker/{quote(symbol, safe='')}"
            f"/range/{mult}/{unit}/{start.isoformat()}/{end.isoformat()}"
        )
        params = {
            "adjusted": "true",
            "sort": "asc",
            "limit": str(POLYGON_MAX_LIMIT),
            "apiKey": key,
        }
        bars = self._normalize(await self._get_json(url, params))
        return bars[-limit:]


class TwelveDataAdapter(BaseAdapter):
    name = "twelvedata"
    label = "TwelveData"
    requires_credentials = True
    secret_name = "twelvedata_api_key"

    async def fetch(self, symbol: str, interval: str, limit: int) -> BarSequence:
        key = self._api_key()
        params = {
            "symbol": symbol,
            "interval": TWELVEDATA_INTERVALS.get(interval, "1day"),
            "outputsize": str(min(limit, TWELVEDATA_MAX_OUTPUTSIZE)),
            "apikey": key,
        }
        body = await self._get_json(f"{self._cfg.twelvedata_base}/time_series", params)
        # Errors arrive as HTTP 200 with {"status": "error", "code": 401, "message": ...}
        if isinstance(body, dict) and body.get("status") == "error":
            code = body.get("code")
            raise ProviderError(
                f"{self.label} API {code}: {body.get('message', 'error')}",
                status=code if isinstance(code, int) else None,
                provider=self.name,
                component=self.name,
            )
        return self._normalize(body)


ADAPTER_TYPES: tuple[type[BaseAdapter], ...] = (
    BinanceAdapter,
    BinanceUSAdapter,
    YahooAdapter,
    PolygonAdapter,
    TwelveDataAdapter,
)


def build_registry(
    transport: HttpTransport,
    cfg: ProviderConfig,
    secrets: Optional[SecretsProvider] = None,
) -> dict[str, BaseAdapter]:
    """Source identifier -> adapter, in declaration order."""
    return {cls.name: cls(transport, cfg, secrets) for cls in ADAPTER_TYPES}
