from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

"""
Here, we collect all the different configs
"""

# --- Data Section ---

BINANCE_MIRROR_HOSTS: tuple[str, ...] = (
    "https://api.binance.com",
    "https://api1.binance.com",
    "https://api2.binance.com",
    "https://api3.binance.com",
    "https://data-api.binance.vision",
)


class CacheConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    cache_dir: Path = Path(".cache")
    ttl_s: float = Field(default=300.0, gt=0)  # 5 minutes


class ProviderConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    binance_hosts: tuple[str, ...] = BINANCE_MIRROR_HOSTS
    binanceus_host: str = "https://api.binance.us"
    yahoo_base: str = "https://query1.finance.yahoo.com"
    polygon_base: str = "https://api.polygon.io"
    twelvedata_base: str = "https://api.twelvedata.com"
    user_agent: str = "tv-lite-demo"

    # Main fetch path has no timeout unless configured.
    fetch_timeout_s: Optional[float] = None

    # Health probe
    health_timeout_s: float = Field(default=7.0, gt=0)
    health_limit: int = 10
    health_keyed_symbol: str = "AAPL"

    # Provider order for source=auto
    auto_order: tuple[str, ...] = ("binance", "binanceus", "yahoo")

    @field_validator("binance_hosts")
    @classmethod
    def _at_least_one_host(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if not v:
            raise ValueError("binance_hosts must not be empty")
        return v

    @field_validator("fetch_timeout_s")
    @classmethod
    def _positive_timeout(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("fetch_timeout_s must be positive")
        return v


class ServerConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = Field(default=3000, ge=0, le=65535)


# --- Chart Section ---

RIGHT_PAD_MAX = 50


class ChartConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    right_pad: int = Field(default=2, ge=0, le=RIGHT_PAD_MAX)
    default_limit: int = Field(default=800, gt=0)

    sma_period: int = Field(default=20, gt=0)
    ema_period: int = Field(default=50, gt=0)
    rsi_period: int = Field(default=14, gt=1)
    macd_fast: int = Field(default=12, gt=0)
    macd_slow: int = Field(default=26, gt=0)
    macd_signal: int = Field(default=9, gt=0)

    # Live feed
    ws_base: str = "wss://stream.binance.com:9443/ws"
    stream_sources: tuple[str, ...] = ("binance",)

    @model_validator(mode="after")
    def _check_macd(self) -> ChartConfig:
        if self.macd_fast >= self.macd_slow:
            raise ValueError("Require 0 < macd_fast < macd_slow")
        return self


class AppConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    cache: CacheConfig = Field(default_factory=CacheConfig)
    providers: ProviderConfig = Field(default_factory=ProviderConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    chart: ChartConfig = Field(default_factory=ChartConfig)
