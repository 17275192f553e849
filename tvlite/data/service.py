"""
Bar Request Service and provider health probe.

BarRequestService is the unit exposed at the HTTP boundary:
    cache hit (within TTL)  -> return cached bars, no upstream call
    cache miss              -> FallbackResolver -> write cache -> return

HealthProbe checks providers one after another, each bounded by its own
timeout. The main fetch path has no timeout unless ProviderConfig sets one.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from tvlite.adapters.aiohttp_transport import AiohttpTransport
from tvlite.config.configs import AppConfig, ProviderConfig
from tvlite.data.cache import FileCacheStore
from tvlite.data.providers import BaseAdapter, build_registry, to_yahoo_symbol
from tvlite.data.resolver import FallbackResolver
from tvlite.errors.errors import UnknownSource
from tvlite.ports.http_transport import HttpTransport
from tvlite.ports.market_data import BarProvider
from tvlite.ports.secrets_provider import SecretsProvider
from tvlite.types.types import BarSequence, ProviderRequest

logger = logging.getLogger(__name__)


class BarRequestService:
    def __init__(self, resolver: FallbackResolver, cache: FileCacheStore) -> None:
        self._resolver = resolver
        self._cache = cache

    async def get_bars(self, request: ProviderRequest) -> BarSequence:
        """
        Return bars for `request`.

        Raises:
            UnknownSource: source is neither a registered adapter nor "auto"
            BarFeedError: whatever the resolver raised (cache is not written)
        """
        if not self._resolver.knows(request.source):
            raise UnknownSource("Unknown source", source=request.source, component="service")

        key = request.cache_key
        cached = await self._cache.get_async(key)
        if cached is not None:
            return cached

        started = time.perf_counter()
        bars = await self._resolver.resolve(request)
        logger.info(
            f"[service] fetched {len(bars)} bars key={key} "
            f"in {(time.perf_counter() - started) * 1000:.0f}ms"
        )
        await self._cache.put_async(key, bars)
        return bars


@dataclass(frozen=True)
class ProbeResult:
    ok: bool
    ms: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        if self.ok:
            return {"ok": True, "ms": self.ms}
        return {"ok": False, "error": self.error}


class HealthProbe:
    """
    Sequential provider checks, each raced against `health_timeout_s`.

    Keyless providers are always probed; keyed providers only when their
    credentials are configured (and with a fixed equity symbol).
    """

    def __init__(self, registry: Mapping[str, BarProvider], cfg: ProviderConfig) -> None:
        self._registry = registry
        self._cfg = cfg

    def _plan(self, symbol: str) -> list[tuple[str, str]]:
        plan: list[tuple[str, str]] = []
        for name, provider in self._registry.items():
            if provider.requires_credentials:
                if provider.has_credentials():
                    plan.append((name, self._cfg.health_keyed_symbol))
            elif name == "yahoo":
                plan.append((name, to_yahoo_symbol(symbol)))
            else:
                plan.append((name, symbol))
        return plan

    async def _probe_one(self, provider: BarProvider, symbol: str, interval: str) -> ProbeResult:
        started = time.perf_counter()
        try:
            await asyncio.wait_for(
                provider.fetch(symbol, interval, self._cfg.health_limit),
                timeout=self._cfg.health_timeout_s,
            )
        except asyncio.TimeoutError:
            return ProbeResult(ok=False, error="timeout")
        except Exception as e:
            return ProbeResult(ok=False, error=str(e) or type(e).__name__)
        return ProbeResult(ok=True, ms=int((time.perf_counter() - started) * 1000))

    async def probe(self, symbol: str, interval: str) -> dict[str, ProbeResult]:
        results: dict[str, ProbeResult] = {}
        for name, sym in self._plan(symbol):
            results[name] = await self._probe_one(self._registry[name], sym, interval)
            logger.debug(f"[health] {name}: {results[name]}")
        return results


@dataclass
class BarServices:
    """Wired service graph sharing one HTTP transport."""

    transport: HttpTransport
    registry: dict[str, BaseAdapter]
    resolver: FallbackResolver
    cache: FileCacheStore
    bars: BarRequestService
    health: HealthProbe

    async def close(self) -> None:
        await self.transport.close()


def build_services(
    config: AppConfig,
    secrets: Optional[SecretsProvider] = None,
    transport: Optional[HttpTransport] = None,
) -> BarServices:
    if transport is None:
        transport = AiohttpTransport(
            timeout_s=config.providers.fetch_timeout_s,
            user_agent=config.providers.user_agent,
        )
    registry = build_registry(transport, config.providers, secrets)
    resolver = FallbackResolver(registry, auto_order=config.providers.auto_order)
    cache = FileCacheStore(config.cache)
    return BarServices(
        transport=transport,
        registry=registry,
        resolver=resolver,
        cache=cache,
        bars=BarRequestService(resolver, cache),
        health=HealthProbe(registry, config.providers),
    )


class ServiceBarLoader:
    """BarLoader that calls the request service in-process (no HTTP hop)."""

    def __init__(self, service: BarRequestService) -> None:
        self._service = service

    async def load(self, source: str, symbol: str, interval: str, limit: int) -> BarSequence:
        request = ProviderRequest(source=source, symbol=symbol, interval=interval, limit=limit)
        return await self._service.get_bars(request)
