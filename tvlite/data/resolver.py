"""
Fallback Resolver.

Given a request, picks the adapter(s) to call:
- a named source is called directly; its failure propagates unchanged
- "auto" walks a fixed priority chain (primary crypto venue, secondary venue,
  then the general-market provider with a translated symbol) and returns the
  first success; if every attempt fails, AllProvidersFailed carries the last error

This is the only component that retries across providers.
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional, Sequence

from tvlite.data.providers import to_yahoo_symbol
from tvlite.errors.errors import AllProvidersFailed, BarFeedError, UnknownSource
from tvlite.ports.market_data import BarProvider
from tvlite.types.aliases import AUTO_SOURCE
from tvlite.types.types import BarSequence, ProviderRequest

logger = logging.getLogger(__name__)

DEFAULT_AUTO_ORDER: tuple[str, ...] = ("binance", "binanceus", "yahoo")


def symbol_for(source: str, symbol: str) -> str:
    """Translate a symbol into the naming convention of `source`."""
    if source == "yahoo":
        return to_yahoo_symbol(symbol)
    return symbol


class FallbackResolver:
    def __init__(
        self,
        registry: Mapping[str, BarProvider],
        auto_order: Sequence[str] = DEFAULT_AUTO_ORDER,
    ) -> None:
        missing = [s for s in auto_order if s not in registry]
        if missing:
            raise ValueError(f"auto_order references unknown sources: {missing}")
        self._registry = registry
        self._auto_order = tuple(auto_order)

    @property
    def sources(self) -> tuple[str, ...]:
        return tuple(self._registry)

    def knows(self, source: str) -> bool:
        return source == AUTO_SOURCE or source in self._registry

    async def resolve(self, request: ProviderRequest) -> BarSequence:
        if request.source == AUTO_SOURCE:
            return await self._resolve_auto(request)

        provider = self._registry.get(request.source)
        if provider is None:
            raise UnknownSource(f"Unknown source: {request.source}", source=request.source)
        return await provider.fetch(
            symbol_for(request.source, request.symbol), request.interval, request.limit
        )

    async def _resolve_auto(self, request: ProviderRequest) -> BarSequence:
        last: Optional[BarFeedError] = None
        attempted: list[str] = []
        for source in self._auto_order:
            attempted.append(source)
            try:
                bars = await self._registry[source].fetch(
                    symbol_for(source, request.symbol), request.interval, request.limit
                )
            except BarFeedError as e:
                logger.info(f"[auto] {source} failed for {request.symbol}: {e}")
                last = e
                continue
            logger.debug(f"[auto] served {request.symbol} {request.interval} from {source}")
            return bars

        message = str(last) if last is not None else "No source available"
        raise AllProvidersFailed(
            message, last_error=last, attempted=attempted, component="FallbackResolver"
        ) from last
