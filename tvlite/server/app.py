"""
HTTP boundary.

Routes:
- GET /bars   (alias /api/klines)  ?source&symbol&interval&limit -> JSON array of bars
- GET /health (alias /api/health)  ?symbol&interval -> {symbol, interval, results}

Every failure, request validation included, is answered with
500 {"error": "<message>"}.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Optional

import orjson
from aiohttp import web
from pydantic import ValidationError

from tvlite.config.configs import AppConfig
from tvlite.data.cache import encode_bars
from tvlite.data.service import BarServices, build_services
from tvlite.errors.errors import BarFeedError
from tvlite.ports.secrets_provider import SecretsProvider
from tvlite.types.types import ProviderRequest

logger = logging.getLogger(__name__)

SERVICES_KEY = web.AppKey("services", BarServices)

JSON_CONTENT_TYPE = "application/json"


def _json(payload: Any, status: int = 200) -> web.Response:
    return web.Response(body=orjson.dumps(payload), status=status, content_type=JSON_CONTENT_TYPE)


def _error(message: str) -> web.Response:
    return _json({"error": message}, status=500)


def _validation_message(e: ValidationError) -> str:
    first = e.errors()[0] if e.errors() else {}
    loc = ".".join(str(p) for p in first.get("loc", ()))
    msg = first.get("msg", str(e))
    return f"{loc}: {msg}" if loc else msg


def _parse_request(query: Any) -> ProviderRequest:
    fields: dict[str, Any] = {}
    for name in ("source", "symbol", "interval"):
        value = query.get(name)
        if value:
            fields[name] = value
    limit = query.get("limit")
    if limit:
        fields["limit"] = limit
    return ProviderRequest(**fields)


async def handle_bars(request: web.Request) -> web.Response:
    services = request.app[SERVICES_KEY]
    try:
        req = _parse_request(request.query)
        bars = await services.bars.get_bars(req)
    except ValidationError as e:
        return _error(_validation_message(e))
    except BarFeedError as e:
        logger.warning(f"[http] /bars failed: {e.describe()}")
        return _error(str(e))
    return web.Response(body=encode_bars(bars), content_type=JSON_CONTENT_TYPE)


async def handle_health(request: web.Request) -> web.Response:
    services = request.app[SERVICES_KEY]
    symbol = request.query.get("symbol") or "BTCUSDT"
    interval = request.query.get("interval") or "1d"
    results = await services.health.probe(symbol, interval)
    return _json(
        {
            "symbol": symbol,
            "interval": interval,
            "results": {name: r.to_dict() for name, r in results.items()},
        }
    )


@web.middleware
async def error_middleware(request: web.Request, handler: Any) -> web.StreamResponse:
    """Last-resort mapping of unexpected failures to 500 {error}."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception as e:
        logger.error(f"[http] {request.path} unexpected error: {e}", exc_info=True)
        return _error(str(e) or type(e).__name__)


def create_app(
    config: Optional[AppConfig] = None,
    secrets: Optional[SecretsProvider] = None,
    services: Optional[BarServices] = None,
) -> web.Application:
    config = config or AppConfig()
    app = web.Application(middlewares=[error_middleware])
    app[SERVICES_KEY] = services or build_services(config, secrets=secrets)

    async def close_services(app: web.Application) -> AsyncIterator[None]:
        yield
        await app[SERVICES_KEY].close()

    app.cleanup_ctx.append(close_services)
    for path in ("/bars", "/api/klines"):
        app.router.add_get(path, handle_bars)
    for path in ("/health", "/api/health"):
        app.router.add_get(path, handle_health)
    return app


def run(config: AppConfig, secrets: Optional[SecretsProvider] = None) -> None:
    app = create_app(config, secrets=secrets)
    logger.info(f"Server listening on http://{config.server.host}:{config.server.port}")
    web.run_app(app, host=config.server.host, port=config.server.port, print=None)
