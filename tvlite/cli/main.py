"""
tvlite CLI entrypoint.

Usage:
    tvlite serve  [--config FILE]
    tvlite fetch  --source auto --symbol BTCUSDT --interval 1d --limit 10
    tvlite health --symbol BTCUSDT --interval 1d
    tvlite watch  --server http://127.0.0.1:3000 --preset "BINANCE:BTCUSDT|1m"

Options shared by all subcommands:
  --config FILE       TOML config (sections: cache, providers, server, chart)
  --log-level LEVEL   Root log level (default INFO)
  --env-prefix TEXT   Prefix for API key env vars (e.g. TVLITE_ -> TVLITE_POLYGON_API_KEY)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

import orjson

from tvlite.adapters.env_provider import EnvSecretsProvider
from tvlite.adapters.proxy_client import proxy_client
from tvlite.chart.session import ChartSession, parse_preset
from tvlite.config.config_loader import ConfigLoader
from tvlite.config.configs import AppConfig
from tvlite.data.cache import encode_bars
from tvlite.data.service import build_services
from tvlite.errors.errors import BarFeedError
from tvlite.server.app import run as run_server
from tvlite.types.aliases import INTERVALS
from tvlite.types.types import ProviderRequest, ViewportRange

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    """
    Return the top-level CLI argument parser.
    """
    p = argparse.ArgumentParser(prog="tvlite", description="OHLCV bar proxy and live chart feed")
    sub = p.add_subparsers(dest="command", required=True)

    def add_common(sp: argparse.ArgumentParser) -> None:
        sp.add_argument("--config", type=Path, help="Path to a TOML config file")
        sp.add_argument("--log-level", default="INFO", help="Root log level")
        sp.add_argument("--env-prefix", default="", help="Prefix for API key env vars")

    serve = sub.add_parser("serve", help="Run the HTTP bar proxy")
    add_common(serve)
    serve.add_argument("--host", help="Bind host (overrides config/HOST)")
    serve.add_argument("--port", type=int, help="Bind port (overrides config/PORT)")

    fetch = sub.add_parser("fetch", help="Fetch bars once and print them as JSON")
    add_common(fetch)
    fetch.add_argument("--source", default="binance")
    fetch.add_argument("--symbol", default="BTCUSDT")
    fetch.add_argument("--interval", default="1d", choices=INTERVALS)
    fetch.add_argument("--limit", type=int, default=800)

    health = sub.add_parser("health", help="Probe every configured provider")
    add_common(health)
    health.add_argument("--symbol", default="BTCUSDT")
    health.add_argument("--interval", default="1d", choices=INTERVALS)

    watch = sub.add_parser("watch", help="Follow a chart session (history + live stream) in the log")
    add_common(watch)
    watch.add_argument("--server", default="http://127.0.0.1:3000", help="tvlite server base URL")
    watch.add_argument("--preset", help='e.g. "BINANCE:BTCUSDT|1m" or "YF:AAPL|1d"')
    watch.add_argument("--source", default="binance")
    watch.add_argument("--symbol", default="BTCUSDT")
    watch.add_argument("--interval", default="1m", choices=INTERVALS)
    return p


def _load_config(args: argparse.Namespace) -> AppConfig:
    loader = ConfigLoader()
    cfg = loader.load_app_config(str(args.config) if args.config else None)
    host = getattr(args, "host", None)
    port = getattr(args, "port", None)
    if host or port is not None:
        server = cfg.server.model_copy(
            update={k: v for k, v in (("host", host), ("port", port)) if v is not None}
        )
        cfg = cfg.model_copy(update={"server": server})
    return cfg


async def _fetch(cfg: AppConfig, secrets: EnvSecretsProvider, args: argparse.Namespace) -> int:
    services = build_services(cfg, secrets=secrets)
    try:
        request = ProviderRequest(
            source=args.source, symbol=args.symbol, interval=args.interval, limit=args.limit
        )
        bars = await services.bars.get_bars(request)
    finally:
        await services.close()
    sys.stdout.write(encode_bars(bars).decode() + "\n")
    return 0


async def _health(cfg: AppConfig, secrets: EnvSecretsProvider, args: argparse.Namespace) -> int:
    services = build_services(cfg, secrets=secrets)
    try:
        results = await services.health.probe(args.symbol, args.interval)
    finally:
        await services.close()
    payload = {
        "symbol": args.symbol,
        "interval": args.interval,
        "results": {name: r.to_dict() for name, r in results.items()},
    }
    sys.stdout.write(orjson.dumps(payload, option=orjson.OPT_INDENT_2).decode() + "\n")
    return 0 if all(r.ok for r in results.values()) else 1


class LogSurface:
    """Render surface that only logs what a chart widget would draw."""

    def set_series(self, series_id: str, points: Sequence[Any]) -> None:
        last = points[-1] if points else None
        logger.info(f"[surface] set {series_id}: {len(points)} points, last={last}")

    def apply_update(self, series_id: str, points: Sequence[Any]) -> None:
        logger.info(f"[surface] update {series_id}: {points[-1] if points else None}")

    def set_visible_range(self, rng: ViewportRange) -> None:
        logger.debug(f"[surface] visible range {rng.from_:.1f} .. {rng.to:.1f}")


async def _watch(cfg: AppConfig, args: argparse.Namespace) -> int:
    if args.preset:
        source, symbol, interval = parse_preset(args.preset)
    else:
        source, symbol, interval = args.source, args.symbol, args.interval

    loader = proxy_client(args.server, timeout_s=cfg.providers.fetch_timeout_s)
    session = ChartSession(
        loader, LogSurface(), cfg.chart, source=source, symbol=symbol, interval=interval
    )
    try:
        await session.start()
        if session.error:
            print(f"[!] {session.error}", file=sys.stderr)
            return 1
        if not session.streaming:
            logger.info(f"No live stream for source={source}; history only")
            return 0
        await asyncio.Event().wait()
    finally:
        await session.close()
        await loader.close()
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entrypoint wrapper compatible with setuptools scripts."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format=LOG_FORMAT)

    try:
        cfg = _load_config(args)
    except (FileNotFoundError, ValueError) as exc:
        print(f"[!] {exc}", file=sys.stderr)
        return 1
    secrets = EnvSecretsProvider(prefix=args.env_prefix)

    if args.command == "serve":
        run_server(cfg, secrets=secrets)
        return 0

    try:
        if args.command == "fetch":
            return asyncio.run(_fetch(cfg, secrets, args))
        if args.command == "health":
            return asyncio.run(_health(cfg, secrets, args))
        if args.command == "watch":
            return asyncio.run(_watch(cfg, args))
    except KeyboardInterrupt:
        print("Interrupted by user.")
        return 130
    except (BarFeedError, ValueError) as exc:
        print(f"[!] {exc}", file=sys.stderr)
        return 1

    print(f"Command '{args.command}' not implemented", file=sys.stderr)
    return 2


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
