from pathlib import Path

import orjson
import pytest

import tvlite.cli.main as cli_main
from tests.unit.fixtures.fakes import FakeTransport, kline_rows, make_bars
from tvlite.adapters.proxy_client import ProxyBarClient
from tvlite.cli.main import build_parser, main
from tvlite.data.cache import encode_bars
from tvlite.data.service import build_services


def _config_file(tmp_path: Path) -> Path:
    path = tmp_path / "tvlite.toml"
    path.write_text(f'[cache]\ncache_dir = "{(tmp_path / "cache").as_posix()}"\n')
    return path


def _use_transport(monkeypatch: pytest.MonkeyPatch, transport: FakeTransport) -> None:
    def fake_build(cfg, secrets=None):
        return build_services(cfg, secrets=secrets, transport=transport)

    monkeypatch.setattr(cli_main, "build_services", fake_build)


def test_build_parser():
    p = build_parser()
    assert p.prog == "tvlite"
    args = p.parse_args(["fetch", "--source", "auto", "--symbol", "ETHUSDT", "--interval", "4h", "--limit", "10"])
    assert args.command == "fetch"
    assert (args.source, args.symbol, args.interval, args.limit) == ("auto", "ETHUSDT", "4h", 10)
    assert args.config is None
    assert args.env_prefix == ""


def test_parser_rejects_unknown_interval():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["fetch", "--interval", "2h"])


def test_serve_host_port_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("HOST", raising=False)
    monkeypatch.delenv("PORT", raising=False)
    args = build_parser().parse_args(["serve", "--config", str(_config_file(tmp_path)), "--port", "8080"])
    cfg = cli_main._load_config(args)
    assert cfg.server.port == 8080
    assert cfg.server.host == "0.0.0.0"
    assert cfg.cache.cache_dir == tmp_path / "cache"


def test_fetch_prints_bars(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys):
    transport = FakeTransport({"api.binance.com": [(200, kline_rows(3))]})
    _use_transport(monkeypatch, transport)

    code = main(["fetch", "--config", str(_config_file(tmp_path)), "--limit", "3"])

    assert code == 0
    bars = orjson.loads(capsys.readouterr().out)
    assert [b["close"] for b in bars] == [101.0, 102.0, 103.0]
    assert transport.closed is True


def test_fetch_provider_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys):
    _use_transport(monkeypatch, FakeTransport({"binance": [(503, None)]}))

    code = main(["fetch", "--config", str(_config_file(tmp_path))])

    assert code == 1
    assert "[!] Binance API 503" in capsys.readouterr().err


def test_health_exit_code(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys):
    # only binance answers; binanceus and yahoo get 404
    _use_transport(monkeypatch, FakeTransport({"api.binance.com": [(200, kline_rows(10))]}))

    code = main(["health", "--config", str(_config_file(tmp_path))])

    assert code == 1
    body = orjson.loads(capsys.readouterr().out)
    assert body["results"]["binance"]["ok"] is True
    assert body["results"]["yahoo"]["ok"] is False


def test_missing_config_file(tmp_path: Path, capsys):
    assert main(["fetch", "--config", str(tmp_path / "missing.toml")]) == 1
    assert "Config file not found" in capsys.readouterr().err


def test_watch_history_only_source(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    payload = orjson.loads(encode_bars(make_bars([1.0, 2.0, 3.0])))
    transport = FakeTransport({"/bars": [(200, payload)]})
    monkeypatch.setattr(cli_main, "proxy_client", lambda base_url, timeout_s=None: ProxyBarClient(transport, base_url))

    code = main(["watch", "--config", str(_config_file(tmp_path)), "--preset", "YF:AAPL|1d"])

    assert code == 0
    url, params, _ = transport.calls[0]
    assert url == "http://127.0.0.1:3000/bars"
    assert params["source"] == "yahoo"
    assert params["symbol"] == "AAPL"
    assert transport.closed is True


def test_watch_error_exit(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys):
    transport = FakeTransport({"/bars": [(500, {"error": "boom"})]})
    monkeypatch.setattr(cli_main, "proxy_client", lambda base_url, timeout_s=None: ProxyBarClient(transport, base_url))

    code = main(["watch", "--config", str(_config_file(tmp_path)), "--source", "yahoo", "--symbol", "AAPL"])

    assert code == 1
    assert "[!] Proxy API 500" in capsys.readouterr().err
