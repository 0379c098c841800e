from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

import main as app_main
from engine.runner import build_components
from tests.fakes import FakeVenue, make_candles, uptrend_cross_closes

CONFIG = str(Path(__file__).resolve().parents[1] / "config" / "config.yml")


def test_parse_args_defaults_to_run():
    args = app_main.parse_args([])
    assert args.task == "run"
    assert args.config == "config/config.yml"
    assert args.max_ticks is None


def test_config_accepted_before_or_after_subcommand():
    a = app_main.parse_args(["--config", "x.yml", "pnl"])
    b = app_main.parse_args(["pnl", "--config", "x.yml", "--symbol", "BTCUSDT"])
    assert a.config == b.config == "x.yml"
    assert a.task == b.task == "pnl"
    assert a.symbol is None
    assert b.symbol == "BTCUSDT"


def test_trade_subcommand_parses_order_fields():
    args = app_main.parse_args(["trade", "--side", "buy", "--qty", "0.5", "--sl", "99.5", "--tp", "101"])
    assert (args.side, args.qty, args.stop_loss, args.take_profit) == ("buy", 0.5, 99.5, 101.0)


def test_trade_requires_side_and_qty():
    with pytest.raises(SystemExit):
        app_main.parse_args(["trade", "--qty", "1"])


def test_run_and_candles_options():
    assert app_main.parse_args(["run", "--max-ticks", "3"]).max_ticks == 3
    assert app_main.parse_args(["candles", "--limit", "20"]).limit == 20


def test_main_prints_dispatch_result(monkeypatch, capsys):
    seen: list[app_main.CliArgs] = []

    async def _fake_dispatch(args: app_main.CliArgs) -> Any:
        seen.append(args)
        return {"ok": True}

    monkeypatch.setattr(app_main, "_dispatch", _fake_dispatch)
    res = app_main.main(["--config", "c.yml", "signal"])
    assert res == {"ok": True}
    assert seen[0].task == "signal"
    assert '"ok": true' in capsys.readouterr().out


@pytest.fixture
def fake_venue(monkeypatch):
    monkeypatch.delenv("BYBIT_API_KEY", raising=False)
    monkeypatch.delenv("BYBIT_API_SECRET", raising=False)
    venue = FakeVenue(
        candles=make_candles(uptrend_cross_closes()),
        bids=[["100", "10"]],
        asks=[["100.1", "2"]],
    )
    monkeypatch.setattr(app_main, "build_components", lambda cfg: build_components(cfg, client=venue))
    return venue


def test_signal_task_uses_configured_symbol(fake_venue):
    res = app_main.main(["--config", CONFIG, "signal"])
    assert res["symbol"] == "ETHUSDT"
    assert res["signal"]["signal"] in {"Buy", "Sell", "Hold"}
    assert fake_venue.orders == []


def test_trade_task_is_local_in_dry_run(fake_venue):
    res = app_main.main(["--config", CONFIG, "trade", "--side", "buy", "--qty", "0.5"])
    assert res["success"] is True
    assert res["orderId"].startswith("dry-")
    assert fake_venue.orders == []
