from __future__ import annotations

import random
from datetime import datetime, timezone

import pytest

from algo.strategy.ema_vwap import EmaVwapStrategy
from algo.strategy.keltner import KeltnerStrategy
from algo.strategy.registry import build_strategy
from shared.config.schema import StrategyConfig
from shared.models.models import Signal, SignalAction
from tests.fakes import downtrend_cross_closes, make_candles, uptrend_cross_closes


def _strategy(seed: int = 7, **kw) -> EmaVwapStrategy:
    return EmaVwapStrategy(rng=random.Random(seed), **kw)


def test_hold_when_window_too_short():
    sig = _strategy().generate(make_candles([100.0] * 29), imbalance=0.5)
    assert sig.action is SignalAction.HOLD
    assert sig.reason == "insufficient_data"
    assert sig.entry_price is None


def test_long_setup():
    candles = make_candles(uptrend_cross_closes(), volumes=[100.0] * 59 + [300.0])
    sig = _strategy().generate(candles, imbalance=0.4)

    assert sig.action is SignalAction.BUY
    entry = candles[-1].close
    assert sig.entry_price == entry
    assert entry * (1 - 0.005) <= sig.stop_loss <= entry * (1 - 0.004)
    assert entry * (1 + 0.008) <= sig.take_profit <= entry * (1 + 0.015)
    assert sig.stop_loss < sig.entry_price < sig.take_profit
    assert sig.confidence == pytest.approx(1.4)


def test_short_setup():
    candles = make_candles(downtrend_cross_closes(), volumes=[100.0] * 59 + [300.0])
    sig = _strategy().generate(candles, imbalance=-0.3)

    assert sig.action is SignalAction.SELL
    entry = candles[-1].close
    assert entry * (1 + 0.001) <= sig.stop_loss <= entry * (1 + 0.003)
    assert entry * (1 - 0.004) <= sig.take_profit <= entry * (1 - 0.002)
    assert sig.take_profit < sig.entry_price < sig.stop_loss
    assert sig.confidence == pytest.approx(1.3)


def test_cross_without_order_book_support_holds():
    candles = make_candles(uptrend_cross_closes())
    sig = _strategy().generate(candles, imbalance=0.05)
    assert sig.is_hold
    assert sig.reason == "no_setup"


def test_cross_without_volume_spike_holds():
    candles = make_candles(uptrend_cross_closes(), volumes=[100.0] * 59 + [50.0])
    assert _strategy().generate(candles, imbalance=0.5).is_hold


def test_low_volatility_hold():
    candles = make_candles([100.0] * 40, spread=0.0)
    sig = _strategy().generate(candles, imbalance=0.0)
    assert sig.reason == "low_volatility"


def test_seeded_rng_is_reproducible():
    candles = make_candles(uptrend_cross_closes())
    a = _strategy(seed=42).generate(candles, imbalance=0.5)
    b = _strategy(seed=42).generate(candles, imbalance=0.5)
    assert a == b


def test_configurable_ranges():
    candles = make_candles(uptrend_cross_closes())
    strat = _strategy(long_tp_range=(0.01, 0.01), long_sl_range=(0.002, 0.002))
    sig = strat.generate(candles, imbalance=0.5)
    entry = candles[-1].close
    assert sig.take_profit == pytest.approx(entry * 1.01)
    assert sig.stop_loss == pytest.approx(entry * 0.998)


def test_invalid_params_rejected():
    with pytest.raises(ValueError):
        EmaVwapStrategy(fast=21, slow=9)
    with pytest.raises(ValueError):
        EmaVwapStrategy(long_tp_range=(0.02, 0.01))


def test_directional_signal_requires_prices():
    with pytest.raises(ValueError):
        Signal(action=SignalAction.BUY, entry_price=1.0)
    with pytest.raises(ValueError):
        Signal(action=SignalAction.HOLD, confidence=-1)


def test_build_strategy_from_config():
    cfg = StrategyConfig.model_validate({"type": "ema_vwap", "fast": 5, "slow": 13, "unknown": 1})
    strat = build_strategy(cfg, seed=1)
    assert isinstance(strat, EmaVwapStrategy)
    assert (strat.fast, strat.slow) == (5, 13)
    assert strat.strategy_id == "ema_vwap"

    assert isinstance(build_strategy(None), EmaVwapStrategy)
    assert isinstance(build_strategy({"type": "keltner", "atr_mult": 2.0}), KeltnerStrategy)
    with pytest.raises(ValueError):
        build_strategy({"type": "martingale"})


# ---- Keltner ----


def _noon() -> datetime:
    return datetime(2024, 1, 1, 12, tzinfo=timezone.utc)


def _breakout_candles(up: bool = True):
    closes = [100.0] * 40
    closes.append(104.0 if up else 96.0)
    # 放大最后一根之前有轻微波动，避免 RSI 在 0/100 端点
    closes = [c + (0.1 if i % 2 else -0.1) for i, c in enumerate(closes[:-1])] + [closes[-1]]
    return make_candles(closes, volumes=[1_000_000.0] * len(closes), spread=0.3)


def test_keltner_breakout_long():
    strat = KeltnerStrategy(now_fn=_noon, rsi_overbought=101)
    sig = strat.generate(_breakout_candles(up=True), imbalance=0.0)
    assert sig.action is SignalAction.BUY
    assert sig.stop_loss < sig.entry_price < sig.take_profit


def test_keltner_breakout_short():
    strat = KeltnerStrategy(now_fn=_noon, rsi_oversold=-1)
    sig = strat.generate(_breakout_candles(up=False), imbalance=0.0)
    assert sig.action is SignalAction.SELL
    assert sig.take_profit < sig.entry_price < sig.stop_loss


def test_keltner_filters():
    candles = _breakout_candles(up=True)
    night = KeltnerStrategy(now_fn=lambda: datetime(2024, 1, 1, 3, tzinfo=timezone.utc), rsi_overbought=101)
    assert night.generate(candles, 0.0).reason == "off_session"

    thin = KeltnerStrategy(now_fn=_noon, min_volume=10_000_000)
    assert thin.generate(candles, 0.0).reason == "low_volume"

    short = KeltnerStrategy(now_fn=_noon)
    assert short.generate(candles[:30], 0.0).reason == "insufficient_data"

    # RSI 默认 70 上限：急拉后 RSI 过高，不追多
    assert KeltnerStrategy(now_fn=_noon).generate(candles, 0.0).is_hold
