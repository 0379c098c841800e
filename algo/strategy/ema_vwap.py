"""EMA 交叉 + VWAP + 订单簿失衡 + 放量确认的剥头皮策略。"""

from __future__ import annotations

import random
from typing import Sequence

from algo.factors.atr import atr
from algo.factors.ema import ema_series
from algo.factors.vwap import vwap
from algo.strategy.base import SignalStrategy
from shared.models.models import Candle, Signal, SignalAction
from shared.utils.logging import setup_logger

_LOGGER = setup_logger("strategy-ema-vwap")


class EmaVwapStrategy(SignalStrategy):
    """EMA(fast)/EMA(slow) 交叉策略。

    Long 需要同时满足：fast 上穿 slow、收盘价在 VWAP 之上、失衡度 > obi_threshold、
    最后一根放量（> volume_spike_ratio × 前 volume_lookback 根均量）。Short 对称。

    止盈/止损距离在配置区间内随机扰动（rng 可注入，便于测试复现）。
    没有方向信号时，用 ATR 区分 low_volatility 与 no_setup 两种 Hold。

    Parameters
    ----------
    fast / slow:
        EMA 周期。
    min_candles:
        少于该数量直接 Hold(insufficient_data)。
    obi_threshold:
        失衡度阈值（绝对值）。
    long_tp_range / long_sl_range / short_tp_range / short_sl_range:
        (low, high) 比例区间，如 (0.008, 0.015)。
    min_atr:
        ATR 绝对值下限。
    rng:
        random.Random 实例；None 时使用 seed 构造。
    """

    strategy_id = "ema_vwap"

    def __init__(
        self,
        fast: int = 9,
        slow: int = 21,
        min_candles: int = 30,
        obi_threshold: float = 0.1,
        volume_lookback: int = 5,
        volume_spike_ratio: float = 0.8,
        atr_period: int = 14,
        min_atr: float = 0.0015,
        long_tp_range: Sequence[float] = (0.008, 0.015),
        long_sl_range: Sequence[float] = (0.004, 0.005),
        short_tp_range: Sequence[float] = (0.002, 0.004),
        short_sl_range: Sequence[float] = (0.001, 0.003),
        seed: int | None = None,
        rng: random.Random | None = None,
    ):
        if fast <= 0 or slow <= 0 or fast >= slow:
            raise ValueError("EmaVwapStrategy requires 0 < fast < slow")
        for name, rng_pair in (
            ("long_tp_range", long_tp_range),
            ("long_sl_range", long_sl_range),
            ("short_tp_range", short_tp_range),
            ("short_sl_range", short_sl_range),
        ):
            lo, hi = rng_pair
            if lo < 0 or hi < lo:
                raise ValueError(f"{name} must satisfy 0 <= low <= high")
        self.fast = fast
        self.slow = slow
        # 至少要能算出 slow EMA 的前值
        self.min_candles = max(int(min_candles), slow + 1)
        self.obi_threshold = obi_threshold
        self.volume_lookback = volume_lookback
        self.volume_spike_ratio = volume_spike_ratio
        self.atr_period = atr_period
        self.min_atr = min_atr
        self.long_tp_range = (float(long_tp_range[0]), float(long_tp_range[1]))
        self.long_sl_range = (float(long_sl_range[0]), float(long_sl_range[1]))
        self.short_tp_range = (float(short_tp_range[0]), float(short_tp_range[1]))
        self.short_sl_range = (float(short_sl_range[0]), float(short_sl_range[1]))
        self.rng = rng or random.Random(seed)

    def _volume_spike(self, candles: Sequence[Candle]) -> bool:
        prev = candles[-1 - self.volume_lookback:-1]
        if not prev:
            return False
        avg = sum(c.volume for c in prev) / len(prev)
        return candles[-1].volume > self.volume_spike_ratio * avg

    def generate(self, candles: Sequence[Candle], imbalance: float) -> Signal:
        if len(candles) < self.min_candles:
            return Signal.hold("insufficient_data")

        closes = [c.close for c in candles]
        fast_s = ema_series(closes, self.fast)
        slow_s = ema_series(closes, self.slow)
        cur_fast, prev_fast = fast_s[-1], fast_s[-2]
        cur_slow, prev_slow = slow_s[-1], slow_s[-2]

        vw = vwap(candles)
        last_close = closes[-1]
        spike = self._volume_spike(candles)

        crossed_up = prev_fast < prev_slow and cur_fast > cur_slow
        crossed_down = prev_fast > prev_slow and cur_fast < cur_slow

        if (
            crossed_up
            and vw is not None
            and last_close > vw
            and imbalance > self.obi_threshold
            and spike
        ):
            tp_pct = self.rng.uniform(*self.long_tp_range)
            sl_pct = self.rng.uniform(*self.long_sl_range)
            _LOGGER.info("📈 long setup close=%.6f vwap=%.6f obi=%.3f", last_close, vw, imbalance)
            return Signal(
                action=SignalAction.BUY,
                entry_price=last_close,
                stop_loss=last_close * (1 - sl_pct),
                take_profit=last_close * (1 + tp_pct),
                confidence=1 + imbalance,
                reason="ema_cross_up",
            )

        if (
            crossed_down
            and vw is not None
            and last_close < vw
            and imbalance < -self.obi_threshold
            and spike
        ):
            tp_pct = self.rng.uniform(*self.short_tp_range)
            sl_pct = self.rng.uniform(*self.short_sl_range)
            _LOGGER.info("📉 short setup close=%.6f vwap=%.6f obi=%.3f", last_close, vw, imbalance)
            return Signal(
                action=SignalAction.SELL,
                entry_price=last_close,
                stop_loss=last_close * (1 + sl_pct),
                take_profit=last_close * (1 - tp_pct),
                confidence=1 - imbalance,
                reason="ema_cross_down",
            )

        atr_val = atr(candles, self.atr_period)
        if atr_val is None or atr_val < self.min_atr:
            return Signal.hold("low_volatility")
        return Signal.hold("no_setup")
