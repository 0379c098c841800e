"""Keltner 通道突破策略（趋势过滤 + RSI 约束）。"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Sequence

from algo.factors.atr import atr
from algo.factors.ema import ema
from algo.factors.rsi import rsi
from algo.strategy.base import SignalStrategy
from shared.models.models import Candle, Signal, SignalAction


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class KeltnerStrategy(SignalStrategy):
    """收盘价突破 EMA ± atr_mult×ATR 时顺势入场。

    - 趋势：收盘价相对 trend_candles 的 EMA（未提供时复用入场窗口）。
    - 过滤：最后一根成交量、UTC 交易时段、ATR/价格 比例下限、RSI 超买超卖。
    - 止损/止盈：sl_atr_mult / tp_atr_mult 倍 ATR。
    """

    strategy_id = "keltner"

    def __init__(
        self,
        ema_period: int = 20,
        atr_period: int = 14,
        atr_mult: float = 1.5,
        sl_atr_mult: float = 1.2,
        tp_atr_mult: float = 2.0,
        min_atr_pct: float = 0.0002,
        min_volume: float = 500_000,
        rsi_period: int = 14,
        rsi_overbought: float = 70.0,
        rsi_oversold: float = 30.0,
        session_start_hour: int = 7,
        session_end_hour: int = 20,
        now_fn: Callable[[], datetime] | None = None,
    ):
        self.ema_period = ema_period
        self.atr_period = atr_period
        self.atr_mult = atr_mult
        self.sl_atr_mult = sl_atr_mult
        self.tp_atr_mult = tp_atr_mult
        self.min_atr_pct = min_atr_pct
        self.min_volume = min_volume
        self.rsi_period = rsi_period
        self.rsi_overbought = rsi_overbought
        self.rsi_oversold = rsi_oversold
        self.session_start_hour = session_start_hour
        self.session_end_hour = session_end_hour
        self.now_fn = now_fn or _utc_now
        self.min_candles = ema_period + atr_period + 1

    def generate(
        self,
        candles: Sequence[Candle],
        imbalance: float,
        trend_candles: Sequence[Candle] | None = None,
    ) -> Signal:
        trend = trend_candles if trend_candles is not None else candles
        if len(candles) < self.min_candles or len(trend) < self.min_candles:
            return Signal.hold("insufficient_data")

        last = candles[-1]
        if last.volume < self.min_volume:
            return Signal.hold("low_volume")

        hour = self.now_fn().hour
        if hour < self.session_start_hour or hour > self.session_end_hour:
            return Signal.hold("off_session")

        closes = [c.close for c in candles]
        atr_val = atr(candles, self.atr_period)
        mid = ema(closes, self.ema_period)
        trend_ema = ema([c.close for c in trend], self.ema_period)
        rsi_val = rsi(closes, self.rsi_period)
        if atr_val is None or mid is None or trend_ema is None or rsi_val is None:
            return Signal.hold("insufficient_data")

        last_close = closes[-1]
        if atr_val / last_close < self.min_atr_pct:
            return Signal.hold("low_volatility")

        upper = mid + self.atr_mult * atr_val
        lower = mid - self.atr_mult * atr_val

        if last_close > trend_ema and last_close > upper and rsi_val < self.rsi_overbought:
            return Signal(
                action=SignalAction.BUY,
                entry_price=last_close,
                stop_loss=last_close - self.sl_atr_mult * atr_val,
                take_profit=last_close + self.tp_atr_mult * atr_val,
                confidence=1.0,
                reason="keltner_breakout_up",
            )
        if last_close < trend_ema and last_close < lower and rsi_val > self.rsi_oversold:
            return Signal(
                action=SignalAction.SELL,
                entry_price=last_close,
                stop_loss=last_close + self.sl_atr_mult * atr_val,
                take_profit=last_close - self.tp_atr_mult * atr_val,
                confidence=1.0,
                reason="keltner_breakout_down",
            )
        return Signal.hold("no_setup")
