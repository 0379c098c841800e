"""RSI 指标（Wilder 平滑）。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

import pandas as pd

from algo.factors.base import require_columns, seeded_ewm


def rsi_series(values: Sequence[float], period: int = 14) -> list[float]:
    if period <= 0:
        raise ValueError("RSI period must be > 0")
    if len(values) < period + 1:
        return []
    gains: list[float] = []
    losses: list[float] = []
    for i in range(1, len(values)):
        d = float(values[i]) - float(values[i - 1])
        gains.append(max(d, 0.0))
        losses.append(max(-d, 0.0))

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period
    out = [_rsi_value(avg_gain, avg_loss)]
    for g, l in zip(gains[period:], losses[period:]):
        avg_gain = (avg_gain * (period - 1) + g) / period
        avg_loss = (avg_loss * (period - 1) + l) / period
        out.append(_rsi_value(avg_gain, avg_loss))
    return out


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    # 无下跌：RSI 视为 100（包括完全走平）
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def rsi(values: Sequence[float], period: int = 14) -> float | None:
    """RSI 最新值；需要 `period + 1` 个收盘价，否则返回 None。"""
    series = rsi_series(values, period)
    return series[-1] if series else None


@dataclass(frozen=True)
class RSIFactor:
    """相对强弱指数（RSI，Wilder 版本）。"""

    period: int = 14
    price_col: str = "close"
    out_col: str | None = None
    name: str = "rsi"
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.period <= 0:
            raise ValueError("RSI period must be > 0")
        object.__setattr__(
            self,
            "params",
            {"period": self.period, "price_col": self.price_col, "out_col": self.out_col},
        )

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        require_columns(df, (self.price_col,), "RSIFactor")
        out = self.out_col or f"rsi_{self.period}"
        delta = df[self.price_col].astype(float).diff()
        avg_gain = seeded_ewm(delta.clip(lower=0.0), self.period, alpha=1.0 / self.period)
        avg_loss = seeded_ewm((-delta).clip(lower=0.0), self.period, alpha=1.0 / self.period)
        rsi_col = 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)
        # 无下跌视为 100；预热期 avg_loss 为 NaN，保持 NaN
        df[out] = rsi_col.where(avg_loss != 0, 100.0)
        return df
