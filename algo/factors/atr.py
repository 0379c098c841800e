"""ATR 指标（Wilder 平滑）。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

import pandas as pd

from algo.factors.base import require_columns, seeded_ewm
from shared.models.models import Candle


def true_ranges(highs: Sequence[float], lows: Sequence[float], closes: Sequence[float]) -> list[float]:
    """从第 2 根 K 线起的真实波幅序列（长度 n-1）。"""
    out: list[float] = []
    for i in range(1, len(closes)):
        h, l, pc = float(highs[i]), float(lows[i]), float(closes[i - 1])
        out.append(max(h - l, abs(h - pc), abs(l - pc)))
    return out


def _wilder(trs: Sequence[float], period: int) -> list[float]:
    if len(trs) < period:
        return []
    a = sum(trs[:period]) / period
    out = [a]
    for tr in trs[period:]:
        a = (a * (period - 1) + tr) / period
        out.append(a)
    return out


def atr(candles: Sequence[Candle], period: int = 14) -> float | None:
    """Wilder ATR 最新值。

    Parameters
    ----------
    candles:
        升序 K 线，至少 `period + 1` 根。
    period:
        平滑周期，必须 > 0。

    Returns
    -------
    float | None
        数据不足返回 None。
    """
    if period <= 0:
        raise ValueError("ATR period must be > 0")
    if len(candles) < period + 1:
        return None
    trs = true_ranges(
        [c.high for c in candles], [c.low for c in candles], [c.close for c in candles]
    )
    series = _wilder(trs, period)
    return series[-1] if series else None


@dataclass(frozen=True)
class ATRFactor:
    """平均真实波幅（ATR，Wilder 版本）。"""

    period: int = 14
    high_col: str = "high"
    low_col: str = "low"
    close_col: str = "close"
    out_col: str | None = None
    name: str = "atr"
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.period <= 0:
            raise ValueError("ATR period must be > 0")
        object.__setattr__(
            self,
            "params",
            {
                "period": self.period,
                "high_col": self.high_col,
                "low_col": self.low_col,
                "close_col": self.close_col,
                "out_col": self.out_col,
            },
        )

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        require_columns(df, (self.high_col, self.low_col, self.close_col), "ATRFactor")
        out = self.out_col or f"atr_{self.period}"
        high = df[self.high_col].astype(float)
        low = df[self.low_col].astype(float)
        prev_close = df[self.close_col].astype(float).shift(1)
        tr = pd.concat([high - low, (high - prev_close).abs(), (low - prev_close).abs()], axis=1).max(axis=1)
        # 首行没有前收盘价，不计入
        tr = tr.where(prev_close.notna())
        df[out] = seeded_ewm(tr, self.period, alpha=1.0 / self.period)
        return df
