"""EMA 指标：纯函数 + DataFrame 因子。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

import pandas as pd

from algo.factors.base import require_columns, seeded_ewm


def _check_period(period: int) -> None:
    if period <= 0:
        raise ValueError("EMA period must be > 0")


def ema_series(values: Sequence[float], period: int) -> list[float]:
    """EMA 全序列。

    以前 `period` 个值的 SMA 作为种子，之后 `e = v*k + e*(1-k)`，`k = 2/(period+1)`。
    返回长度为 `len(values) - period + 1`，首项即种子；数据不足时返回 `[]`。
    """
    _check_period(period)
    if len(values) < period:
        return []
    k = 2.0 / (period + 1)
    e = sum(float(v) for v in values[:period]) / period
    out = [e]
    for v in values[period:]:
        e = float(v) * k + e * (1.0 - k)
        out.append(e)
    return out


def ema(values: Sequence[float], period: int) -> float | None:
    """EMA 最新值；数据不足返回 None。"""
    series = ema_series(values, period)
    return series[-1] if series else None


@dataclass(frozen=True)
class EMAFactor:
    """指数移动平均（EMA，SMA 种子）。"""

    period: int = 14
    price_col: str = "close"
    out_col: str | None = None
    name: str = "ema"
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        _check_period(self.period)
        object.__setattr__(
            self,
            "params",
            {"period": self.period, "price_col": self.price_col, "out_col": self.out_col},
        )

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        require_columns(df, (self.price_col,), "EMAFactor")
        out = self.out_col or f"ema_{self.period}"
        df[out] = seeded_ewm(df[self.price_col], self.period, alpha=2.0 / (self.period + 1))
        return df
