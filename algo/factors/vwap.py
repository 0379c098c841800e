"""VWAP：窗口内成交量加权的典型价格。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

import pandas as pd

from algo.factors.base import require_columns
from shared.models.models import Candle


def vwap(candles: Sequence[Candle]) -> float | None:
    """Σ(typical × volume) / Σvolume；窗口为空或总量为 0 时返回 None。"""
    pv = 0.0
    vol = 0.0
    for c in candles:
        pv += c.typical_price * float(c.volume)
        vol += float(c.volume)
    if vol <= 0:
        return None
    return pv / vol


@dataclass(frozen=True)
class VWAPFactor:
    """累计 VWAP 列（从窗口起点累计到当前行）。"""

    out_col: str = "vwap"
    name: str = "vwap"
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "params", {"out_col": self.out_col})

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        require_columns(df, ("high", "low", "close", "volume"), "VWAPFactor")
        typical = (df["high"] + df["low"] + df["close"]) / 3.0
        cum_vol = df["volume"].astype(float).cumsum()
        cum_pv = (typical * df["volume"]).astype(float).cumsum()
        df[self.out_col] = (cum_pv / cum_vol.where(cum_vol > 0)).astype(float)
        return df
