"""指标列注册表：operator 视图按 `{"type": ..., 参数...}` 列表构建指标列。"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

import pandas as pd

from algo.factors.atr import ATRFactor
from algo.factors.base import Factor
from algo.factors.ema import EMAFactor
from algo.factors.rsi import RSIFactor
from algo.factors.vwap import VWAPFactor
from shared.models.models import Candle

_REGISTRY: dict[str, type] = {
    "ema": EMAFactor,
    "atr": ATRFactor,
    "rsi": RSIFactor,
    "vwap": VWAPFactor,
}

# operator 视图默认展示的指标列
DEFAULT_FACTORS: list[dict[str, Any]] = [
    {"type": "ema", "period": 9},
    {"type": "ema", "period": 21},
    {"type": "vwap"},
    {"type": "atr", "period": 14},
    {"type": "rsi", "period": 14},
]


def build_factors(specs: Sequence[Mapping[str, Any]]) -> list[Factor]:
    """每项为 `{"type": "ema", "period": 9}` 形式；未知类型或参数抛 ValueError。"""
    factors: list[Factor] = []
    for spec in specs:
        params = dict(spec)
        name = str(params.pop("type", "") or "")
        cls = _REGISTRY.get(name)
        if cls is None:
            raise ValueError(f"Unknown factor: {name!r}")
        try:
            factors.append(cls(**params))
        except TypeError as exc:
            raise ValueError(f"Invalid params for factor '{name}': {params}") from exc
    return factors


def candles_to_frame(candles: Sequence[Candle]) -> pd.DataFrame:
    cols = ["open_time", "open", "high", "low", "close", "volume"]
    if not candles:
        return pd.DataFrame(columns=cols)
    return pd.DataFrame([c.to_dict() for c in candles], columns=cols)


def apply_factors(df: pd.DataFrame, factors: Sequence[Factor]) -> pd.DataFrame:
    for f in factors:
        df = f.compute(df)
    return df
