"""指标列协议与公共校验。

指标既有标量版本（给策略/监控直接用 list[Candle] 计算），
也有 DataFrame 版本（给 operator 视图批量追加列）；这里放后者的协议与公共工具。
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Protocol

import numpy as np
import pandas as pd


class Factor(Protocol):
    """`compute(df) -> df`：在 K 线表上追加一列指标，预热期为 NaN。"""

    name: str
    params: Mapping[str, Any]

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        ...


def require_columns(df: pd.DataFrame, cols: Iterable[str], owner: str) -> None:
    missing = [c for c in cols if c not in df.columns]
    if missing:
        raise ValueError(f"{owner} requires column: {', '.join(missing)}")


def seeded_ewm(series: pd.Series, period: int, alpha: float) -> pd.Series:
    """以首个完整窗口的 SMA 为种子的递推平滑（EMA 用 2/(n+1)，Wilder 用 1/n）。

    种子之前的行为 NaN；输入开头的 NaN（如 diff/shift 产生的）不计入窗口。
    """
    s = series.astype(float)
    seed = s.rolling(period, min_periods=period).mean()
    first = seed.first_valid_index()
    if first is None:
        return pd.Series(np.nan, index=s.index, dtype=float)
    pos = s.index.get_loc(first)
    seeded = s.copy()
    seeded.iloc[:pos] = np.nan
    seeded.iloc[pos] = seed.iloc[pos]
    return seeded.ewm(alpha=alpha, adjust=False).mean()
