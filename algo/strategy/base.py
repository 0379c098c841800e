"""信号策略抽象。"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

from shared.models.models import Candle, Signal


class SignalStrategy(ABC):
    """输入一段升序 K 线窗口与订单簿失衡度，输出一个 Signal（可能是 Hold）。"""

    strategy_id: str = "base"

    @abstractmethod
    def generate(self, candles: Sequence[Candle], imbalance: float) -> Signal:
        ...
