"""Venue 客户端抽象接口与运行模式定义。"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

from shared.models.models import Candle, InstrumentMeta, Position


class BrokerMode(Enum):
    """运行模式：dry-run 只读行情、不下单；live 真实下单。"""

    DRY_RUN = "dry-run"
    LIVE = "live"


class VenueClient(ABC):
    """永续合约 venue 的最小接口。

    所有方法为阻塞调用，每个请求都带超时；异步侧通过 `run_in_executor` 调用。
    失败以 `broker.errors` 中的异常抛出，交易所 retCode != 0 抛 VenueRejection。
    """

    @abstractmethod
    def get_instrument_meta(self, symbol: str) -> InstrumentMeta:
        """合约精度规则。"""

    @abstractmethod
    def get_candles(self, symbol: str, interval: str, limit: int) -> list[Candle]:
        """升序 K 线（最后一根可能尚未收盘）。"""

    @abstractmethod
    def get_wallet_balance(self, coin: str = "USDT") -> float:
        """钱包余额。"""

    @abstractmethod
    def get_orderbook(self, symbol: str, depth: int = 20) -> dict[str, list]:
        """订单簿快照：{"bids": [[price, size], ...], "asks": [...]}。"""

    @abstractmethod
    def get_position(self, symbol: str) -> Position | None:
        """当前持仓；无记录返回 None。"""

    @abstractmethod
    def place_order(self, payload: dict[str, Any]) -> dict[str, Any]:
        """提交订单，返回 venue 的原始响应。"""

    @abstractmethod
    def set_trading_stop(self, symbol: str, stop_loss: str) -> dict[str, Any]:
        """修改持仓止损。"""

    @abstractmethod
    def set_leverage(self, symbol: str, leverage: int) -> dict[str, Any]:
        """设置杠杆（多空同值）。"""
