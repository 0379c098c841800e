"""无密钥 dry-run 的 venue 包装：公共行情走真实接口，账户侧用本地纸面账户。"""

from __future__ import annotations

from typing import Any

from broker.base import VenueClient
from broker.errors import AuthError
from shared.models.models import Candle, InstrumentMeta, Position
from shared.utils.logging import setup_logger


class PaperAccountClient(VenueClient):
    """行情类请求委托给 `market`；余额固定为 `balance`，持仓始终为空。

    下单/止损/杠杆需要签名，这里没有凭证，直接抛 AuthError。
    dry-run 执行器在本地确认订单，不会走到这些方法。
    """

    def __init__(self, market: VenueClient, balance: float = 1000.0):
        if balance <= 0:
            raise ValueError("paper balance must be > 0")
        self.market = market
        self.balance = float(balance)
        self.logger = setup_logger("paper-account")
        self.logger.info("📝 Paper account active (balance=%.2f USDT, flat positions)", self.balance)

    def get_instrument_meta(self, symbol: str) -> InstrumentMeta:
        return self.market.get_instrument_meta(symbol)

    def get_candles(self, symbol: str, interval: str, limit: int) -> list[Candle]:
        return self.market.get_candles(symbol, interval, limit)

    def get_orderbook(self, symbol: str, depth: int = 20) -> dict[str, list]:
        return self.market.get_orderbook(symbol, depth)

    def get_wallet_balance(self, coin: str = "USDT") -> float:
        return self.balance

    def get_position(self, symbol: str) -> Position | None:
        return None

    def _no_credentials(self, action: str) -> AuthError:
        return AuthError(f"{action} needs API credentials (paper account)")

    def place_order(self, payload: dict[str, Any]) -> dict[str, Any]:
        raise self._no_credentials("place_order")

    def set_trading_stop(self, symbol: str, stop_loss: str) -> dict[str, Any]:
        raise self._no_credentials("set_trading_stop")

    def set_leverage(self, symbol: str, leverage: int) -> dict[str, Any]:
        raise self._no_credentials("set_leverage")
