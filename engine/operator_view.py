"""运维视图：日志、PnL、K 线快照、信号预览与手动下单。

所有方法返回可直接序列化的 dict；失败统一为 `{"error": msg, "status": 500}`，
参数缺失为 `{"error": msg, "status": 400}`。
"""

from __future__ import annotations

import logging
from typing import Any

from algo.factors.orderbook import order_book_imbalance
from algo.factors.registry import DEFAULT_FACTORS, apply_factors, build_factors, candles_to_frame
from algo.strategy.base import SignalStrategy
from broker.base import VenueClient
from broker.order_executor import OrderAck, OrderExecutor
from shared.utils.aio import call_blocking
from shared.utils.trade_logger import TradeLog

logger = logging.getLogger(__name__)


def _error(message: str, status: int = 500) -> dict[str, Any]:
    return {"error": message, "status": status}


class OperatorView:
    """供 CLI / dashboard 使用的只读查询与手动操作入口。"""

    def __init__(
        self,
        client: VenueClient,
        strategy: SignalStrategy,
        executor: OrderExecutor,
        trade_log: TradeLog,
        *,
        interval: str = "1",
        orderbook_depth: int = 20,
        factors_cfg: list[dict[str, Any]] | None = None,
    ):
        self.client = client
        self.strategy = strategy
        self.executor = executor
        self.trade_log = trade_log
        self.interval = interval
        self.orderbook_depth = orderbook_depth
        self.factors = build_factors(factors_cfg if factors_cfg is not None else DEFAULT_FACTORS)

    def logs(self) -> dict[str, Any]:
        return {"logs": self.trade_log.get_logs()}

    async def pnl(self, symbol: str) -> dict[str, Any]:
        """当前持仓快照；profit/loss 按未实现盈亏的正负拆分。"""
        if not symbol:
            return _error("Symbol is required", 400)
        try:
            pos = await call_blocking(self.client.get_position, symbol)
        except Exception as e:
            logger.error("Error fetching PnL: %s", e)
            return _error(f"Failed to fetch PnL: {e}")
        if pos is None or not pos.is_open:
            return {"symbol": symbol, "position": None, "profit": 0.0, "loss": 0.0, "pnl": 0.0}
        pnl = pos.unrealized_pnl
        return {
            "symbol": symbol,
            "position": pos.to_dict(),
            "profit": pnl if pnl > 0 else 0.0,
            "loss": pnl if pnl < 0 else 0.0,
            "pnl": pnl,
        }

    async def candles(self, symbol: str, limit: int = 200) -> dict[str, Any]:
        """K 线 + 指标列（EMA/VWAP/ATR/RSI，预热期为 None）。"""
        if not symbol:
            return _error("Symbol is required", 400)
        try:
            rows = await call_blocking(self.client.get_candles, symbol, self.interval, limit)
        except Exception as e:
            logger.error("API candle error: %s", e)
            return _error(str(e))
        if not rows:
            return _error("No candles fetched", 400)
        df = apply_factors(candles_to_frame(rows), self.factors)
        df = df.astype(object).where(df.notna(), None)
        return {"symbol": symbol, "candles": df.to_dict(orient="records")}

    async def strategy_preview(self, symbol: str, limit: int = 200) -> dict[str, Any]:
        """按当前行情生成一次信号，不下单。"""
        if not symbol:
            return _error("Symbol is required", 400)
        try:
            rows = await call_blocking(self.client.get_candles, symbol, self.interval, limit)
            book = await call_blocking(self.client.get_orderbook, symbol, self.orderbook_depth)
            imbalance = order_book_imbalance(book.get("bids"), book.get("asks"))
            signal = self.strategy.generate(rows, imbalance)
        except Exception as e:
            logger.error("Strategy error: %s", e)
            return _error(str(e))
        return {"symbol": symbol, "imbalance": imbalance, "signal": signal.to_dict()}

    async def manual_trade(
        self,
        side: str | None,
        symbol: str | None,
        qty: float | None,
        stop_loss: float | None = None,
        take_profit: float | None = None,
    ) -> dict[str, Any]:
        if not side or not symbol or not qty:
            return _error("side, symbol, and qty are required", 400)
        result = await self.executor.execute_trade(side, symbol, float(qty), stop_loss, take_profit)
        if isinstance(result, OrderAck):
            return {"success": True, "orderId": result.order_id, "data": result.raw}
        return {**_error(result.error), "kind": result.kind, "payload": result.payload}
