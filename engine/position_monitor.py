"""持仓监控：移动止损 + EMA 反转离场。"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from algo.factors.ema import ema
from broker.base import VenueClient
from broker.order_executor import OrderAck, OrderExecutor, OrderFailure
from shared.models.models import MonitorState, SignalAction, normalize_side
from shared.utils.aio import call_blocking

logger = logging.getLogger(__name__)


class PositionMonitor:
    """单笔持仓的状态机（ARMED → WATCHING → CLOSED）。

    每个周期：
    1. 拉取最新 K 线，丢掉尚未收盘的最后一根，计算 EMA(fast)/EMA(slow)；
    2. 多头 fast < slow（空头 fast > slow）视为反转：reduce-only 平仓后进入 CLOSED；
       平仓失败保持 WATCHING，下个周期重新读取持仓再决定；
    3. 价格越过激活线后，以 trail_pct 计算新止损，只在更紧时推送到 venue，
       推送成功后才更新本地止损参考。

    单个周期里的异常只记录，不会结束循环；进入 CLOSED 后不再发起任何请求。
    """

    def __init__(
        self,
        client: VenueClient,
        executor: OrderExecutor,
        symbol: str,
        side: str | SignalAction,
        entry_price: float,
        *,
        interval: str = "1",
        interval_s: float = 60.0,
        candle_limit: int = 50,
        fast: int = 9,
        slow: int = 21,
        initial_stop_pct: float = 0.003,
        activation_pct: float = 0.002,
        trail_pct: float = 0.002,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ):
        self.client = client
        self.executor = executor
        self.symbol = symbol
        self.side = normalize_side(side)
        self.entry_price = float(entry_price)
        self.interval = interval
        self.interval_s = interval_s
        self.candle_limit = candle_limit
        self.fast = fast
        self.slow = slow
        self.activation_pct = activation_pct
        self.trail_pct = trail_pct
        self._sleep = sleep or asyncio.sleep

        if self.side is SignalAction.BUY:
            self.trailing_stop = self.entry_price * (1 - initial_stop_pct)
        else:
            self.trailing_stop = self.entry_price * (1 + initial_stop_pct)

        self.state = MonitorState.ARMED
        self.running = False
        self.iterations = 0
        self.error_count = 0

    @property
    def closed(self) -> bool:
        return self.state is MonitorState.CLOSED

    def _is_reversal(self, fast_v: float, slow_v: float) -> bool:
        if self.side is SignalAction.BUY:
            return fast_v < slow_v
        return fast_v > slow_v

    def _trail_candidate(self, last_close: float) -> float | None:
        """价格越过激活线时返回候选止损，否则 None。"""
        if self.side is SignalAction.BUY:
            if last_close > self.entry_price * (1 + self.activation_pct):
                return last_close * (1 - self.trail_pct)
            return None
        if last_close < self.entry_price * (1 - self.activation_pct):
            return last_close * (1 + self.trail_pct)
        return None

    def _tightens(self, candidate: float) -> bool:
        if self.side is SignalAction.BUY:
            return candidate > self.trailing_stop
        return candidate < self.trailing_stop

    async def check_once(self) -> MonitorState:
        """执行一个监控周期，返回周期结束后的状态。"""
        if self.closed:
            return self.state
        self.state = MonitorState.WATCHING
        self.iterations += 1

        candles = await call_blocking(self.client.get_candles, self.symbol, self.interval, self.candle_limit)
        closed = candles[:-1]
        closes = [c.close for c in closed]
        fast_v = ema(closes, self.fast)
        slow_v = ema(closes, self.slow)
        if fast_v is None or slow_v is None:
            logger.info("⏳ [%s] not enough closed candles for monitor (%d)", self.symbol, len(closes))
            return self.state

        if self._is_reversal(fast_v, slow_v):
            logger.info(
                "🔄 [%s] trend reversal ema%d=%.6f ema%d=%.6f, closing %s",
                self.symbol, self.fast, fast_v, self.slow, slow_v, self.side.value,
            )
            result = await self.executor.close_position(self.symbol)
            if isinstance(result, OrderFailure):
                logger.warning("⚠️ [%s] close failed (%s), will retry next cycle", self.symbol, result.error)
                return self.state
            if result is None:
                logger.info("[%s] position already flat", self.symbol)
            elif isinstance(result, OrderAck):
                logger.info("✅ [%s] position closed id=%s", self.symbol, result.order_id)
            self.state = MonitorState.CLOSED
            return self.state

        last_close = closes[-1]
        candidate = self._trail_candidate(last_close)
        if candidate is not None and self._tightens(candidate):
            ok = await self.executor.update_stop_loss(self.symbol, candidate)
            if ok:
                logger.info(
                    "🔁 [%s] trailing stop %.6f -> %.6f (close=%.6f)",
                    self.symbol, self.trailing_stop, candidate, last_close,
                )
                self.trailing_stop = candidate
        return self.state

    async def run(self) -> MonitorState:
        """循环直到 CLOSED、stop() 或任务被取消。"""
        self.running = True
        self.state = MonitorState.WATCHING
        logger.info(
            "👀 Monitoring %s %s entry=%.6f stop=%.6f",
            self.side.value, self.symbol, self.entry_price, self.trailing_stop,
        )
        try:
            while self.running and not self.closed:
                await self._sleep(self.interval_s)
                if not self.running:
                    break
                try:
                    await self.check_once()
                except Exception as e:
                    self.error_count += 1
                    logger.error("❌ [%s] monitor iteration failed: %s", self.symbol, e)
        finally:
            self.running = False
        return self.state

    def stop(self) -> None:
        self.running = False
