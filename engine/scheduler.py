"""入场调度器：周期性评估信号并开仓，成功开仓后派生持仓监控任务。"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable

from algo.factors.orderbook import order_book_imbalance
from algo.sizing.risk_budget import compute_qty
from algo.strategy.base import SignalStrategy
from broker.base import VenueClient
from broker.errors import AuthError, DataInsufficientError, VenueError
from broker.order_executor import OrderAck, OrderExecutor
from engine.position_monitor import PositionMonitor
from engine.state import SchedulerState
from shared.models.models import Signal
from shared.utils.aio import call_blocking

logger = logging.getLogger(__name__)


class TickOutcome(str, Enum):
    """单次 tick 的结果（用于日志与测试断言）。"""
    COOLDOWN = "cooldown"
    INSUFFICIENT_DATA = "insufficient_data"
    HOLD = "hold"
    IN_POSITION = "in_position"
    NO_BALANCE = "no_balance"
    ORDER_FAILED = "order_failed"
    ENTERED = "entered"
    ERROR = "error"


class BotScheduler:
    """入场循环。

    每个 tick 依次执行：冷却检查 → 拉 K 线 → 订单簿失衡 → 生成信号 →
    已有持仓检查 → 余额 → 计算数量 → 下单 → 派生监控 → 写入冷却时间。
    任何一步失败都只结束本次 tick，不影响后续 tick。

    `state` 只由本调度器写入；监控任务不持有它。
    """

    def __init__(
        self,
        client: VenueClient,
        executor: OrderExecutor,
        strategy: SignalStrategy,
        *,
        symbol: str = "ETHUSDT",
        interval: str = "1",
        candle_limit: int = 50,
        min_candles: int = 50,
        orderbook_depth: int = 20,
        risk_per_trade_pct: float = 0.5,
        leverage: int = 150,
        tick_interval_s: float = 10.0,
        state: SchedulerState | None = None,
        monitor_kwargs: dict[str, Any] | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ):
        self.client = client
        self.executor = executor
        self.strategy = strategy
        self.symbol = symbol
        self.interval = interval
        self.candle_limit = candle_limit
        self.min_candles = min_candles
        self.orderbook_depth = orderbook_depth
        self.risk_per_trade_pct = risk_per_trade_pct
        self.leverage = leverage
        self.tick_interval_s = tick_interval_s
        self.state = state or SchedulerState()
        self.monitor_kwargs = dict(monitor_kwargs or {})
        self._sleep = sleep or asyncio.sleep

        self.running = False
        self.started = False
        self.last_signal: Signal | None = None
        self.last_outcome: TickOutcome | None = None
        # 仅保留仍在运行的监控；结束后由 done-callback 移除
        self.monitors: list[PositionMonitor] = []
        self.spawned = 0
        self._monitor_tasks: set[asyncio.Task] = set()

    @classmethod
    def from_config(
        cls,
        cfg: Any,
        client: VenueClient,
        executor: OrderExecutor,
        strategy: SignalStrategy,
        **kwargs: Any,
    ) -> "BotScheduler":
        """由 AppConfig 构建调度器（kwargs 可覆盖，如 sleep/state）。"""
        sched = cfg.scheduler
        mon = cfg.monitor
        params: dict[str, Any] = dict(
            symbol=cfg.symbol,
            interval=sched.interval,
            candle_limit=sched.candle_limit,
            min_candles=sched.min_candles,
            orderbook_depth=sched.orderbook_depth,
            risk_per_trade_pct=cfg.risk.risk_per_trade_pct,
            leverage=cfg.risk.leverage,
            tick_interval_s=sched.tick_interval_s,
            state=SchedulerState(cooldown_s=sched.cooldown_s),
            monitor_kwargs=dict(
                interval=sched.interval,
                interval_s=mon.interval_s,
                candle_limit=mon.candle_limit,
                fast=mon.fast,
                slow=mon.slow,
                initial_stop_pct=mon.initial_stop_pct,
                activation_pct=mon.activation_pct,
                trail_pct=mon.trail_pct,
            ),
        )
        params.update(kwargs)
        return cls(client, executor, strategy, **params)

    @property
    def active_monitors(self) -> list[PositionMonitor]:
        return [m for m in self.monitors if not m.closed]

    async def start(self) -> None:
        """启动前设置一次杠杆；鉴权失败直接抛出（致命）。"""
        if self.started:
            return
        try:
            await self.executor.set_leverage(self.symbol, self.leverage)
        except AuthError:
            logger.critical("🛑 Authentication failed while setting leverage, aborting")
            raise
        self.started = True

    async def tick(self) -> TickOutcome:
        outcome = await self._tick()
        self.last_outcome = outcome
        return outcome

    async def _tick(self) -> TickOutcome:
        if self.state.in_cooldown():
            logger.info("⏳ Cooldown active (%.0fs left); skipping...", self.state.remaining())
            return TickOutcome.COOLDOWN

        logger.info("=== Running bot for %s ===", self.symbol)
        try:
            candles = await call_blocking(self.client.get_candles, self.symbol, self.interval, self.candle_limit)
            if len(candles) < self.min_candles:
                logger.info("⚠️ Not enough candles yet (%d < %d)", len(candles), self.min_candles)
                return TickOutcome.INSUFFICIENT_DATA

            book = await call_blocking(self.client.get_orderbook, self.symbol, self.orderbook_depth)
            imbalance = order_book_imbalance(book.get("bids"), book.get("asks"))

            signal = self.strategy.generate(candles, imbalance)
            self.last_signal = signal
            if signal.is_hold:
                logger.info("⏸ No trade signal (%s), obi=%.3f", signal.reason, imbalance)
                return TickOutcome.HOLD
            logger.info("📡 Signal: %s", signal.to_dict())

            pos = await call_blocking(self.client.get_position, self.symbol)
            if pos is not None and pos.is_open:
                logger.info("⛔ Already in position (%s %s), skipping", pos.side, pos.size)
                return TickOutcome.IN_POSITION

            balance = await call_blocking(self.client.get_wallet_balance, "USDT")
            if balance is None or not balance > 0:
                logger.warning("⚠️ Balance unavailable or zero: %s", balance)
                return TickOutcome.NO_BALANCE

            meta = await call_blocking(self.executor.cache.get, self.symbol)
            qty = compute_qty(
                balance,
                signal.entry_price,
                signal.stop_loss,
                self.risk_per_trade_pct,
                meta,
                confidence=signal.confidence,
            )
            logger.info("🧮 Balance=%.4f qty=%s confidence=%.3f", balance, qty, signal.confidence)

            result = await self.executor.execute_trade(
                signal.action, self.symbol, qty, signal.stop_loss, signal.take_profit
            )
            if not isinstance(result, OrderAck):
                logger.error("❌ Trade failed: %s", result.error)
                return TickOutcome.ORDER_FAILED

            self._spawn_monitor(signal)
            self.state.mark_trade()
            logger.info("🚀 Entered %s %s qty=%s id=%s", signal.action.value, self.symbol, qty, result.order_id)
            return TickOutcome.ENTERED
        except DataInsufficientError as e:
            logger.info("⚠️ Data insufficient, skipping tick: %s", e)
            return TickOutcome.INSUFFICIENT_DATA
        except VenueError as e:
            logger.error("❌ Venue error during tick: %s", e)
            return TickOutcome.ERROR
        except Exception as e:
            logger.exception("❌ Bot error: %s", e)
            return TickOutcome.ERROR

    def _spawn_monitor(self, signal: Signal) -> PositionMonitor:
        monitor = PositionMonitor(
            self.client,
            self.executor,
            self.symbol,
            signal.action,
            signal.entry_price,
            **self.monitor_kwargs,
        )
        self.monitors.append(monitor)
        self.spawned += 1
        task = asyncio.create_task(monitor.run(), name=f"monitor-{self.symbol}-{self.spawned}")
        self._monitor_tasks.add(task)

        def _forget(t: asyncio.Task) -> None:
            self._monitor_tasks.discard(t)
            if monitor in self.monitors:
                self.monitors.remove(monitor)

        task.add_done_callback(_forget)
        return monitor

    async def run(self, max_ticks: int | None = None) -> int:
        """主循环：start() 后每 tick_interval_s 执行一次 tick，直到 stop() 或满 max_ticks。

        返回执行过的 tick 数。
        """
        await self.start()
        self.running = True
        logger.info("🤖 Bot started for %s (every %.0fs)", self.symbol, self.tick_interval_s)
        ticks = 0
        try:
            while self.running:
                await self.tick()
                ticks += 1
                if not self.running or (max_ticks is not None and ticks >= max_ticks):
                    break
                await self._sleep(self.tick_interval_s)
        finally:
            self.running = False
        return ticks

    async def stop(self) -> None:
        """停止入场循环并取消所有监控任务。"""
        logger.info("🛑 Stopping bot...")
        self.running = False
        for m in self.monitors:
            m.stop()
        tasks = list(self._monitor_tasks)
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("✅ Bot stopped")
