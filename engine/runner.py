"""组件装配与主循环入口。

配置 → venue 客户端 → 精度缓存 → 执行器 → 策略 → 调度器 / 运维视图。
"""

from __future__ import annotations

import asyncio
import signal as os_signal
from dataclasses import dataclass
from typing import Any

from algo.strategy.base import SignalStrategy
from algo.strategy.registry import build_strategy
from broker.base import BrokerMode, VenueClient
from broker.bybit_client import BybitClient
from broker.instrument_cache import InstrumentMetaCache
from broker.order_executor import OrderExecutor
from broker.paper_account import PaperAccountClient
from engine.operator_view import OperatorView
from engine.scheduler import BotScheduler
from shared.config.schema import AppConfig
from shared.utils.logging import setup_logger
from shared.utils.trade_logger import TradeLog


def create_client(cfg: AppConfig) -> VenueClient:
    """live 或已配置密钥时直接用签名客户端；无密钥的 dry-run 套一层纸面账户。"""
    ex = cfg.exchange
    client = BybitClient(
        base_url=ex.base_url,
        api_key=ex.api_key,
        api_secret=ex.api_secret,
        category=ex.category,
        recv_window=ex.recv_window,
        timeout_s=ex.timeout_s,
        orderbook_timeout_s=ex.orderbook_timeout_s,
    )
    if cfg.dry_run and not (ex.api_key and ex.api_secret):
        return PaperAccountClient(client, balance=ex.paper_balance)
    return client


@dataclass
class BotComponents:
    """一次运行所需的全部组件（显式上下文，无全局变量）。"""
    cfg: AppConfig
    client: VenueClient
    cache: InstrumentMetaCache
    executor: OrderExecutor
    strategy: SignalStrategy
    trade_log: TradeLog
    scheduler: BotScheduler
    view: OperatorView

    @property
    def mode(self) -> BrokerMode:
        return BrokerMode.DRY_RUN if self.cfg.dry_run else BrokerMode.LIVE


def build_components(
    cfg: AppConfig,
    *,
    client: VenueClient | None = None,
    strategy_overrides: dict[str, Any] | None = None,
    scheduler_overrides: dict[str, Any] | None = None,
) -> BotComponents:
    """按配置装配组件；client/overrides 供测试注入假实现。"""
    client = client or create_client(cfg)
    trade_log = TradeLog(maxlen=cfg.logging.buffer_size)
    cache = InstrumentMetaCache(client)
    executor = OrderExecutor(
        client,
        cache,
        trade_log=trade_log,
        dry_run=cfg.dry_run,
        category=cfg.exchange.category,
    )
    strategy = build_strategy(cfg.strategy, **(strategy_overrides or {}))
    scheduler = BotScheduler.from_config(cfg, client, executor, strategy, **(scheduler_overrides or {}))
    view = OperatorView(
        client,
        strategy,
        executor,
        trade_log,
        interval=cfg.scheduler.interval,
        orderbook_depth=cfg.scheduler.orderbook_depth,
    )
    return BotComponents(
        cfg=cfg,
        client=client,
        cache=cache,
        executor=executor,
        strategy=strategy,
        trade_log=trade_log,
        scheduler=scheduler,
        view=view,
    )


async def run_bot(components: BotComponents, max_ticks: int | None = None) -> dict[str, Any]:
    """运行调度器直到 Ctrl-C / SIGTERM，或执行满 max_ticks 次 tick。"""
    logger = setup_logger("runner")
    scheduler = components.scheduler
    logger.info(
        "Starting %s bot for %s (strategy=%s)",
        components.mode.value, components.cfg.symbol, getattr(components.strategy, "strategy_id", "?"),
    )

    loop = asyncio.get_running_loop()
    for sig in (os_signal.SIGINT, os_signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, lambda: setattr(scheduler, "running", False))
        except (NotImplementedError, RuntimeError):
            # Windows 事件循环不支持
            pass

    ticks = 0
    try:
        ticks = await scheduler.run(max_ticks=max_ticks)
    finally:
        await scheduler.stop()

    return {
        "symbol": components.cfg.symbol,
        "mode": components.mode.value,
        "ticks": ticks,
        "last_outcome": scheduler.last_outcome.value if scheduler.last_outcome else None,
        "monitors": scheduler.spawned,
        "logs": len(components.trade_log),
    }
