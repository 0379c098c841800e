"""调度器的会话级状态（单写者：只有 BotScheduler 修改）。"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable


@dataclass
class SchedulerState:
    """冷却计时。

    `last_trade_time` 只在成功开仓后写入（None 表示本会话尚未开仓），
    监控任务不持有本对象。时钟可以从任意值（包括 0 或负数）开始。
    """
    cooldown_s: float = 60.0
    last_trade_time: float | None = None
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    def in_cooldown(self, now: float | None = None) -> bool:
        return self.remaining(now) > 0

    def remaining(self, now: float | None = None) -> float:
        if self.last_trade_time is None:
            return 0.0
        now = self.clock() if now is None else now
        return max(0.0, self.cooldown_s - (now - self.last_trade_time))

    def mark_trade(self, now: float | None = None) -> None:
        self.last_trade_time = self.clock() if now is None else now
