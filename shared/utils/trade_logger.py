"""交易事件日志（内存环形缓冲，供 operator 视图读取）。"""

from __future__ import annotations

import logging
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Callable

_LOGGER = logging.getLogger("trade-log")


class TradeLog:
    """只追加、定长的事件缓冲。

    每条记录形如 `[2024-01-01T00:00:00.000Z] message`，超过 maxlen 丢弃最旧的。
    写入同时转发到 logger，便于控制台与文件日志对齐。

    Parameters
    ----------
    maxlen:
        保留条数，默认 200。
    now_fn:
        时间源（测试注入）。
    """

    def __init__(self, maxlen: int = 200, now_fn: Callable[[], datetime] | None = None):
        self._events: deque[str] = deque(maxlen=maxlen)
        self._lock = threading.Lock()
        self._now = now_fn or (lambda: datetime.now(timezone.utc))

    def record(self, message: str, level: int = logging.INFO) -> str:
        ts = self._now().isoformat(timespec="milliseconds").replace("+00:00", "Z")
        line = f"[{ts}] {message}"
        with self._lock:
            self._events.append(line)
        _LOGGER.log(level, message)
        return line

    def get_logs(self) -> list[str]:
        with self._lock:
            return list(self._events)

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
