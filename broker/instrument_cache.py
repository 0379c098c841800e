"""合约精度规则缓存（symbol 级别，进程内常驻）。"""

from __future__ import annotations

import threading

from broker.base import VenueClient
from shared.models.models import InstrumentMeta
from shared.utils.logging import setup_logger


class InstrumentMetaCache:
    """首次访问时向 venue 拉取，之后复用。

    - 拉取失败不缓存，异常原样抛给调用方，下次访问重新拉取；
    - 并发首次访问可能重复拉取，后写覆盖先写（结果一致，无害）。
    """

    def __init__(self, client: VenueClient):
        self.client = client
        self._entries: dict[str, InstrumentMeta] = {}
        self._lock = threading.Lock()
        self.logger = setup_logger("instrument-cache")

    def get(self, symbol: str) -> InstrumentMeta:
        with self._lock:
            cached = self._entries.get(symbol)
        if cached is not None:
            return cached

        meta = self.client.get_instrument_meta(symbol)
        with self._lock:
            self._entries[symbol] = meta
        self.logger.info(
            "Loaded instrument meta %s tick=%s minQty=%s step=%s",
            symbol, meta.tick_size, meta.min_order_qty, meta.qty_step,
        )
        return meta

    def invalidate(self, symbol: str | None = None) -> None:
        with self._lock:
            if symbol is None:
                self._entries.clear()
            else:
                self._entries.pop(symbol, None)

    def __contains__(self, symbol: str) -> bool:
        with self._lock:
            return symbol in self._entries
