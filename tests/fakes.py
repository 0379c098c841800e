"""无网络的测试替身：FakeVenue / FakeClock / 行情构造工具。"""

from __future__ import annotations

from typing import Any

from broker.base import VenueClient
from broker.errors import VenueError
from shared.models.models import Candle, InstrumentMeta, Position


class FakeClock:
    def __init__(self, start_ts: float = 1_000.0):
        self._ts = float(start_ts)

    def now(self) -> float:
        return self._ts

    def __call__(self) -> float:
        return self._ts

    def advance(self, seconds: float) -> float:
        self._ts += float(seconds)
        return self._ts


class FakeVenue(VenueClient):
    """内存版 venue。

    - `candles` / `orderbook` / `position` / `balance` / `meta` 直接赋值即可；
    - `errors[method] = exc` 让对应方法抛异常（一次性）；
    - 写操作记录在 `orders` / `stops` / `leverage_calls`。
    """

    def __init__(
        self,
        *,
        candles: list[Candle] | None = None,
        bids: list | None = None,
        asks: list | None = None,
        balance: float = 1000.0,
        meta: InstrumentMeta | None = None,
        position: Position | None = None,
    ):
        self.candles: list[Candle] = list(candles or [])
        self.orderbook: dict[str, list] = {"bids": list(bids or []), "asks": list(asks or [])}
        self.balance = balance
        self.meta = meta or InstrumentMeta(tick_size=0.01, min_order_qty=0.01, qty_step=0.01)
        self.position = position
        self.errors: dict[str, Exception] = {}
        self.calls: dict[str, int] = {}
        self.orders: list[dict[str, Any]] = []
        self.stops: list[tuple[str, str]] = []
        self.leverage_calls: list[tuple[str, int]] = []
        # 下单后是否自动生成持仓
        self.fill_on_order = True

    def _hit(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1
        exc = self.errors.pop(name, None)
        if exc is not None:
            raise exc

    @property
    def network_calls(self) -> int:
        return sum(self.calls.values())

    def get_instrument_meta(self, symbol: str) -> InstrumentMeta:
        self._hit("get_instrument_meta")
        return self.meta

    def get_candles(self, symbol: str, interval: str, limit: int) -> list[Candle]:
        self._hit("get_candles")
        return list(self.candles[-limit:])

    def get_wallet_balance(self, coin: str = "USDT") -> float:
        self._hit("get_wallet_balance")
        return self.balance

    def get_orderbook(self, symbol: str, depth: int = 20) -> dict[str, list]:
        self._hit("get_orderbook")
        return {"bids": list(self.orderbook["bids"]), "asks": list(self.orderbook["asks"])}

    def get_position(self, symbol: str) -> Position | None:
        self._hit("get_position")
        return self.position

    def place_order(self, payload: dict[str, Any]) -> dict[str, Any]:
        self._hit("place_order")
        self.orders.append(dict(payload))
        oid = f"oid-{len(self.orders)}"
        if self.fill_on_order:
            size = float(payload["qty"])
            if payload.get("reduceOnly"):
                self.position = Position(symbol=payload["symbol"], side="", size=0.0)
            else:
                price = self.candles[-1].close if self.candles else 0.0
                self.position = Position(
                    symbol=payload["symbol"], side=payload["side"], size=size, entry_price=price
                )
        return {"retCode": 0, "retMsg": "OK", "result": {"orderId": oid}}

    def set_trading_stop(self, symbol: str, stop_loss: str) -> dict[str, Any]:
        self._hit("set_trading_stop")
        self.stops.append((symbol, stop_loss))
        return {"retCode": 0, "retMsg": "OK", "result": {}}

    def set_leverage(self, symbol: str, leverage: int) -> dict[str, Any]:
        self._hit("set_leverage")
        self.leverage_calls.append((symbol, leverage))
        return {"retCode": 0, "retMsg": "OK", "result": {}}


def make_candles(
    closes: list[float],
    *,
    volumes: list[float] | None = None,
    spread: float = 0.5,
    start_ms: int = 1_700_000_000_000,
    step_ms: int = 60_000,
) -> list[Candle]:
    vols = volumes or [100.0] * len(closes)
    out = []
    prev = closes[0]
    for i, (c, v) in enumerate(zip(closes, vols)):
        out.append(
            Candle(
                open_time=start_ms + i * step_ms,
                open=prev,
                high=max(prev, c) + spread,
                low=min(prev, c) - spread,
                close=c,
                volume=v,
            )
        )
        prev = c
    return out


def uptrend_cross_closes(n: int = 60) -> list[float]:
    """先缓慢下跌再急拉：最后一根让 EMA9 上穿 EMA21。"""
    closes = [100.0 - 0.05 * i for i in range(n - 1)]
    closes.append(closes[-1] + 6.0)
    return closes


def downtrend_cross_closes(n: int = 60) -> list[float]:
    closes = [100.0 + 0.05 * i for i in range(n - 1)]
    closes.append(closes[-1] - 6.0)
    return closes


class Boom(VenueError):
    pass
