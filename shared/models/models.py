"""核心数据结构：Candle/InstrumentMeta/Signal/OrderRequest/Position。"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class Candle:
    """K 线数据（按 open_time 升序，单位 ms）。"""
    open_time: int
    open: float
    high: float
    low: float
    close: float
    volume: float

    @property
    def typical_price(self) -> float:
        return (self.high + self.low + self.close) / 3.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "open_time": self.open_time,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }


@dataclass(frozen=True)
class InstrumentMeta:
    """合约精度规则（tickSize / minOrderQty / qtyStep）。"""
    tick_size: float
    min_order_qty: float
    qty_step: float

    def __post_init__(self):
        for name in ("tick_size", "min_order_qty", "qty_step"):
            value = getattr(self, name)
            if value is None or float(value) <= 0:
                raise ValueError(f"InstrumentMeta.{name} must be > 0, got {value!r}")


class SignalAction(str, Enum):
    BUY = "Buy"
    SELL = "Sell"
    HOLD = "Hold"

    @property
    def opposite(self) -> "SignalAction":
        if self is SignalAction.BUY:
            return SignalAction.SELL
        if self is SignalAction.SELL:
            return SignalAction.BUY
        return SignalAction.HOLD


def normalize_side(side: str | SignalAction) -> SignalAction:
    """把 "buy"/"BUY"/"Buy" 统一成 SignalAction.BUY/SELL；其它值抛 ValueError。"""
    if isinstance(side, SignalAction):
        if side is SignalAction.HOLD:
            raise ValueError("Hold is not an order side")
        return side
    s = str(side or "").strip().lower()
    if s == "buy":
        return SignalAction.BUY
    if s == "sell":
        return SignalAction.SELL
    raise ValueError(f"Invalid order side: {side!r}")


@dataclass(frozen=True)
class Signal:
    """策略输出的交易信号。

    Hold 信号不携带价格，`reason` 说明原因（insufficient_data / low_volatility / no_setup）。
    """
    action: SignalAction
    entry_price: float | None = None
    stop_loss: float | None = None
    take_profit: float | None = None
    confidence: float = 0.0
    reason: str | None = None

    def __post_init__(self):
        if self.confidence < 0:
            raise ValueError("Signal.confidence must be >= 0")
        if self.action is not SignalAction.HOLD:
            if self.entry_price is None or self.stop_loss is None or self.take_profit is None:
                raise ValueError("Directional signal requires entry/stop_loss/take_profit")

    @classmethod
    def hold(cls, reason: str) -> "Signal":
        return cls(action=SignalAction.HOLD, reason=reason)

    @property
    def is_hold(self) -> bool:
        return self.action is SignalAction.HOLD

    def to_dict(self) -> dict[str, Any]:
        return {
            "signal": self.action.value,
            "entry": self.entry_price,
            "stopLoss": self.stop_loss,
            "takeProfit": self.take_profit,
            "confidence": self.confidence,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class OrderRequest:
    """下单请求（qty/价格须已按合约精度量化）。"""
    symbol: str
    side: SignalAction
    qty: float
    order_type: str = "Market"
    time_in_force: str = "IOC"
    stop_loss: float | None = None
    take_profit: float | None = None
    reduce_only: bool = False
    category: str = "linear"

    def __post_init__(self):
        if self.qty <= 0:
            raise ValueError("OrderRequest.qty must be > 0")
        if self.side is SignalAction.HOLD:
            raise ValueError("OrderRequest.side must be Buy or Sell")

    def to_payload(self) -> dict[str, Any]:
        """渲染成 venue 的 JSON body（数字以字符串传输）。"""
        body: dict[str, Any] = {
            "category": self.category,
            "symbol": self.symbol,
            "side": self.side.value,
            "orderType": self.order_type,
            "qty": _num_str(self.qty),
            "timeInForce": self.time_in_force,
        }
        if self.take_profit is not None:
            body["takeProfit"] = _num_str(self.take_profit)
        if self.stop_loss is not None:
            body["stopLoss"] = _num_str(self.stop_loss)
        body["reduceOnly"] = self.reduce_only
        return body


def _num_str(value: float) -> str:
    # 量化后的值用 repr 足够短；避免科学计数法，整数去掉 ".0"
    f = float(value)
    if f.is_integer():
        return str(int(f))
    return format(Decimal(repr(f)), "f")


@dataclass
class Position:
    """持仓快照（读穿 venue，不在本地持久化）。"""
    symbol: str
    side: str
    size: float
    entry_price: float = 0.0
    mark_price: float = 0.0
    leverage: float = 0.0
    unrealized_pnl: float = 0.0

    @property
    def is_open(self) -> bool:
        return self.size > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "side": self.side,
            "size": self.size,
            "entryPrice": self.entry_price,
            "markPrice": self.mark_price,
            "leverage": self.leverage,
            "unrealizedPnl": self.unrealized_pnl,
        }


class MonitorState(str, Enum):
    """持仓监控状态机：ARMED → WATCHING → CLOSED。"""
    ARMED = "armed"
    WATCHING = "watching"
    CLOSED = "closed"
