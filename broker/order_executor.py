"""订单执行：量化 → 构造请求 → 单次提交。

`execute_trade` 永不抛异常：传输、鉴权、拒单、参数错误都折叠成 OrderFailure，
由调度器决定是否下个周期重试（本层不自动重试，避免重复开仓）。
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Union

from broker.base import VenueClient
from broker.errors import AuthError, DataInsufficientError, TransportError, VenueRejection
from broker.instrument_cache import InstrumentMetaCache
from shared.models.models import InstrumentMeta, OrderRequest, SignalAction, normalize_side
from shared.utils.aio import call_blocking
from shared.utils.precision import format_step, round_to_step
from shared.utils.trade_logger import TradeLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderAck:
    """venue 已接受的订单。"""
    order_id: str
    request: OrderRequest
    raw: dict[str, Any] = field(default_factory=dict)
    dry_run: bool = False


@dataclass(frozen=True)
class OrderFailure:
    """下单失败。kind: transport / auth / rejected / validation / data / unexpected。"""
    kind: str
    error: str
    payload: Any = None
    code: int | None = None


OrderResult = Union[OrderAck, OrderFailure]


def build_order_request(
    side: str | SignalAction,
    symbol: str,
    qty: float,
    stop_loss: float | None,
    take_profit: float | None,
    meta: InstrumentMeta,
    *,
    reduce_only: bool = False,
    category: str = "linear",
) -> OrderRequest:
    """按合约精度量化并构造市价 IOC 订单。

    - qty：先夹到 minOrderQty，再按 qtyStep 舍入（舍入后不足再夹一次）；
    - 止损/止盈：按 tickSize 舍入；
    - side 大小写不敏感，非法值抛 ValueError。
    """
    bside = normalize_side(side)
    q = round_to_step(max(float(qty), meta.min_order_qty), meta.qty_step)
    if q < meta.min_order_qty:
        q = meta.min_order_qty
    sl = round_to_step(stop_loss, meta.tick_size) if stop_loss is not None else None
    tp = round_to_step(take_profit, meta.tick_size) if take_profit is not None else None
    return OrderRequest(
        symbol=symbol,
        side=bside,
        qty=q,
        stop_loss=sl,
        take_profit=tp,
        reduce_only=reduce_only,
        category=category,
    )


class OrderExecutor:
    """下单/平仓/改止损/设杠杆。

    Parameters
    ----------
    client:
        venue 客户端（阻塞或协程实现均可）。
    cache:
        合约精度缓存。
    trade_log:
        事件缓冲，可选。
    dry_run:
        True 时不发送任何写请求，返回本地合成的 ack。
    """

    def __init__(
        self,
        client: VenueClient,
        cache: InstrumentMetaCache,
        trade_log: TradeLog | None = None,
        dry_run: bool = True,
        category: str = "linear",
    ):
        self.client = client
        self.cache = cache
        self.trade_log = trade_log
        self.dry_run = dry_run
        self.category = category
        self.error_count = 0
        self._dry_ids = itertools.count(1)

    def _record(self, message: str, level: int = logging.INFO) -> None:
        if self.trade_log is not None:
            self.trade_log.record(message, level)
        else:
            logger.log(level, message)

    async def _submit(self, req: OrderRequest) -> OrderResult:
        payload = req.to_payload()
        if self.dry_run:
            oid = f"dry-{next(self._dry_ids)}"
            self._record(f"🔧 DRY: {req.side.value} {req.qty} {req.symbol} reduceOnly={req.reduce_only} -> {oid}")
            return OrderAck(order_id=oid, request=req, raw={"dry_run": True, "payload": payload}, dry_run=True)

        try:
            raw = await call_blocking(self.client.place_order, payload)
        except AuthError as exc:
            self.error_count += 1
            self._record(f"❌ Order auth failed: {exc}", logging.ERROR)
            return OrderFailure(kind="auth", error=str(exc), payload=exc.payload, code=exc.code)
        except VenueRejection as exc:
            self.error_count += 1
            self._record(f"❌ Order rejected: {exc}", logging.ERROR)
            return OrderFailure(kind="rejected", error=exc.message, payload=exc.payload, code=exc.code)
        except TransportError as exc:
            self.error_count += 1
            self._record(f"❌ Order transport error: {exc}", logging.ERROR)
            return OrderFailure(kind="transport", error=str(exc))
        except Exception as exc:
            # 未归类的异常（如畸形响应）同样转成失败结果，CancelledError 不在此列
            self.error_count += 1
            self._record(f"❌ Order failed unexpectedly: {exc!r}", logging.ERROR)
            return OrderFailure(kind="unexpected", error=str(exc) or repr(exc))

        oid = str(((raw or {}).get("result") or {}).get("orderId") or "")
        self._record(f"✅ Order placed: {req.side.value} {req.qty} {req.symbol} id={oid}")
        return OrderAck(order_id=oid, request=req, raw=raw or {})

    async def execute_trade(
        self,
        side: str | SignalAction,
        symbol: str,
        qty: float,
        stop_loss: float | None,
        take_profit: float | None,
    ) -> OrderResult:
        """开仓：量化后提交一次市价 IOC 单，附带止损/止盈。"""
        try:
            meta = await call_blocking(self.cache.get, symbol)
            req = build_order_request(
                side, symbol, qty, stop_loss, take_profit, meta, category=self.category
            )
        except ValueError as exc:
            self.error_count += 1
            self._record(f"❌ Invalid order: {exc}", logging.ERROR)
            return OrderFailure(kind="validation", error=str(exc))
        except DataInsufficientError as exc:
            self.error_count += 1
            self._record(f"❌ Instrument meta unavailable: {exc}", logging.ERROR)
            return OrderFailure(kind="data", error=str(exc))
        except AuthError as exc:
            self.error_count += 1
            return OrderFailure(kind="auth", error=str(exc), payload=exc.payload, code=exc.code)
        except VenueRejection as exc:
            self.error_count += 1
            return OrderFailure(kind="rejected", error=exc.message, payload=exc.payload, code=exc.code)
        except TransportError as exc:
            self.error_count += 1
            return OrderFailure(kind="transport", error=str(exc))
        except Exception as exc:
            self.error_count += 1
            self._record(f"❌ Order preparation failed: {exc!r}", logging.ERROR)
            return OrderFailure(kind="unexpected", error=str(exc) or repr(exc))

        return await self._submit(req)

    async def close_position(self, symbol: str) -> OrderResult | None:
        """按当前持仓反向提交 reduce-only 市价单；无持仓返回 None。

        读持仓失败会抛出 venue 异常，由调用方（监控循环）记录后下次重试。
        """
        pos = await call_blocking(self.client.get_position, symbol)
        if pos is None or not pos.is_open:
            self._record(f"ℹ️ No open position for {symbol}, nothing to close")
            return None

        side = normalize_side(pos.side).opposite
        req = OrderRequest(
            symbol=symbol,
            side=side,
            qty=pos.size,
            reduce_only=True,
            category=self.category,
        )
        self._record(f"🔻 Closing {pos.side} {pos.size} {symbol}")
        return await self._submit(req)

    async def update_stop_loss(self, symbol: str, stop_loss: float) -> bool:
        """修改持仓止损（按 tickSize 量化）。成功返回 True；失败记录后返回 False。"""
        try:
            meta = await call_blocking(self.cache.get, symbol)
            sl = round_to_step(stop_loss, meta.tick_size)
            if self.dry_run:
                self._record(f"🔧 DRY: trailing stop {symbol} -> {sl}")
                return True
            await call_blocking(self.client.set_trading_stop, symbol, format_step(sl, meta.tick_size))
        except (TransportError, AuthError, VenueRejection, DataInsufficientError, ValueError) as exc:
            self.error_count += 1
            self._record(f"⚠️ Stop-loss update failed for {symbol}: {exc}", logging.WARNING)
            return False
        self._record(f"🔁 Trailing stop updated {symbol} -> {sl}")
        return True

    async def set_leverage(self, symbol: str, leverage: int) -> bool:
        """设置杠杆；AuthError 向上抛（启动阶段致命），其它失败返回 False。"""
        if self.dry_run:
            self._record(f"🔧 DRY: leverage {symbol} {leverage}x (not sent)")
            return True
        try:
            await call_blocking(self.client.set_leverage, symbol, leverage)
        except (TransportError, VenueRejection) as exc:
            self._record(f"⚠️ Set leverage failed for {symbol}: {exc}", logging.WARNING)
            return False
        self._record(f"⚙️ Leverage set to {leverage}x for {symbol}")
        return True
