"""Bybit v5 REST 客户端（USDT 永续，category=linear）。

签名：`HMAC_SHA256(secret, timestamp + api_key + recv_window + payload)` 的 hex，
payload 为 GET 的排序 query string 或 POST 的原始 JSON body。
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from typing import Any, Callable
from urllib.parse import urlencode

import requests

from broker.base import VenueClient
from broker.errors import (
    AUTH_RET_CODES,
    AuthError,
    DataInsufficientError,
    TransportError,
    VenueRejection,
)
from shared.models.models import Candle, InstrumentMeta, Position
from shared.utils.logging import setup_logger

# instruments-info 缺字段时的兜底值
DEFAULT_TICK_SIZE = 0.0001
DEFAULT_MIN_ORDER_QTY = 1.0
DEFAULT_QTY_STEP = 1.0

# retCode=110043: leverage not modified
LEVERAGE_NOT_MODIFIED = 110043


class BybitClient(VenueClient):
    """对接 Bybit v5 的阻塞客户端。"""

    def __init__(
        self,
        *,
        base_url: str = "https://api.bybit.com",
        api_key: str | None = None,
        api_secret: str | None = None,
        category: str = "linear",
        recv_window: int = 5000,
        timeout_s: float = 10.0,
        orderbook_timeout_s: float = 5.0,
        session: requests.Session | None = None,
        time_fn: Callable[[], float] | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key or ""
        self.api_secret = (api_secret or "").encode()
        self.category = category
        self.recv_window = int(recv_window)
        self.timeout_s = timeout_s
        self.orderbook_timeout_s = orderbook_timeout_s
        self.session = session or requests.Session()
        self.time_fn = time_fn or time.time
        self.logger = setup_logger("bybit-client")

    # ---- signing ----

    def sign(self, timestamp: int, payload: str) -> str:
        prehash = f"{timestamp}{self.api_key}{self.recv_window}{payload}"
        return hmac.new(self.api_secret, prehash.encode(), hashlib.sha256).hexdigest()

    def _auth_headers(self, payload: str) -> dict[str, str]:
        ts = int(self.time_fn() * 1000)
        return {
            "X-BAPI-API-KEY": self.api_key,
            "X-BAPI-SIGN": self.sign(ts, payload),
            "X-BAPI-SIGN-TYPE": "2",
            "X-BAPI-TIMESTAMP": str(ts),
            "X-BAPI-RECV-WINDOW": str(self.recv_window),
        }

    # ---- transport ----

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
        signed: bool = True,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        headers: dict[str, str] = {}
        data: str | None = None
        query = ""
        if params:
            query = urlencode(sorted((k, str(v)) for k, v in params.items()))
            url = f"{url}?{query}"
        if body is not None:
            data = json.dumps(body, separators=(",", ":"))
            headers["Content-Type"] = "application/json"
        if signed:
            headers.update(self._auth_headers(data if data is not None else query))

        try:
            resp = self.session.request(
                method, url, data=data, headers=headers, timeout=timeout or self.timeout_s
            )
        except requests.RequestException as exc:
            raise TransportError(f"{method} {path} failed: {exc}") from exc

        if resp.status_code in (401, 403):
            raise AuthError(f"{method} {path} unauthorized (HTTP {resp.status_code})")
        if resp.status_code >= 400:
            raise TransportError(f"{method} {path} HTTP {resp.status_code}", status=resp.status_code)
        try:
            payload = resp.json()
        except ValueError as exc:
            raise TransportError(f"{method} {path} returned non-JSON body") from exc
        if not isinstance(payload, dict):
            raise TransportError(f"{method} {path} returned unexpected payload")

        code = int(payload.get("retCode", 0) or 0)
        if code != 0:
            msg = str(payload.get("retMsg") or "")
            if code in AUTH_RET_CODES:
                raise AuthError(f"{method} {path} auth failed: {msg}", code=code, payload=payload)
            raise VenueRejection(code, msg, payload)
        return payload

    # ---- market data ----

    def get_instrument_meta(self, symbol: str) -> InstrumentMeta:
        res = self._request(
            "GET",
            "/v5/market/instruments-info",
            params={"category": self.category, "symbol": symbol},
            signed=False,
        )
        items = (res.get("result") or {}).get("list") or []
        if not items:
            raise DataInsufficientError(f"instrument not found: {symbol}")
        info = items[0]
        lot = info.get("lotSizeFilter") or {}
        price = info.get("priceFilter") or {}
        return InstrumentMeta(
            tick_size=float(price.get("tickSize") or DEFAULT_TICK_SIZE),
            min_order_qty=float(lot.get("minOrderQty") or DEFAULT_MIN_ORDER_QTY),
            qty_step=float(lot.get("qtyStep") or DEFAULT_QTY_STEP),
        )

    def get_candles(self, symbol: str, interval: str, limit: int) -> list[Candle]:
        res = self._request(
            "GET",
            "/v5/market/kline",
            params={"category": self.category, "symbol": symbol, "interval": interval, "limit": limit},
            signed=False,
        )
        rows = (res.get("result") or {}).get("list") or []
        candles = [
            Candle(
                open_time=int(r[0]),
                open=float(r[1]),
                high=float(r[2]),
                low=float(r[3]),
                close=float(r[4]),
                volume=float(r[5]),
            )
            for r in rows
        ]
        # venue 返回新到旧
        candles.sort(key=lambda c: c.open_time)
        return candles

    def get_orderbook(self, symbol: str, depth: int = 20) -> dict[str, list]:
        res = self._request(
            "GET",
            "/v5/market/orderbook",
            params={"category": self.category, "symbol": symbol, "limit": depth},
            signed=False,
            timeout=self.orderbook_timeout_s,
        )
        book = res.get("result") or {}
        return {"bids": list(book.get("b") or []), "asks": list(book.get("a") or [])}

    # ---- account ----

    def get_wallet_balance(self, coin: str = "USDT") -> float:
        res = self._request(
            "GET",
            "/v5/account/wallet-balance",
            params={"accountType": "UNIFIED", "coin": coin},
        )
        accounts = (res.get("result") or {}).get("list") or []
        if not accounts:
            return 0.0
        for c in accounts[0].get("coin") or []:
            if c.get("coin") == coin:
                return float(c.get("walletBalance") or 0.0)
        return 0.0

    def get_position(self, symbol: str) -> Position | None:
        res = self._request(
            "GET",
            "/v5/position/list",
            params={"category": self.category, "symbol": symbol},
        )
        items = (res.get("result") or {}).get("list") or []
        if not items:
            return None
        p = items[0]
        return Position(
            symbol=str(p.get("symbol") or symbol),
            side=str(p.get("side") or ""),
            size=float(p.get("size") or 0.0),
            entry_price=float(p.get("avgPrice") or 0.0),
            mark_price=float(p.get("markPrice") or 0.0),
            leverage=float(p.get("leverage") or 0.0),
            unrealized_pnl=float(p.get("unrealisedPnl") or 0.0),
        )

    # ---- trading ----

    def place_order(self, payload: dict[str, Any]) -> dict[str, Any]:
        self.logger.info("📤 Sending order payload: %s", payload)
        res = self._request("POST", "/v5/order/create", body=payload)
        self.logger.info("✅ Order placed: %s", res.get("result"))
        return res

    def set_trading_stop(self, symbol: str, stop_loss: str) -> dict[str, Any]:
        body = {"category": self.category, "symbol": symbol, "stopLoss": stop_loss}
        return self._request("POST", "/v5/position/trading-stop", body=body)

    def set_leverage(self, symbol: str, leverage: int) -> dict[str, Any]:
        body = {
            "category": self.category,
            "symbol": symbol,
            "buyLeverage": str(leverage),
            "sellLeverage": str(leverage),
        }
        try:
            return self._request("POST", "/v5/position/set-leverage", body=body)
        except VenueRejection as exc:
            if exc.code == LEVERAGE_NOT_MODIFIED:
                self.logger.info("Leverage already %sx for %s", leverage, symbol)
                return exc.payload or {"retCode": exc.code, "retMsg": exc.message}
            raise
