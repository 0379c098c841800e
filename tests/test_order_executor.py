from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from broker.errors import AuthError, TransportError, VenueRejection
from broker.instrument_cache import InstrumentMetaCache
from broker.order_executor import OrderAck, OrderExecutor, OrderFailure, build_order_request
from shared.models.models import InstrumentMeta, Position, SignalAction
from shared.utils.trade_logger import TradeLog
from tests.fakes import FakeVenue

META = InstrumentMeta(tick_size=0.01, min_order_qty=0.01, qty_step=0.01)


def _executor(venue: FakeVenue, dry_run: bool = False) -> OrderExecutor:
    return OrderExecutor(venue, InstrumentMetaCache(venue), trade_log=TradeLog(), dry_run=dry_run)


def test_build_order_request_quantizes():
    req = build_order_request("buy", "ETHUSDT", 0.12345, 1999.987, 2030.004, META)
    assert req.side is SignalAction.BUY
    assert req.qty == 0.12
    assert req.stop_loss == 1999.99
    assert req.take_profit == 2030.0
    payload = req.to_payload()
    assert payload == {
        "category": "linear",
        "symbol": "ETHUSDT",
        "side": "Buy",
        "orderType": "Market",
        "qty": "0.12",
        "timeInForce": "IOC",
        "takeProfit": "2030",
        "stopLoss": "1999.99",
        "reduceOnly": False,
    }


def test_build_order_request_clamps_to_min_and_normalizes_side():
    meta = InstrumentMeta(tick_size=0.0001, min_order_qty=1, qty_step=1)
    req = build_order_request("SELL", "XRPUSDT", 0.2, 0.61234, 0.59, meta)
    assert req.side is SignalAction.SELL
    assert req.qty == 1
    assert req.to_payload()["qty"] == "1"
    with pytest.raises(ValueError):
        build_order_request("long", "XRPUSDT", 1, None, None, meta)


def test_payload_has_no_scientific_notation():
    meta = InstrumentMeta(tick_size=0.00001, min_order_qty=0.00001, qty_step=0.00001)
    req = build_order_request("Buy", "PEPEUSDT", 0.00002, 0.00001, 0.00003, meta)
    assert req.to_payload()["qty"] == "0.00002"


@pytest.mark.asyncio
async def test_execute_trade_submits_once():
    venue = FakeVenue(meta=META)
    ex = _executor(venue)
    result = await ex.execute_trade("Buy", "ETHUSDT", 0.5, 1990.0, 2020.0)

    assert isinstance(result, OrderAck)
    assert result.order_id == "oid-1"
    assert len(venue.orders) == 1
    assert venue.orders[0]["reduceOnly"] is False
    assert venue.orders[0]["stopLoss"] == "1990"


@pytest.mark.asyncio
async def test_execute_trade_dry_run_sends_nothing():
    venue = FakeVenue(meta=META)
    ex = _executor(venue, dry_run=True)
    result = await ex.execute_trade("Sell", "ETHUSDT", 0.5, 2010.0, 1990.0)

    assert isinstance(result, OrderAck)
    assert result.dry_run
    assert result.order_id.startswith("dry-")
    assert venue.orders == []
    assert any("DRY" in line for line in ex.trade_log.get_logs())


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "exc,kind",
    [
        (TransportError("timeout"), "transport"),
        (AuthError("bad sign", code=10004), "auth"),
        (VenueRejection(110007, "insufficient balance", {"retCode": 110007}), "rejected"),
    ],
)
async def test_execute_trade_failures_are_values(exc, kind):
    venue = FakeVenue(meta=META)
    venue.errors["place_order"] = exc
    ex = _executor(venue)
    result = await ex.execute_trade("Buy", "ETHUSDT", 0.5, 1990.0, 2020.0)

    assert isinstance(result, OrderFailure)
    assert result.kind == kind
    assert ex.error_count == 1


@pytest.mark.asyncio
async def test_execute_trade_rejection_keeps_payload():
    venue = FakeVenue(meta=META)
    venue.errors["place_order"] = VenueRejection(110007, "insufficient balance", {"retCode": 110007})
    result = await _executor(venue).execute_trade("Buy", "ETHUSDT", 0.5, 1990.0, 2020.0)
    assert result.payload == {"retCode": 110007}
    assert result.code == 110007


@pytest.mark.asyncio
async def test_execute_trade_invalid_side_and_meta_failure():
    venue = FakeVenue(meta=META)
    ex = _executor(venue)
    bad_side = await ex.execute_trade("Hold", "ETHUSDT", 0.5, 1.0, 2.0)
    assert isinstance(bad_side, OrderFailure) and bad_side.kind == "validation"

    venue2 = FakeVenue()
    venue2.errors["get_instrument_meta"] = TransportError("down")
    failed = await _executor(venue2).execute_trade("Buy", "ETHUSDT", 0.5, 1.0, 2.0)
    assert isinstance(failed, OrderFailure) and failed.kind == "transport"
    assert venue2.orders == []


@pytest.mark.asyncio
async def test_close_position_reduce_only_opposite_side():
    venue = FakeVenue(meta=META, position=Position(symbol="ETHUSDT", side="Buy", size=0.75))
    result = await _executor(venue).close_position("ETHUSDT")

    assert isinstance(result, OrderAck)
    order = venue.orders[0]
    assert order["side"] == "Sell"
    assert order["reduceOnly"] is True
    assert order["qty"] == "0.75"
    assert order["timeInForce"] == "IOC"
    assert "stopLoss" not in order


@pytest.mark.asyncio
async def test_close_position_without_position():
    venue = FakeVenue(meta=META, position=Position(symbol="ETHUSDT", side="", size=0.0))
    assert await _executor(venue).close_position("ETHUSDT") is None
    assert venue.orders == []


@pytest.mark.asyncio
async def test_update_stop_loss_quantized_and_failure_reported():
    venue = FakeVenue(meta=META)
    ex = _executor(venue)
    assert await ex.update_stop_loss("ETHUSDT", 2001.2345) is True
    assert venue.stops == [("ETHUSDT", "2001.23")]

    venue.errors["set_trading_stop"] = VenueRejection(34040, "not modified")
    assert await ex.update_stop_loss("ETHUSDT", 2002.0) is False


@pytest.mark.asyncio
async def test_set_leverage_auth_is_fatal():
    venue = FakeVenue(meta=META)
    ex = _executor(venue)
    assert await ex.set_leverage("ETHUSDT", 150) is True
    assert venue.leverage_calls == [("ETHUSDT", 150)]

    venue.errors["set_leverage"] = TransportError("timeout")
    assert await ex.set_leverage("ETHUSDT", 150) is False

    venue.errors["set_leverage"] = AuthError("bad key", code=10003)
    with pytest.raises(AuthError):
        await ex.set_leverage("ETHUSDT", 150)


@pytest.mark.asyncio
async def test_coroutine_client_is_awaited_directly():
    client = MagicMock()
    client.place_order = AsyncMock(return_value={"retCode": 0, "result": {"orderId": "async-1"}})
    cache = MagicMock()
    cache.get.return_value = META

    ex = OrderExecutor(client, cache, dry_run=False)
    res = await ex.execute_trade("sell", "ETHUSDT", 0.5, 2010.0, 1990.0)

    assert isinstance(res, OrderAck)
    assert res.order_id == "async-1"
    client.place_order.assert_awaited_once()
    assert client.place_order.await_args.args[0]["side"] == "Sell"
    cache.get.assert_called_once_with("ETHUSDT")


@pytest.mark.asyncio
async def test_unmapped_client_error_becomes_failure():
    venue = FakeVenue(meta=META)

    def _malformed(payload):
        raise ValueError("invalid literal for int() with base 10: 'oops'")

    venue.place_order = _malformed
    ex = _executor(venue)
    res = await ex.execute_trade("Buy", "ETHUSDT", 1.0, 99.0, 101.0)

    assert isinstance(res, OrderFailure)
    assert res.kind == "unexpected"
    assert "invalid literal" in res.error
    assert ex.error_count == 1


@pytest.mark.asyncio
async def test_unmapped_meta_error_becomes_failure():
    client = MagicMock()
    cache = MagicMock()
    cache.get.side_effect = KeyError("result")

    ex = OrderExecutor(client, cache, dry_run=False)
    res = await ex.execute_trade("sell", "ETHUSDT", 0.5, 2010.0, 1990.0)

    assert isinstance(res, OrderFailure)
    assert res.kind == "unexpected"
    client.place_order.assert_not_called()
