from __future__ import annotations

import pytest

from broker.errors import TransportError
from broker.instrument_cache import InstrumentMetaCache
from shared.models.models import InstrumentMeta
from tests.fakes import FakeVenue


def test_fetches_once_then_reuses():
    venue = FakeVenue(meta=InstrumentMeta(tick_size=0.1, min_order_qty=1, qty_step=1))
    cache = InstrumentMetaCache(venue)

    first = cache.get("ETHUSDT")
    second = cache.get("ETHUSDT")
    assert first is second
    assert venue.calls["get_instrument_meta"] == 1
    assert "ETHUSDT" in cache


def test_failure_is_not_cached():
    venue = FakeVenue()
    venue.errors["get_instrument_meta"] = TransportError("timeout")
    cache = InstrumentMetaCache(venue)

    with pytest.raises(TransportError):
        cache.get("ETHUSDT")
    assert "ETHUSDT" not in cache

    assert cache.get("ETHUSDT") == venue.meta
    assert venue.calls["get_instrument_meta"] == 2


def test_invalidate():
    venue = FakeVenue()
    cache = InstrumentMetaCache(venue)
    cache.get("ETHUSDT")
    cache.get("BTCUSDT")
    cache.invalidate("ETHUSDT")
    assert "ETHUSDT" not in cache and "BTCUSDT" in cache
    cache.invalidate()
    assert "BTCUSDT" not in cache
