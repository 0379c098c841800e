"""订单簿失衡（Order Book Imbalance）。"""

from __future__ import annotations

from typing import Any, Sequence

Level = Sequence[Any]


def _side_volume(levels: Sequence[Level] | None) -> float:
    total = 0.0
    for level in levels or []:
        # level = [price, size]，venue 以字符串返回
        total += float(level[1])
    return total


def order_book_imbalance(bids: Sequence[Level] | None, asks: Sequence[Level] | None) -> float:
    """(bidVol - askVol) / (bidVol + askVol)，夹在 [-1, 1]；双边为空返回 0.0。"""
    bid_vol = _side_volume(bids)
    ask_vol = _side_volume(asks)
    total = bid_vol + ask_vol
    if total <= 0:
        return 0.0
    obi = (bid_vol - ask_vol) / total
    return max(-1.0, min(1.0, obi))
