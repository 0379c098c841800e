"""风险预算仓位：按止损距离反推数量，再按合约精度量化。"""

from __future__ import annotations

from shared.models.models import InstrumentMeta
from shared.utils.logging import setup_logger
from shared.utils.precision import round_to_step

_LOGGER = setup_logger("sizer")


def compute_qty(
    balance: float,
    entry_price: float,
    stop_loss_price: float,
    risk_percent: float,
    meta: InstrumentMeta,
    confidence: float = 1.0,
) -> float:
    """计算下单数量。

    Parameters
    ----------
    balance:
        账户可用余额（USDT）。
    entry_price / stop_loss_price:
        入场价与止损价，二者距离即单位风险。
    risk_percent:
        单笔风险占余额的百分比（0.5 表示 0.5%）。
    meta:
        合约精度规则。
    confidence:
        信号置信度；> 1 时按比例放大数量，<= 1 不缩小。

    Returns
    -------
    float
        >= minOrderQty 且为 qtyStep 的整数倍。
        单位风险为 0 时直接返回 minOrderQty。
    """
    risk_amount = float(balance) * float(risk_percent) / 100.0
    risk_per_unit = abs(float(entry_price) - float(stop_loss_price))

    if risk_per_unit == 0:
        _LOGGER.warning("⚠️ zero risk per unit (entry == stop), falling back to minOrderQty=%s", meta.min_order_qty)
        return meta.min_order_qty

    qty = risk_amount / risk_per_unit
    if qty < meta.min_order_qty:
        qty = meta.min_order_qty
    if confidence > 1:
        qty *= confidence

    qty = round_to_step(qty, meta.qty_step)
    # 舍入后可能低于最小下单量，最终再夹一次
    if qty < meta.min_order_qty:
        qty = meta.min_order_qty

    _LOGGER.debug(
        "sized qty=%s balance=%.4f risk=%.4f rpu=%.6f conf=%.3f",
        qty, balance, risk_amount, risk_per_unit, confidence,
    )
    return qty
