"""精度与步进工具（用于 qty/price 的量化与展示稳定）。"""

from __future__ import annotations

from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation


def decimals_from_step(step: float) -> int:
    """根据 step（通常是 10 的负次幂）推导小数位数。

    `0.01 -> 2`，`0.5 -> 1`，`1 -> 0`，`1e-05 -> 5`。
    """
    try:
        d = Decimal(str(step)).normalize()
    except InvalidOperation:
        return 0
    if d == 0:
        return 0
    exp = d.as_tuple().exponent
    return max(0, -int(exp))


def snap_to_decimals(value: float, decimals: int) -> float:
    """把 float 钉到指定小数位，避免 repr 出现 0.30000000000004 这类噪声。"""
    if decimals < 0:
        return float(value)
    return float(f"{float(value):.{decimals}f}")


def round_to_step(value: float, step: float) -> float:
    """把 value 舍入到最接近的 step 整数倍。

    Parameters
    ----------
    value:
        原始数量或价格。
    step:
        交易所步进（qtyStep / tickSize），必须 > 0。

    Returns
    -------
    float
        step 的整数倍，小数位数与 step 一致。恰好落在两个倍数中点时
        使用银行家舍入（ROUND_HALF_EVEN），例如 `round_to_step(1.0005, 0.001) == 1.0`。

    Raises
    ------
    ValueError
        step <= 0。
    """
    if step is None or float(step) <= 0:
        raise ValueError(f"step must be > 0, got {step!r}")

    v = Decimal(str(value))
    sd = Decimal(str(step))
    n = (v / sd).to_integral_value(rounding=ROUND_HALF_EVEN)
    out = n * sd
    decs = decimals_from_step(float(step))
    out = out.quantize(Decimal(1).scaleb(-decs)) if decs > 0 else out.quantize(Decimal(1))
    return snap_to_decimals(float(out), decs)


def format_step(value: float, step: float) -> str:
    """按 step 的小数位数把数值渲染为字符串（用于下单 payload）。"""
    decs = decimals_from_step(step)
    return f"{float(value):.{decs}f}"
