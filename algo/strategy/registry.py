"""策略注册表：字符串 -> SignalStrategy 实现。"""

from __future__ import annotations

import inspect
from typing import Any, Mapping

from algo.strategy.base import SignalStrategy
from algo.strategy.ema_vwap import EmaVwapStrategy
from algo.strategy.keltner import KeltnerStrategy
from shared.config.schema import StrategyConfig

_REGISTRY: dict[str, type[SignalStrategy]] = {}


def register_strategy(name: str, cls: type[SignalStrategy]) -> None:
    _REGISTRY[name] = cls


def get_strategy_cls(name: str) -> type[SignalStrategy]:
    if name not in _REGISTRY:
        raise ValueError(f"Unknown strategy: {name}")
    return _REGISTRY[name]


def _filter_init_kwargs(cls: type, params: Mapping[str, Any]) -> dict[str, Any]:
    """过滤出 __init__ 支持的参数，避免配置里多字段导致报错。"""
    try:
        sig = inspect.signature(cls.__init__)
    except (TypeError, ValueError):
        return dict(params)

    if any(p.kind == inspect.Parameter.VAR_KEYWORD for p in sig.parameters.values()):
        return dict(params)

    allowed = {name for name in sig.parameters.keys() if name != "self"}
    return {k: v for k, v in params.items() if k in allowed}


def build_strategy(cfg: StrategyConfig | Mapping[str, Any] | None, **overrides: Any) -> SignalStrategy:
    """从配置构建策略实例。

    支持：
    - StrategyConfig（来自 shared.config.schema）
    - dict（含 type + 参数字段）
    - None：默认 ema_vwap

    overrides 用于注入运行期对象（如 rng / now_fn），优先于配置参数。
    """
    if cfg is None:
        name, params = "ema_vwap", {}
    elif isinstance(cfg, StrategyConfig):
        name = str(cfg.type)
        params = dict(cfg.params or {})
    elif isinstance(cfg, Mapping):
        name = str(cfg.get("type") or "ema_vwap")
        params = dict(cfg.get("params") or {})
        for k, v in cfg.items():
            if k not in {"type", "params"}:
                params.setdefault(k, v)
    else:
        raise ValueError("strategy cfg must be StrategyConfig or dict")

    params.update(overrides)
    cls = get_strategy_cls(name)
    kwargs = _filter_init_kwargs(cls, params)
    try:
        strat = cls(**kwargs)
    except TypeError as exc:
        raise ValueError(f"Invalid params for strategy '{name}': {params}") from exc
    strat.strategy_id = name
    return strat


register_strategy("ema_vwap", EmaVwapStrategy)
register_strategy("keltner", KeltnerStrategy)
