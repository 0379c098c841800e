"""配置架构定义（Pydantic Schema）。

目标：
- 让配置成为强类型的边界协议；
- 启动阶段尽早失败，避免 typo/类型错误在实盘中隐蔽爆炸；
- 业务代码只读 AppConfig 字段，不做深层字典索引。
"""

from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ExchangeConfig(BaseModel):
    """交易所配置（Bybit v5 REST）。"""
    name: str = "bybit"
    base_url: str = "https://api.bybit.com"
    category: str = "linear"
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    recv_window: int = Field(default=5000, gt=0)
    timeout_s: float = Field(default=10.0, gt=0)
    orderbook_timeout_s: float = Field(default=5.0, gt=0)
    allow_live: bool = False
    # dry-run 且未配置密钥时使用的纸面余额
    paper_balance: float = Field(default=1000.0, gt=0)

    model_config = ConfigDict(extra="forbid")


class StrategyConfig(BaseModel):
    """策略配置（type + params）。

    config 中 `strategy:` 下的扁平字段会被自动收进 `params`，
    既方便书写，又保持 schema 严格（forbid extra keys）。
    """
    type: str = "ema_vwap"
    params: Dict[str, Any] = Field(default_factory=dict)
    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="before")
    @classmethod
    def _pack_flat_params(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        if "params" in data and isinstance(data.get("params"), dict) and set(data.keys()) <= {"type", "params"}:
            return data
        strat_type = data.get("type", "ema_vwap")
        params = {k: v for k, v in data.items() if k not in {"type", "params"}}
        existing = data.get("params")
        if isinstance(existing, dict):
            params = {**params, **existing}
        return {"type": strat_type, "params": params}


class RiskConfig(BaseModel):
    """风控配置。"""
    risk_per_trade_pct: float = Field(default=0.5, gt=0, le=100)
    leverage: int = Field(default=150, ge=1)
    model_config = ConfigDict(extra="forbid")


class SchedulerConfig(BaseModel):
    """调度配置（入场循环）。"""
    interval: str = "1"
    candle_limit: int = Field(default=50, gt=0)
    min_candles: int = Field(default=50, gt=0)
    tick_interval_s: float = Field(default=10.0, gt=0)
    cooldown_s: float = Field(default=60.0, ge=0)
    orderbook_depth: int = Field(default=20, gt=0)
    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _check_limits(self) -> "SchedulerConfig":
        if self.min_candles > self.candle_limit:
            raise ValueError("scheduler.min_candles must be <= scheduler.candle_limit")
        return self


class MonitorConfig(BaseModel):
    """持仓监控配置（移动止损 + 反转离场）。"""
    interval_s: float = Field(default=60.0, gt=0)
    candle_limit: int = Field(default=50, gt=0)
    fast: int = Field(default=9, gt=0)
    slow: int = Field(default=21, gt=0)
    initial_stop_pct: float = Field(default=0.003, ge=0)
    activation_pct: float = Field(default=0.002, ge=0)
    trail_pct: float = Field(default=0.002, ge=0)
    model_config = ConfigDict(extra="forbid")


class LoggingConfig(BaseModel):
    level: str = "INFO"
    buffer_size: int = Field(default=200, gt=0)
    model_config = ConfigDict(extra="forbid")

    @field_validator("level")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.upper()


class AppConfig(BaseModel):
    """应用总配置。"""
    mode: Literal["dry-run", "live"] = "dry-run"
    symbol: str = "ETHUSDT"
    exchange: ExchangeConfig = Field(default_factory=ExchangeConfig)
    strategy: StrategyConfig = Field(default_factory=StrategyConfig)
    risk: RiskConfig = Field(default_factory=RiskConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="before")
    @classmethod
    def _normalize_mode(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("mode"), str):
            data = dict(data)
            data["mode"] = data["mode"].replace("_", "-").lower()
        return data

    @model_validator(mode="after")
    def _check_live(self) -> "AppConfig":
        if self.mode == "live":
            if not self.exchange.allow_live:
                raise ValueError("mode=live requires exchange.allow_live=true")
            if not self.exchange.api_key or not self.exchange.api_secret:
                raise ValueError("mode=live requires exchange.api_key and exchange.api_secret")
        return self

    @property
    def dry_run(self) -> bool:
        return self.mode != "live"
