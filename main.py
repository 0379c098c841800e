"""PerpScalper 统一命令行入口。

通过子命令驱动不同任务：

- `run`：入场调度主循环（dry-run/live 由配置决定）。
- `signal`：按当前行情预览一次信号，不下单。
- `candles`：K 线 + 指标快照。
- `pnl`：当前持仓与未实现盈亏。
- `trade`：手动下单（走同一套量化与执行逻辑）。
- `dashboard`：rich 终端面板 + 后台调度循环。
"""

from __future__ import annotations

import argparse
import asyncio
import json
from dataclasses import dataclass
from typing import Any

from engine.runner import build_components, run_bot
from shared.config.config_loader import load_config
from shared.utils.logging import configure_root


@dataclass
class CliArgs:
    """命令行参数结构。"""
    config: str
    task: str
    symbol: str | None = None
    max_ticks: int | None = None
    limit: int = 200
    side: str | None = None
    qty: float | None = None
    stop_loss: float | None = None
    take_profit: float | None = None


def build_parser() -> argparse.ArgumentParser:
    """构建 CLI 参数解析器。"""
    parser = argparse.ArgumentParser(prog="perpscalper", description="PerpScalper 统一入口")

    def _add_config_arg(p: argparse.ArgumentParser, *, default: Any) -> None:
        p.add_argument(
            "--config",
            default=default,
            help="配置文件路径 (默认: config/config.yml)",
        )

    def _add_symbol_arg(p: argparse.ArgumentParser) -> None:
        p.add_argument("--symbol", default=None, help="交易对（默认取配置 symbol）")

    # 允许 `main.py --config ... run`（全局）与 `main.py run --config ...`（子命令）
    _add_config_arg(parser, default="config/config.yml")
    sub = parser.add_subparsers(dest="task")

    p_run = sub.add_parser("run", help="入场调度主循环")
    _add_config_arg(p_run, default=argparse.SUPPRESS)
    p_run.add_argument("--max-ticks", type=int, default=None, help="跑多少个 tick 后退出")

    p_signal = sub.add_parser("signal", help="信号预览（不下单）")
    _add_config_arg(p_signal, default=argparse.SUPPRESS)
    _add_symbol_arg(p_signal)

    p_candles = sub.add_parser("candles", help="K 线与指标快照")
    _add_config_arg(p_candles, default=argparse.SUPPRESS)
    _add_symbol_arg(p_candles)
    p_candles.add_argument("--limit", type=int, default=200)

    p_pnl = sub.add_parser("pnl", help="持仓与未实现盈亏")
    _add_config_arg(p_pnl, default=argparse.SUPPRESS)
    _add_symbol_arg(p_pnl)

    p_trade = sub.add_parser("trade", help="手动下单")
    _add_config_arg(p_trade, default=argparse.SUPPRESS)
    _add_symbol_arg(p_trade)
    p_trade.add_argument("--side", required=True, choices=["buy", "sell", "Buy", "Sell"])
    p_trade.add_argument("--qty", type=float, required=True)
    p_trade.add_argument("--sl", dest="stop_loss", type=float, default=None)
    p_trade.add_argument("--tp", dest="take_profit", type=float, default=None)

    p_dash = sub.add_parser("dashboard", help="rich 终端面板")
    _add_config_arg(p_dash, default=argparse.SUPPRESS)

    return parser


def parse_args(argv: list[str] | None = None) -> CliArgs:
    parser = build_parser()
    ns = parser.parse_args(argv)
    return CliArgs(
        config=str(getattr(ns, "config", "config/config.yml")),
        task=ns.task or "run",
        symbol=getattr(ns, "symbol", None),
        max_ticks=getattr(ns, "max_ticks", None),
        limit=int(getattr(ns, "limit", 200)),
        side=getattr(ns, "side", None),
        qty=getattr(ns, "qty", None),
        stop_loss=getattr(ns, "stop_loss", None),
        take_profit=getattr(ns, "take_profit", None),
    )


async def _dispatch(args: CliArgs) -> Any:
    cfg = load_config(args.config)
    configure_root(cfg.logging.level)
    components = build_components(cfg)
    view = components.view
    symbol = args.symbol or cfg.symbol

    if args.task == "run":
        return await run_bot(components, max_ticks=args.max_ticks)
    if args.task == "signal":
        return await view.strategy_preview(symbol)
    if args.task == "candles":
        return await view.candles(symbol, limit=args.limit)
    if args.task == "pnl":
        return await view.pnl(symbol)
    if args.task == "trade":
        return await view.manual_trade(args.side, symbol, args.qty, args.stop_loss, args.take_profit)
    if args.task == "dashboard":
        from dashboard import BotDashboard

        await BotDashboard(components).run()
        return None
    raise ValueError(f"Unknown task: {args.task}")


def main(argv: list[str] | None = None) -> Any:
    """程序主入口；返回子命令结果（dict），并以 JSON 打印。"""
    args = parse_args(argv)
    try:
        result = asyncio.run(_dispatch(args))
    except KeyboardInterrupt:
        return None
    if result is not None:
        print(json.dumps(result, indent=2, ensure_ascii=False, default=str))
    return result


if __name__ == "__main__":
    main()
