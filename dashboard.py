"""终端 Dashboard（rich）：调度器在后台运行，界面只读 OperatorView。"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from datetime import datetime
from typing import Any

from rich import box
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from engine.runner import BotComponents


class DashboardLogHandler(logging.Handler):
    """把日志重定向到 Dashboard 的 deque。"""

    def __init__(self, log_deque: deque):
        super().__init__()
        self.log_deque = log_deque

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.log_deque.append(self.format(record))
        except Exception:
            self.handleError(record)


class BotDashboard:
    def __init__(self, components: BotComponents, refresh_s: float = 2.0):
        self.components = components
        self.view = components.view
        self.scheduler = components.scheduler
        self.symbol = components.cfg.symbol
        self.refresh_s = refresh_s
        self.state: dict[str, Any] = {
            "pnl": {},
            "signal": None,
            "last_update": 0.0,
            "logs": deque(maxlen=12),
        }
        self._setup_logging()

    def _setup_logging(self) -> None:
        root_logger = logging.getLogger()
        for h in root_logger.handlers[:]:
            root_logger.removeHandler(h)
        handler = DashboardLogHandler(self.state["logs"])
        handler.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s: %(message)s", datefmt="%H:%M:%S"))
        root_logger.addHandler(handler)
        root_logger.setLevel(logging.INFO)
        # setup_logger 创建的具名 logger 自带 handler，统一改为向 root 传播
        for name in list(logging.root.manager.loggerDict):
            lg = logging.getLogger(name)
            if lg.handlers:
                lg.handlers.clear()
                lg.propagate = True

    async def refresh(self) -> None:
        """拉取一次 PnL；信号取调度器最近一次的结果。"""
        pnl = await self.view.pnl(self.symbol)
        self.state["pnl"] = pnl
        sig = self.scheduler.last_signal
        self.state["signal"] = sig.to_dict() if sig is not None else None
        self.state["last_update"] = time.time()

    async def fetch_background_data(self) -> None:
        while True:
            try:
                await self.refresh()
            except Exception as e:
                self.state["logs"].append(f"[Error] Fetch Data: {e}")
            await asyncio.sleep(self.refresh_s)

    def generate_header(self) -> Panel:
        pnl = float(self.state["pnl"].get("pnl", 0.0) or 0.0)
        color = "green" if pnl >= 0 else "red"
        sign = "+" if pnl >= 0 else "-"
        mode = "🔴 LIVE" if self.components.mode.value == "live" else "🟢 DRY-RUN"

        remaining = self.scheduler.state.remaining()
        cooldown = f"⏳ cooldown {remaining:.0f}s" if remaining > 0 else "✅ ready"
        last_upd = self.state["last_update"]
        hb_text = datetime.fromtimestamp(last_upd).strftime("%H:%M:%S") if last_upd > 0 else "N/A"

        grid = Table.grid(expand=True)
        grid.add_column(justify="center", ratio=1)
        grid.add_column(justify="center", ratio=1)
        grid.add_column(justify="center", ratio=1)
        grid.add_row(
            f"[bold white]⚡ PerpScalper[/bold white] | {mode} | {self.symbol}",
            f"[bold yellow]{cooldown}[/bold yellow]",
            f"[{color}]📈 uPnL: {sign}{abs(pnl):.4f}[/{color}] \n[dim]🕒 {hb_text}[/dim]",
        )
        return Panel(grid, style="on blue")

    def generate_position_panel(self) -> Panel:
        table = Table(box=box.SIMPLE_HEAD, expand=True)
        table.add_column("Field", style="cyan bold")
        table.add_column("Value", justify="right")

        pos = self.state["pnl"].get("position")
        if pos:
            for key in ("side", "size", "entryPrice", "markPrice", "leverage", "unrealizedPnl"):
                table.add_row(key, str(pos.get(key)))
        elif "error" in self.state["pnl"]:
            table.add_row("error", str(self.state["pnl"]["error"]))
        else:
            table.add_row("position", "flat")

        for m in self.scheduler.active_monitors:
            table.add_row(f"monitor {m.side.value}", f"stop={m.trailing_stop:.6f} [{m.state.value}]")
        return Panel(table, title="💼 Position")

    def generate_signal_panel(self) -> Panel:
        table = Table(box=box.SIMPLE_HEAD, expand=True)
        table.add_column("Signal", style="bold white")
        table.add_column("Value", justify="right", style="cyan")
        sig = self.state["signal"]
        if sig:
            for key in ("signal", "entry", "stopLoss", "takeProfit", "confidence", "reason"):
                table.add_row(key, str(sig.get(key)))
        else:
            table.add_row("signal", "n/a")
        outcome = self.scheduler.last_outcome
        table.add_row("last tick", outcome.value if outcome else "n/a")
        return Panel(table, title="📡 Strategy")

    def generate_logs_panel(self) -> Panel:
        lines = list(self.state["logs"]) or self.view.logs()["logs"][-10:]
        return Panel(Text("\n".join(lines), style="dim white"), title="📜 System Logs", box=box.SIMPLE)

    def make_layout(self) -> Layout:
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=4),
            Layout(name="body", ratio=1),
            Layout(name="footer", size=14),
        )
        layout["body"].split_row(
            Layout(name="position", ratio=5),
            Layout(name="signal", ratio=5),
        )
        layout["header"].update(self.generate_header())
        layout["position"].update(self.generate_position_panel())
        layout["signal"].update(self.generate_signal_panel())
        layout["footer"].update(self.generate_logs_panel())
        return layout

    async def run(self) -> None:
        bot_task = asyncio.create_task(self.scheduler.run())
        bg_task = asyncio.create_task(self.fetch_background_data())
        try:
            with Live(self.make_layout(), refresh_per_second=4, screen=True) as live:
                while not bot_task.done():
                    live.update(self.make_layout())
                    await asyncio.sleep(0.25)
        finally:
            bg_task.cancel()
            await self.scheduler.stop()
            if not bot_task.done():
                bot_task.cancel()
            await asyncio.gather(bot_task, bg_task, return_exceptions=True)
        # 调度器启动失败（如鉴权错误）时把原异常抛给调用方
        if not bot_task.cancelled() and bot_task.exception() is not None:
            raise bot_task.exception()
