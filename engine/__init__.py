"""运行引擎层（engine）。

- `BotScheduler`：入场循环（冷却 → 行情 → 信号 → 仓位 → 下单 → 派生监控）；
- `PositionMonitor`：单笔持仓的移动止损与反转离场；
- `OperatorView`：只读查询与手动操作，供 CLI / dashboard 使用。

命令行入口由仓库根目录 `main.py` 统一承载。
"""
