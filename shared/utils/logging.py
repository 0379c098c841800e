"""日志工具：统一格式的 stream logger。"""

from __future__ import annotations

import logging

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
_MANAGED: set[str] = set()


def setup_logger(name: str = "perpscalper", level: int | str = logging.INFO) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(level)
    # 重复调用不叠加 handler
    if not logger.handlers:
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(ch)
        logger.propagate = False
        _MANAGED.add(name)
    return logger


def configure_root(level: int | str = logging.INFO) -> None:
    """CLI 入口使用：root logger 统一格式与级别，setup_logger 创建的 logger 改为向 root 传播。"""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logging.basicConfig(level=level, format=_FORMAT)
    for name in _MANAGED:
        lg = logging.getLogger(name)
        lg.handlers.clear()
        lg.propagate = True
        lg.setLevel(level)
