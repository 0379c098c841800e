"""Venue 错误分类。

- TransportError：网络/超时/非 JSON 响应，可重试（由上层决定）。
- AuthError：签名或密钥问题，启动阶段视为致命。
- VenueRejection：交易所返回 retCode != 0，携带原始 payload。
- DataInsufficientError：数据不足以计算（K 线太少、合约不存在等）。
"""

from __future__ import annotations

from typing import Any

AUTH_RET_CODES = frozenset({10003, 10004, 10005, 10007})


class VenueError(Exception):
    """所有 venue 相关错误的基类。"""


class TransportError(VenueError):
    def __init__(self, message: str, *, status: int | None = None):
        super().__init__(message)
        self.status = status


class AuthError(VenueError):
    def __init__(self, message: str, *, code: int | None = None, payload: Any = None):
        super().__init__(message)
        self.code = code
        self.payload = payload


class VenueRejection(VenueError):
    def __init__(self, code: int, message: str, payload: Any = None):
        super().__init__(f"retCode={code} {message}")
        self.code = code
        self.message = message
        self.payload = payload


class DataInsufficientError(VenueError):
    pass
