"""同步/异步调用桥接。"""

from __future__ import annotations

import asyncio
import inspect
import functools
from typing import Any, Callable


async def call_blocking(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """协程函数直接 await；普通函数丢到默认线程池执行，不阻塞事件循环。

    注意：任务取消只能打断等待，线程池里已经发出的 HTTP 请求仍会跑完。
    """
    if inspect.iscoroutinefunction(fn):
        return await fn(*args, **kwargs)
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))
