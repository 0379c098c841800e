import asyncio
import sys
from pathlib import Path

import pytest

# 项目根目录放进 sys.path，测试里直接 `import broker...` / `from tests.fakes import ...`
ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

from tests.fakes import FakeClock  # noqa: E402


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(5_000.0)


@pytest.fixture
def no_sleep():
    """替代 asyncio.sleep：只让出一次事件循环。"""

    async def _sleep(_seconds: float) -> None:
        await asyncio.sleep(0)

    return _sleep
