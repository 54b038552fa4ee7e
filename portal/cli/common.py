"""
Portal CLI — 公共工具
"""
import asyncio
from typing import Awaitable, TypeVar

from rich.console import Console

from ..config import settings
from ..database import init_database

T = TypeVar("T")

# ── 全局单例 ──────────────────────────────────────────────
console = Console()

VERSION = "0.1.0"


def history_path():
    """聊天输入历史，和数据库放在同一目录"""
    path = settings.database_path.parent / "chat_history"
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def run(coro: Awaitable[T]) -> T:
    """初始化数据库后运行一个协程"""
    async def _main():
        await init_database()
        return await coro

    return asyncio.run(_main())


def truncate(text: str, length: int) -> str:
    return text[:length] + "..." if len(text) > length else text
