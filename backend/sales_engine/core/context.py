"""
操作上下文 - 取消与截止时间

每个仓储操作都接收一个 OperationContext（可以为 None，表示不可取消、无截止时间）。
查询前、提交前都会检查上下文，已取消或已超时的上下文不会再发出任何写操作。
"""

import asyncio
import time
from typing import Awaitable, Optional, TypeVar

from sales_engine.core.exceptions import ContextCancelled, ContextTimeout

T = TypeVar("T")


class OperationContext:
    """调用方传入的可取消上下文"""

    def __init__(self, deadline: Optional[float] = None):
        # deadline 使用 time.monotonic() 时间轴
        self.deadline = deadline
        self._cancelled = False

    @classmethod
    def background(cls) -> "OperationContext":
        return cls()

    @classmethod
    def with_timeout(cls, seconds: float) -> "OperationContext":
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self):
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def remaining(self) -> Optional[float]:
        """剩余秒数；无截止时间返回 None"""
        if self.deadline is None:
            return None
        return max(self.deadline - time.monotonic(), 0.0)

    def check(self):
        """已取消或已超时则抛出异常"""
        if self._cancelled:
            raise ContextCancelled()
        if self.expired:
            raise ContextTimeout()

    def __repr__(self):
        return f"<OperationContext cancelled={self._cancelled} remaining={self.remaining()}>"


def check_context(ctx: Optional[OperationContext]):
    if ctx is not None:
        ctx.check()


async def run_with_context(ctx: Optional[OperationContext], awaitable: Awaitable[T]) -> T:
    """
    在上下文约束下等待一个数据库调用

    调用前检查上下文；有截止时间时用剩余时间限制等待，超时抛出 ContextTimeout。
    """
    if ctx is None:
        return await awaitable
    try:
        ctx.check()
    except Exception:
        # 未等待的协程需要关闭，避免 "never awaited" 警告
        close = getattr(awaitable, "close", None)
        if close is not None:
            close()
        raise
    remaining = ctx.remaining()
    if remaining is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=remaining)
    except asyncio.TimeoutError:
        raise ContextTimeout() from None
