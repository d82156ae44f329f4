"""
事务单元

create/update/转换/收款核销等多步写操作都包在 transaction() 里：
要么全部提交，要么全部回滚，不会出现部分写入。
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from sales_engine.core.context import OperationContext, check_context

logger = logging.getLogger(__name__)


@asynccontextmanager
async def transaction(db: AsyncSession, ctx: Optional[OperationContext] = None) -> AsyncIterator[AsyncSession]:
    """
    开启事务边界

    - 进入前检查上下文（已取消/超时直接失败，不发出任何写操作）
    - 提交前再次检查上下文
    - 任何异常都回滚并原样抛出
    """
    check_context(ctx)
    try:
        yield db
        check_context(ctx)
        await db.commit()
    except BaseException:
        await db.rollback()
        logger.debug("事务已回滚")
        raise
