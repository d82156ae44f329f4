"""
单号生成

格式：{前缀}-{年份}-{序号}，如 QT-2025-00001、PO-2025-00042

并发安全：
1. document_sequences 按 (单据类型, 年份) 一行计数器，在创建事务内原子 UPDATE +1
2. 单号列有唯一约束；计数器行首次插入也有唯一约束
3. 任一唯一约束冲突都会让整个创建事务回滚，由调用方换新单号重试（有次数上限）
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sales_engine.core.config import settings
from sales_engine.core.context import OperationContext, run_with_context
from sales_engine.models.document_sequence import DocumentSequence

logger = logging.getLogger(__name__)

# 计数器追上手工单号时最多跳过的次数
MAX_SKIP = 50


def get_prefix(document_type: str) -> str:
    return settings.DOCUMENT_NO_PREFIXES.get(document_type, document_type[:3].upper())


def format_document_no(document_type: str, year: int, sequence: int) -> str:
    """格式化单号"""
    width = settings.DOCUMENT_NO_SEQUENCE_WIDTH
    return f"{get_prefix(document_type)}-{year}-{sequence:0{width}d}"


def is_document_no_conflict(exc: IntegrityError) -> bool:
    """是否为单号/序列唯一约束冲突"""
    message = str(getattr(exc, "orig", exc))
    return "document_no" in message or "document_sequences" in message


async def _increment(db: AsyncSession, document_type: str, year: int, ctx: Optional[OperationContext]) -> int:
    """计数器 +1 并返回新值；第一次使用时插入计数器行"""
    result = await run_with_context(ctx, db.execute(
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type, DocumentSequence.year == year)
        .values(current_value=DocumentSequence.current_value + 1, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    ))
    if result.rowcount == 0:
        # 并发首次插入时这里会触发唯一约束冲突，整个事务回滚后重试
        db.add(DocumentSequence(document_type=document_type, year=year, current_value=1))
        await run_with_context(ctx, db.flush())
        return 1

    value = await run_with_context(ctx, db.execute(
        select(DocumentSequence.current_value)
        .where(DocumentSequence.document_type == document_type, DocumentSequence.year == year)
    ))
    return value.scalar_one()


async def next_document_no(
    db: AsyncSession,
    document_type: str,
    model,
    ctx: Optional[OperationContext] = None,
    year: Optional[int] = None,
) -> str:
    """
    生成下一个单号（必须在创建事务内调用）

    Args:
        document_type: 单据类型，决定前缀和计数器
        model: 单据模型，用于跳过已被手工占用的单号
        year: 年份，默认当前年份
    """
    year = year or datetime.utcnow().year

    for _ in range(MAX_SKIP):
        sequence = await _increment(db, document_type, year, ctx)
        document_no = format_document_no(document_type, year, sequence)

        exists = await run_with_context(ctx, db.execute(
            select(model.id).where(model.document_no == document_no).limit(1)
        ))
        if exists.first() is None:
            return document_no
        logger.info(f"单号 {document_no} 已被占用，跳过")

    # 仍然冲突就交给唯一约束和外层重试
    return document_no
