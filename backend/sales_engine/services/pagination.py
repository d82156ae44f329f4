"""
通用分页

所有列表查询共用：先校验分页参数（非法直接抛 InvalidPagination，不访问数据库），
再统计总数，最后按 offset/limit 取当前页。
"""

import math
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from sales_engine.core.config import settings
from sales_engine.core.context import OperationContext, run_with_context
from sales_engine.core.exceptions import InvalidPagination
from sales_engine.schemas.common import PagedResult, PaginationParams


def validate_pagination(params: Optional[PaginationParams]) -> PaginationParams:
    """校验分页参数，None 时使用默认值"""
    if params is None:
        return PaginationParams()
    if params.page is None or params.page < 1:
        raise InvalidPagination(params.page, params.page_size, settings.MAX_PAGE_SIZE)
    if params.page_size is None or params.page_size < 1 or params.page_size > settings.MAX_PAGE_SIZE:
        raise InvalidPagination(params.page, params.page_size, settings.MAX_PAGE_SIZE)
    return params


def total_pages(total_items: int, page_size: int) -> int:
    if total_items <= 0:
        return 0
    return int(math.ceil(total_items / page_size))


async def paginate(
    db: AsyncSession,
    query: Select,
    params: Optional[PaginationParams],
    ctx: Optional[OperationContext] = None,
    options: Sequence = (),
    order_by: Sequence = (),
) -> PagedResult:
    """
    分页执行查询

    Args:
        query: 带筛选条件的 select（不要带 loader options 和排序）
        options: selectinload 等加载选项，只作用于数据查询
        order_by: 排序字段，只作用于数据查询
    """
    params = validate_pagination(params)

    count_query = select(func.count()).select_from(query.order_by(None).subquery())
    total = (await run_with_context(ctx, db.execute(count_query))).scalar() or 0

    data_query = query
    if options:
        data_query = data_query.options(*options)
    if order_by:
        data_query = data_query.order_by(*order_by)
    data_query = data_query.offset(params.offset).limit(params.page_size)

    result = await run_with_context(ctx, db.execute(data_query))
    items = list(result.scalars().unique().all())

    return PagedResult(
        items=items,
        total_items=total,
        total_pages=total_pages(total, params.page_size),
        current_page=params.page,
        page_size=params.page_size,
    )
