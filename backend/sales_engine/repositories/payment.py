"""收款记录仓储"""

from datetime import datetime
from typing import Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from sales_engine.core.context import OperationContext, run_with_context
from sales_engine.core.exceptions import NotFound, ValidationFailed
from sales_engine.models.payment import Payment
from sales_engine.schemas.common import PagedResult, PaginationParams
from sales_engine.schemas.payment import PaymentCreate, PaymentFilter, PaymentUpdate
from sales_engine.services.pagination import paginate, validate_pagination
from sales_engine.services.reconciliation import PaymentReconciler


class PaymentRepository:
    """
    收款记录

    读取直接查表；写入全部交给 PaymentReconciler，保证发票已收金额和收款状态同步。
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.reconciler = PaymentReconciler(db)

    @staticmethod
    def default_order():
        return (Payment.payment_date.desc(), Payment.created_at.desc(), Payment.id.desc())

    async def _paginate(self, ctx, query, params: Optional[PaginationParams]) -> PagedResult:
        return await paginate(
            self.db,
            query.execution_options(populate_existing=True),
            params,
            ctx,
            order_by=self.default_order(),
        )

    # ===== 写入 =====

    async def create(self, ctx: Optional[OperationContext], data: PaymentCreate) -> Payment:
        return await self.reconciler.apply_payment(ctx, data)

    async def update(self, ctx: Optional[OperationContext], payment_id: int, data: PaymentUpdate) -> Payment:
        return await self.reconciler.update_payment(ctx, payment_id, data)

    async def delete(self, ctx: Optional[OperationContext], payment_id: int):
        await self.reconciler.delete_payment(ctx, payment_id)

    # ===== 读取 =====

    async def get_by_id(self, ctx: Optional[OperationContext], payment_id: int) -> Payment:
        result = await run_with_context(ctx, self.db.execute(
            select(Payment).where(Payment.id == payment_id).execution_options(populate_existing=True)
        ))
        payment = result.scalars().first()
        if not payment:
            raise NotFound("收款记录", payment_id)
        return payment

    async def get_all(self, ctx: Optional[OperationContext], params: Optional[PaginationParams] = None) -> PagedResult:
        return await self._paginate(ctx, select(Payment), params)

    async def get_by_invoice(
        self, ctx: Optional[OperationContext], invoice_id: int, params: Optional[PaginationParams] = None
    ) -> PagedResult:
        return await self._paginate(ctx, select(Payment).where(Payment.invoice_id == invoice_id), params)

    async def get_by_period(
        self,
        ctx: Optional[OperationContext],
        start_date: datetime,
        end_date: datetime,
        params: Optional[PaginationParams] = None,
    ) -> PagedResult:
        """按收款日期区间查询（含两端）"""
        validate_pagination(params)
        if start_date and end_date and start_date > end_date:
            raise ValidationFailed("开始时间不能晚于结束时间", field="start_date")
        query = select(Payment).where(Payment.payment_date >= start_date, Payment.payment_date <= end_date)
        return await self._paginate(ctx, query, params)

    async def get_by_method(
        self, ctx: Optional[OperationContext], payment_method: str, params: Optional[PaginationParams] = None
    ) -> PagedResult:
        return await self._paginate(ctx, select(Payment).where(Payment.payment_method == payment_method), params)

    async def search(
        self,
        ctx: Optional[OperationContext],
        filter: Optional[PaymentFilter] = None,
        params: Optional[PaginationParams] = None,
    ) -> PagedResult:
        validate_pagination(params)
        query = select(Payment)
        if filter is not None:
            conditions = []
            if filter.invoice_id:
                conditions.append(Payment.invoice_id == filter.invoice_id)
            if filter.payment_method:
                conditions.append(Payment.payment_method.in_(filter.payment_method))
            if filter.start_date:
                conditions.append(Payment.payment_date >= filter.start_date)
            if filter.end_date:
                conditions.append(Payment.payment_date <= filter.end_date)
            if filter.min_amount is not None:
                conditions.append(Payment.amount >= filter.min_amount)
            if filter.max_amount is not None:
                conditions.append(Payment.amount <= filter.max_amount)
            if filter.search_query:
                pattern = f"%{filter.search_query.strip()}%"
                conditions.append(or_(Payment.reference.ilike(pattern), Payment.notes.ilike(pattern)))
            if conditions:
                query = query.where(and_(*conditions))
        return await self._paginate(ctx, query, params)
