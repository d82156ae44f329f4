"""报价单仓储"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import func, select

from sales_engine.core.context import OperationContext, run_with_context
from sales_engine.db.unit_of_work import transaction
from sales_engine.models.enums import DocumentType, QuotationStatus
from sales_engine.models.quotation import Quotation, QuotationItem
from sales_engine.models.sales_order import SalesOrder
from sales_engine.models.sales_process import process_quotations
from sales_engine.repositories.base import DocumentRepository, money
from sales_engine.schemas.common import PagedResult, PaginationParams
from sales_engine.schemas.quotation import ContactQuotationSummary, QuotationFilter
from sales_engine.services.pagination import validate_pagination
from sales_engine.services.status import QUOTATION_MACHINE

logger = logging.getLogger(__name__)

# 仍可能被接受、需要关注有效期的状态
OPEN_STATUSES = (QuotationStatus.DRAFT.value, QuotationStatus.SENT.value)


class QuotationRepository(DocumentRepository):
    model = Quotation
    item_model = QuotationItem
    item_fk = "quotation_id"
    document_type = DocumentType.QUOTATION
    label = "报价单"
    machine = QUOTATION_MACHINE
    process_link = (process_quotations, "quotation_id")

    def _filter_conditions(self, flt) -> List:
        conditions = []
        if isinstance(flt, QuotationFilter):
            if flt.expiry_date_start:
                conditions.append(Quotation.expiry_date >= flt.expiry_date_start)
            if flt.expiry_date_end:
                conditions.append(Quotation.expiry_date <= flt.expiry_date_end)
        return conditions

    async def _related_counts(self, ctx: Optional[OperationContext], document_id: int) -> Dict[str, int]:
        return {
            "关联销售订单": await self._count(ctx, SalesOrder, SalesOrder.quotation_id == document_id),
        }

    # ===== 有效期 =====

    async def get_expired(
        self, ctx: Optional[OperationContext], params: Optional[PaginationParams] = None
    ) -> PagedResult:
        """已过有效期但仍处于草稿/已发送的报价单"""
        query = self.base_query().where(
            Quotation.expiry_date < datetime.utcnow(),
            Quotation.status.in_(OPEN_STATUSES),
        )
        return await self._paginate(ctx, query, params)

    async def get_expiring_soon(
        self, ctx: Optional[OperationContext], days: int, params: Optional[PaginationParams] = None
    ) -> PagedResult:
        """未来 days 天内到期的报价单，按到期日升序"""
        now = datetime.utcnow()
        query = self.base_query().where(
            Quotation.expiry_date >= now,
            Quotation.expiry_date <= now + timedelta(days=days),
            Quotation.status.in_(OPEN_STATUSES),
        )
        return await self._paginate(ctx, query, params, order_by=(Quotation.expiry_date.asc(), Quotation.id.asc()))

    async def get_by_expiry_range(
        self,
        ctx: Optional[OperationContext],
        start_date: datetime,
        end_date: datetime,
        params: Optional[PaginationParams] = None,
    ) -> PagedResult:
        query = self.base_query().where(
            Quotation.expiry_date >= start_date,
            Quotation.expiry_date <= end_date,
        )
        return await self._paginate(ctx, query, params, order_by=(Quotation.expiry_date.asc(), Quotation.id.asc()))

    async def expire_overdue_quotations(self, ctx: Optional[OperationContext] = None, now: datetime = None) -> int:
        """把已过有效期的草稿/已发送报价单标记为 expired，返回处理数量"""
        now = now or datetime.utcnow()
        async with transaction(self.db, ctx):
            result = await run_with_context(ctx, self.db.execute(
                select(Quotation).where(
                    Quotation.expiry_date < now,
                    Quotation.status.in_(OPEN_STATUSES),
                )
            ))
            quotations = result.scalars().all()
            for quotation in quotations:
                quotation.status = self.machine.validate(quotation.status, QuotationStatus.EXPIRED, automatic=True)
                quotation.updated_at = now
            await run_with_context(ctx, self.db.flush())

        if quotations:
            logger.info(f"⌛ 报价单过期处理完成: {len(quotations)} 张")
        return len(quotations)

    # ===== 汇总 =====

    async def get_contact_summary(self, ctx: Optional[OperationContext], contact_id: int) -> ContactQuotationSummary:
        """联系人报价汇总：数量、金额、接受率"""
        result = await run_with_context(ctx, self.db.execute(
            select(
                Quotation.status,
                func.count(Quotation.id),
                func.coalesce(func.sum(Quotation.grand_total), 0),
            )
            .where(Quotation.contact_id == contact_id)
            .group_by(Quotation.status)
        ))

        summary = ContactQuotationSummary(contact_id=contact_id)
        total_value = Decimal("0")
        accepted_value = Decimal("0")
        for status, count, value in result.all():
            summary.total_quotations += count
            total_value += money(value)
            if status == QuotationStatus.ACCEPTED.value:
                summary.accepted_quotations += count
                accepted_value += money(value)

        summary.total_value = float(total_value)
        summary.accepted_value = float(accepted_value)
        if summary.total_quotations:
            summary.conversion_rate = round(summary.accepted_quotations / summary.total_quotations * 100, 2)
        return summary

    async def get_by_contact_and_status(
        self,
        ctx: Optional[OperationContext],
        contact_id: int,
        status: str,
        params: Optional[PaginationParams] = None,
    ) -> PagedResult:
        validate_pagination(params)
        status = self._require_valid_status(status)
        query = self.base_query().where(Quotation.contact_id == contact_id, Quotation.status == status)
        return await self._paginate(ctx, query, params)
