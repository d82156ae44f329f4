"""发票仓储"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select

from sales_engine.core.config import settings
from sales_engine.core.context import OperationContext, run_with_context
from sales_engine.core.exceptions import ValidationFailed
from sales_engine.db.unit_of_work import transaction
from sales_engine.models.enums import DocumentType, InvoiceStatus
from sales_engine.models.invoice import Invoice, InvoiceItem
from sales_engine.models.payment import Payment
from sales_engine.models.sales_order import SalesOrder
from sales_engine.models.sales_process import process_invoices
from sales_engine.repositories.base import DocumentRepository
from sales_engine.schemas.common import PagedResult, PaginationParams
from sales_engine.schemas.invoice import InvoiceFilter
from sales_engine.services.status import INVOICE_MACHINE

logger = logging.getLogger(__name__)

# 可能逾期的状态
OPEN_STATUSES = (
    InvoiceStatus.SENT.value,
    InvoiceStatus.PARTIAL.value,
    InvoiceStatus.OVERDUE.value,
)


def _check_dates(issue_date: Optional[datetime], due_date: Optional[datetime]):
    if issue_date and due_date and due_date < issue_date:
        raise ValidationFailed("到期日不能早于开票日期", field="due_date")


class InvoiceRepository(DocumentRepository):
    model = Invoice
    item_model = InvoiceItem
    item_fk = "invoice_id"
    document_type = DocumentType.INVOICE
    label = "发票"
    machine = INVOICE_MACHINE
    process_link = (process_invoices, "invoice_id")

    async def _resolve_references(self, ctx: Optional[OperationContext], values: Dict[str, Any]) -> Dict[str, Any]:
        await self.master.require_contact(ctx, values.get("contact_id"))
        sales_order_id = values.get("sales_order_id")
        if sales_order_id is not None:
            sales_order = await run_with_context(ctx, self.db.get(SalesOrder, sales_order_id))
            if not sales_order:
                raise ValidationFailed(f"销售订单 {sales_order_id} 不存在", field="sales_order_id")
            values["so_no"] = sales_order.document_no

        if not values.get("issue_date"):
            values["issue_date"] = datetime.utcnow()
        if not values.get("due_date"):
            values["due_date"] = values["issue_date"] + timedelta(days=settings.INVOICE_DUE_DAYS)
        _check_dates(values["issue_date"], values["due_date"])
        return values

    def _check_header(self, doc: Invoice):
        _check_dates(doc.issue_date, doc.due_date)

    def _after_items_changed(self, doc: Invoice):
        # 明细变化后总额变了，已有收款时重新推导收款状态
        if doc.status == InvoiceStatus.CANCELLED.value:
            return
        if doc.amount_paid and doc.amount_paid > Decimal("0"):
            doc.status = self.machine.validate(doc.status, doc.derive_payment_status(), automatic=True)

    async def _related_counts(self, ctx: Optional[OperationContext], document_id: int) -> Dict[str, int]:
        return {
            "收款记录": await self._count(ctx, Payment, Payment.invoice_id == document_id),
        }

    def _filter_conditions(self, flt) -> List:
        conditions = []
        if not isinstance(flt, InvoiceFilter):
            return conditions

        if flt.sales_order_id:
            conditions.append(Invoice.sales_order_id == flt.sales_order_id)
        if flt.due_date_start:
            conditions.append(Invoice.due_date >= flt.due_date_start)
        if flt.due_date_end:
            conditions.append(Invoice.due_date <= flt.due_date_end)
        if flt.is_overdue is True:
            conditions.append(Invoice.due_date < datetime.utcnow())
            conditions.append(Invoice.status.in_(OPEN_STATUSES))
        elif flt.is_overdue is False:
            conditions.append(
                (Invoice.due_date >= datetime.utcnow()) | Invoice.status.notin_(OPEN_STATUSES) | Invoice.due_date.is_(None)
            )
        return conditions

    async def get_by_sales_order(self, ctx: Optional[OperationContext], sales_order_id: int) -> List[Invoice]:
        """销售订单开出的发票（最新的在前）"""
        result = await run_with_context(ctx, self.db.execute(
            select(Invoice)
            .options(*self.load_options())
            .where(Invoice.sales_order_id == sales_order_id)
            .order_by(*self.default_order())
            .execution_options(populate_existing=True)
        ))
        return list(result.scalars().all())

    async def get_overdue(
        self, ctx: Optional[OperationContext], params: Optional[PaginationParams] = None
    ) -> PagedResult:
        """已过到期日仍未结清的发票，按到期日升序"""
        query = self.base_query().where(
            Invoice.due_date < datetime.utcnow(),
            Invoice.status.in_(OPEN_STATUSES),
        )
        return await self._paginate(ctx, query, params, order_by=(Invoice.due_date.asc(), Invoice.id.asc()))

    async def get_by_due_date_range(
        self,
        ctx: Optional[OperationContext],
        start_date: datetime,
        end_date: datetime,
        params: Optional[PaginationParams] = None,
    ) -> PagedResult:
        query = self.base_query().where(Invoice.due_date >= start_date, Invoice.due_date <= end_date)
        return await self._paginate(ctx, query, params, order_by=(Invoice.due_date.asc(), Invoice.id.asc()))

    async def mark_overdue_invoices(self, ctx: Optional[OperationContext] = None, now: datetime = None) -> int:
        """把已过到期日的已发送/部分收款发票标记为 overdue，返回处理数量"""
        now = now or datetime.utcnow()
        async with transaction(self.db, ctx):
            result = await run_with_context(ctx, self.db.execute(
                select(Invoice).where(
                    Invoice.due_date < now,
                    Invoice.status.in_((InvoiceStatus.SENT.value, InvoiceStatus.PARTIAL.value)),
                )
            ))
            invoices = result.scalars().all()
            for invoice in invoices:
                invoice.status = self.machine.validate(invoice.status, InvoiceStatus.OVERDUE, automatic=True)
                invoice.updated_at = now
            await run_with_context(ctx, self.db.flush())

        if invoices:
            logger.info(f"⏰ 发票逾期处理完成: {len(invoices)} 张")
        return len(invoices)
