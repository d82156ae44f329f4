"""
销售流程仓储

流程只做报表聚合：把各单据通过关联表串起来，按关联到的单据推进阶段，
并缓存流程金额和毛利。
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import and_, func, insert, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from sales_engine.core.context import OperationContext, check_context, run_with_context
from sales_engine.core.exceptions import NotFound, RelatedRecordsExist, ValidationFailed
from sales_engine.db.unit_of_work import transaction
from sales_engine.models.contact import Contact
from sales_engine.models.delivery import Delivery
from sales_engine.models.enums import (
    DocumentType,
    InvoiceStatus,
    PurchaseOrderStatus,
    SalesProcessStatus,
    status_display,
)
from sales_engine.models.invoice import Invoice
from sales_engine.models.payment import Payment
from sales_engine.models.purchase_order import PurchaseOrder
from sales_engine.models.quotation import Quotation
from sales_engine.models.sales_order import SalesOrder
from sales_engine.models.sales_process import (
    SalesProcess,
    process_deliveries,
    process_invoices,
    process_purchase_orders,
    process_quotations,
    process_sales_orders,
)
from sales_engine.schemas.common import PagedResult, PaginationParams
from sales_engine.schemas.sales_process import (
    Profitability,
    SalesProcessCreate,
    SalesProcessFilter,
    SalesProcessFlow,
    SalesProcessUpdate,
    TimelineEvent,
)
from sales_engine.services.financials import HUNDRED, ZERO, quantize
from sales_engine.services.master_data import MasterDataReader
from sales_engine.services.pagination import paginate, validate_pagination

logger = logging.getLogger(__name__)

PROCESS_STATUSES = frozenset(status.value for status in SalesProcessStatus)

# 关联表一览: 名称 → (关联表, 字段, 单据模型, 显示名)
LINKS = {
    "quotation": (process_quotations, "quotation_id", Quotation, "报价单"),
    "sales_order": (process_sales_orders, "sales_order_id", SalesOrder, "销售订单"),
    "purchase_order": (process_purchase_orders, "purchase_order_id", PurchaseOrder, "采购单"),
    "delivery": (process_deliveries, "delivery_id", Delivery, "发货单"),
    "invoice": (process_invoices, "invoice_id", Invoice, "发票"),
}


class SalesProcessRepository:
    """销售流程"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.master = MasterDataReader(db)

    # ===== 查询基础 =====

    @staticmethod
    def default_order():
        return (SalesProcess.created_at.desc(), SalesProcess.id.desc())

    async def _load(self, ctx: Optional[OperationContext], process_id: int) -> SalesProcess:
        result = await run_with_context(ctx, self.db.execute(
            select(SalesProcess)
            .options(selectinload(SalesProcess.contact))
            .where(SalesProcess.id == process_id)
            .execution_options(populate_existing=True)
        ))
        process = result.scalars().first()
        if not process:
            raise NotFound("销售流程", process_id)
        return process

    async def _paginate(self, ctx, query, params: Optional[PaginationParams]) -> PagedResult:
        return await paginate(
            self.db,
            query.execution_options(populate_existing=True),
            params,
            ctx,
            options=[selectinload(SalesProcess.contact)],
            order_by=self.default_order(),
        )

    @staticmethod
    def _require_valid_status(status) -> str:
        value = getattr(status, "value", status)
        if value not in PROCESS_STATUSES:
            raise ValidationFailed(f"销售流程阶段 {value} 不存在", field="status")
        return value

    # ===== 增删改查 =====

    async def create(self, ctx: Optional[OperationContext], data: SalesProcessCreate) -> SalesProcess:
        check_context(ctx)
        await self.master.require_contact(ctx, data.contact_id)

        async with transaction(self.db, ctx):
            process = SalesProcess(
                contact_id=data.contact_id,
                status=SalesProcessStatus.DRAFT.value,
                total_value=ZERO,
                profit=ZERO,
                notes=data.notes,
            )
            self.db.add(process)
            await run_with_context(ctx, self.db.flush())

        logger.info(f"✅ 创建销售流程 {process.id}")
        return await self._load(ctx, process.id)

    async def get_by_id(self, ctx: Optional[OperationContext], process_id: int) -> SalesProcess:
        return await self._load(ctx, process_id)

    async def update(self, ctx: Optional[OperationContext], process_id: int, data: SalesProcessUpdate) -> SalesProcess:
        values = data.model_dump(exclude_unset=True)
        if "status" in values:
            values["status"] = self._require_valid_status(values["status"])

        async with transaction(self.db, ctx):
            process = await self._load(ctx, process_id)
            if "contact_id" in values:
                await self.master.require_contact(ctx, values["contact_id"])
            for field, value in values.items():
                setattr(process, field, value)
            process.updated_at = datetime.utcnow()
            await run_with_context(ctx, self.db.flush())

        logger.info(f"✏️ 更新销售流程 {process_id}")
        return await self._load(ctx, process_id)

    async def delete(self, ctx: Optional[OperationContext], process_id: int):
        """删除流程：已关联单据的流程不能删除"""
        async with transaction(self.db, ctx):
            process = await self._load(ctx, process_id)

            related = {}
            for table, column, _, name in LINKS.values():
                result = await run_with_context(ctx, self.db.execute(
                    select(func.count()).select_from(table).where(table.c.process_id == process_id)
                ))
                related[f"关联{name}"] = result.scalar() or 0
            if any(related.values()):
                raise RelatedRecordsExist("销售流程", process_id, related)

            await self.db.delete(process)
            await run_with_context(ctx, self.db.flush())

        logger.info(f"🗑️ 删除销售流程 {process_id}")

    async def get_all(self, ctx: Optional[OperationContext], params: Optional[PaginationParams] = None) -> PagedResult:
        return await self._paginate(ctx, select(SalesProcess), params)

    async def get_by_status(
        self, ctx: Optional[OperationContext], status: str, params: Optional[PaginationParams] = None
    ) -> PagedResult:
        validate_pagination(params)
        status = self._require_valid_status(status)
        return await self._paginate(ctx, select(SalesProcess).where(SalesProcess.status == status), params)

    async def get_by_contact(
        self, ctx: Optional[OperationContext], contact_id: int, params: Optional[PaginationParams] = None
    ) -> PagedResult:
        return await self._paginate(ctx, select(SalesProcess).where(SalesProcess.contact_id == contact_id), params)

    async def search(
        self,
        ctx: Optional[OperationContext],
        filter: Optional[SalesProcessFilter] = None,
        params: Optional[PaginationParams] = None,
    ) -> PagedResult:
        validate_pagination(params)
        query = select(SalesProcess)
        if filter is not None:
            conditions = []
            if filter.status:
                conditions.append(SalesProcess.status.in_(filter.status))
            if filter.contact_id:
                conditions.append(SalesProcess.contact_id == filter.contact_id)
            if filter.start_date:
                conditions.append(SalesProcess.created_at >= filter.start_date)
            if filter.end_date:
                conditions.append(SalesProcess.created_at <= filter.end_date)
            if filter.search_query:
                pattern = f"%{filter.search_query.strip()}%"
                query = query.outerjoin(Contact, Contact.id == SalesProcess.contact_id)
                conditions.append(or_(
                    SalesProcess.notes.ilike(pattern),
                    Contact.name.ilike(pattern),
                    Contact.company_name.ilike(pattern),
                ))
            if conditions:
                query = query.where(and_(*conditions))
        return await self._paginate(ctx, query, params)

    # ===== 关联单据 =====

    async def _link(self, ctx: Optional[OperationContext], kind: str, process_id: int, document_id: int):
        """写入关联行（已关联则跳过），返回 (流程, 单据)"""
        table, column, model, name = LINKS[kind]
        process = await self._load(ctx, process_id)
        document = await run_with_context(ctx, self.db.get(model, document_id))
        if not document:
            raise NotFound(name, document_id)

        result = await run_with_context(ctx, self.db.execute(
            select(func.count()).select_from(table).where(
                table.c.process_id == process_id,
                table.c[column] == document_id,
            )
        ))
        if not result.scalar():
            await run_with_context(ctx, self.db.execute(
                insert(table).values({"process_id": process_id, column: document_id})
            ))
        return process, document

    async def link_quotation(self, ctx: Optional[OperationContext], process_id: int, quotation_id: int) -> SalesProcess:
        async with transaction(self.db, ctx):
            process, quotation = await self._link(ctx, "quotation", process_id, quotation_id)
            process.status = SalesProcessStatus.QUOTATION.value
            process.total_value = quotation.grand_total
            process.updated_at = datetime.utcnow()
            await run_with_context(ctx, self.db.flush())

        logger.info(f"🔗 报价单 {quotation.document_no} 关联到流程 {process_id}")
        return await self._load(ctx, process_id)

    async def link_sales_order(self, ctx: Optional[OperationContext], process_id: int, sales_order_id: int) -> SalesProcess:
        async with transaction(self.db, ctx):
            process, sales_order = await self._link(ctx, "sales_order", process_id, sales_order_id)
            process.status = SalesProcessStatus.SALES_ORDER.value
            process.total_value = sales_order.grand_total
            process.updated_at = datetime.utcnow()
            await run_with_context(ctx, self.db.flush())

        logger.info(f"🔗 销售订单 {sales_order.document_no} 关联到流程 {process_id}")
        return await self._load(ctx, process_id)

    async def link_purchase_order(
        self, ctx: Optional[OperationContext], process_id: int, purchase_order_id: int
    ) -> SalesProcess:
        """关联采购单：毛利 = 流程金额 − 采购金额"""
        async with transaction(self.db, ctx):
            process, purchase_order = await self._link(ctx, "purchase_order", process_id, purchase_order_id)
            if process.status == SalesProcessStatus.SALES_ORDER.value:
                process.status = SalesProcessStatus.PURCHASE.value
            process.profit = quantize((process.total_value or ZERO) - (purchase_order.grand_total or ZERO))
            process.updated_at = datetime.utcnow()
            await run_with_context(ctx, self.db.flush())

        logger.info(f"🔗 采购单 {purchase_order.document_no} 关联到流程 {process_id}")
        return await self._load(ctx, process_id)

    async def link_delivery(self, ctx: Optional[OperationContext], process_id: int, delivery_id: int) -> SalesProcess:
        async with transaction(self.db, ctx):
            process, delivery = await self._link(ctx, "delivery", process_id, delivery_id)
            if process.status in (SalesProcessStatus.SALES_ORDER.value, SalesProcessStatus.PURCHASE.value):
                process.status = SalesProcessStatus.DELIVERY.value
            process.updated_at = datetime.utcnow()
            await run_with_context(ctx, self.db.flush())

        logger.info(f"🔗 发货单 {delivery.document_no} 关联到流程 {process_id}")
        return await self._load(ctx, process_id)

    async def link_invoice(self, ctx: Optional[OperationContext], process_id: int, invoice_id: int) -> SalesProcess:
        """关联发票：发票已收齐时流程直接完成"""
        async with transaction(self.db, ctx):
            process, invoice = await self._link(ctx, "invoice", process_id, invoice_id)
            process.status = SalesProcessStatus.INVOICING.value
            if (invoice.amount_paid or ZERO) >= (invoice.grand_total or ZERO):
                process.status = SalesProcessStatus.COMPLETED.value
            process.updated_at = datetime.utcnow()
            await run_with_context(ctx, self.db.flush())

        logger.info(f"🔗 发票 {invoice.document_no} 关联到流程 {process_id}")
        return await self._load(ctx, process_id)

    async def initiate_from_quotation(self, ctx: Optional[OperationContext], quotation_id: int) -> SalesProcess:
        """由报价单发起新流程"""
        check_context(ctx)
        quotation = await run_with_context(ctx, self.db.get(Quotation, quotation_id))
        if not quotation:
            raise NotFound("报价单", quotation_id)

        async with transaction(self.db, ctx):
            process = SalesProcess(
                contact_id=quotation.contact_id,
                status=SalesProcessStatus.QUOTATION.value,
                total_value=quotation.grand_total or ZERO,
                profit=ZERO,
                notes=f"由报价单 {quotation.document_no} 发起",
            )
            self.db.add(process)
            await run_with_context(ctx, self.db.flush())
            await run_with_context(ctx, self.db.execute(
                insert(process_quotations).values(process_id=process.id, quotation_id=quotation.id)
            ))

        logger.info(f"🚀 报价单 {quotation.document_no} 发起销售流程 {process.id}")
        return await self._load(ctx, process.id)

    # ===== 盈利与全流程 =====

    async def _load_flow(self, ctx: Optional[OperationContext], process_id: int) -> SalesProcess:
        options = [selectinload(SalesProcess.contact)]
        for relation in (
            SalesProcess.quotations,
            SalesProcess.sales_orders,
            SalesProcess.purchase_orders,
            SalesProcess.deliveries,
            SalesProcess.invoices,
        ):
            options.append(selectinload(relation).selectinload(relation.property.mapper.class_.items))
            options.append(selectinload(relation).selectinload(relation.property.mapper.class_.contact))

        result = await run_with_context(ctx, self.db.execute(
            select(SalesProcess)
            .options(*options)
            .where(SalesProcess.id == process_id)
            .execution_options(populate_existing=True)
        ))
        process = result.scalars().first()
        if not process:
            raise NotFound("销售流程", process_id)
        return process

    @staticmethod
    def _profitability(process: SalesProcess) -> Profitability:
        """收入 = 未取消发票合计，成本 = 未取消采购单合计"""
        revenue = sum(
            (i.grand_total or ZERO for i in process.invoices if i.status != InvoiceStatus.CANCELLED.value),
            ZERO,
        )
        cost = sum(
            (po.grand_total or ZERO for po in process.purchase_orders
             if po.status != PurchaseOrderStatus.CANCELLED.value),
            ZERO,
        )
        profit = revenue - cost
        margin = quantize(profit / revenue * HUNDRED) if revenue > ZERO else ZERO
        return Profitability(revenue=quantize(revenue), cost=quantize(cost), profit=quantize(profit), margin=margin)

    async def calculate_profitability(self, ctx: Optional[OperationContext], process_id: int) -> Profitability:
        """按关联发票和采购单重新核算流程金额和毛利"""
        async with transaction(self.db, ctx):
            process = await self._load_flow(ctx, process_id)
            figures = self._profitability(process)
            process.total_value = figures.revenue
            process.profit = figures.profit
            process.updated_at = datetime.utcnow()
            await run_with_context(ctx, self.db.flush())

        logger.info(
            f"📊 流程 {process_id} 核算完成: 收入 ¥{figures.revenue}，成本 ¥{figures.cost}，毛利 ¥{figures.profit}"
        )
        return figures

    async def get_complete_flow(self, ctx: Optional[OperationContext], process_id: int) -> SalesProcessFlow:
        """流程全貌：关联单据、收款记录和按时间排序的事件线"""
        process = await self._load_flow(ctx, process_id)

        payments: List[Payment] = []
        invoice_ids = [invoice.id for invoice in process.invoices]
        if invoice_ids:
            result = await run_with_context(ctx, self.db.execute(
                select(Payment)
                .where(Payment.invoice_id.in_(invoice_ids))
                .order_by(Payment.payment_date.asc(), Payment.id.asc())
            ))
            payments = list(result.scalars().all())

        return SalesProcessFlow(
            process=process,
            quotations=list(process.quotations),
            sales_orders=list(process.sales_orders),
            purchase_orders=list(process.purchase_orders),
            deliveries=list(process.deliveries),
            invoices=list(process.invoices),
            payments=payments,
            profitability=self._profitability(process),
            timeline=self._build_timeline(process, payments),
        )

    @staticmethod
    def _build_timeline(process: SalesProcess, payments: List[Payment]) -> List[TimelineEvent]:
        events = [
            TimelineEvent(
                occurred_at=process.created_at,
                document_type="sales_process",
                document_id=process.id,
                status=process.status,
                description="流程创建",
            )
        ]

        documents = (
            (DocumentType.QUOTATION, process.quotations, "报价单"),
            (DocumentType.SALES_ORDER, process.sales_orders, "销售订单"),
            (DocumentType.PURCHASE_ORDER, process.purchase_orders, "采购单"),
            (DocumentType.DELIVERY, process.deliveries, "发货单"),
            (DocumentType.INVOICE, process.invoices, "发票"),
        )
        for document_type, docs, name in documents:
            for doc in docs:
                events.append(TimelineEvent(
                    occurred_at=doc.created_at,
                    document_type=document_type.value,
                    document_id=doc.id,
                    document_no=doc.document_no,
                    status=doc.status,
                    description=f"创建{name}（{status_display(doc.status)}）",
                    amount=getattr(doc, "grand_total", None),
                ))

        for payment in payments:
            events.append(TimelineEvent(
                occurred_at=payment.payment_date,
                document_type="payment",
                document_id=payment.id,
                document_no=payment.reference or "",
                description=f"收款（{payment.method_display}）",
                amount=payment.amount,
            ))

        events.sort(key=lambda e: (e.occurred_at, e.document_id))
        return events
