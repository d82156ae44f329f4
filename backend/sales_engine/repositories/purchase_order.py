"""采购单仓储"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select

from sales_engine.core.context import OperationContext, run_with_context
from sales_engine.core.exceptions import ValidationFailed
from sales_engine.models.delivery import Delivery
from sales_engine.models.enums import DocumentType, PurchaseOrderStatus
from sales_engine.models.purchase_order import PurchaseOrder, PurchaseOrderItem
from sales_engine.models.sales_order import SalesOrder
from sales_engine.models.sales_process import process_purchase_orders
from sales_engine.repositories.base import DocumentRepository
from sales_engine.schemas.common import PagedResult, PaginationParams
from sales_engine.schemas.purchase_order import PurchaseOrderFilter
from sales_engine.services.status import PURCHASE_ORDER_MACHINE

# 尚未收货的状态
PENDING_STATUSES = (
    PurchaseOrderStatus.DRAFT.value,
    PurchaseOrderStatus.SENT.value,
    PurchaseOrderStatus.CONFIRMED.value,
)


class PurchaseOrderRepository(DocumentRepository):
    model = PurchaseOrder
    item_model = PurchaseOrderItem
    item_fk = "purchase_order_id"
    document_type = DocumentType.PURCHASE_ORDER
    label = "采购单"
    machine = PURCHASE_ORDER_MACHINE
    process_link = (process_purchase_orders, "purchase_order_id")

    async def _resolve_references(self, ctx: Optional[OperationContext], values: Dict[str, Any]) -> Dict[str, Any]:
        await self.master.require_contact(ctx, values.get("contact_id"))
        sales_order_id = values.get("sales_order_id")
        if sales_order_id is not None:
            sales_order = await run_with_context(ctx, self.db.get(SalesOrder, sales_order_id))
            if not sales_order:
                raise ValidationFailed(f"销售订单 {sales_order_id} 不存在", field="sales_order_id")
            values["so_no"] = sales_order.document_no
        return values

    async def _related_counts(self, ctx: Optional[OperationContext], document_id: int) -> Dict[str, int]:
        return {
            "关联发货单": await self._count(ctx, Delivery, Delivery.purchase_order_id == document_id),
        }

    def _filter_conditions(self, flt) -> List:
        conditions = []
        if isinstance(flt, PurchaseOrderFilter):
            if flt.sales_order_id:
                conditions.append(PurchaseOrder.sales_order_id == flt.sales_order_id)
            if flt.expected_date_start:
                conditions.append(PurchaseOrder.expected_date >= flt.expected_date_start)
            if flt.expected_date_end:
                conditions.append(PurchaseOrder.expected_date <= flt.expected_date_end)
        return conditions

    async def get_by_sales_order(self, ctx: Optional[OperationContext], sales_order_id: int) -> List[PurchaseOrder]:
        """销售订单生成的采购单（最新的在前）"""
        result = await run_with_context(ctx, self.db.execute(
            select(PurchaseOrder)
            .options(*self.load_options())
            .where(PurchaseOrder.sales_order_id == sales_order_id)
            .order_by(*self.default_order())
            .execution_options(populate_existing=True)
        ))
        return list(result.scalars().all())

    async def get_pending(
        self, ctx: Optional[OperationContext], params: Optional[PaginationParams] = None
    ) -> PagedResult:
        """未收货的采购单"""
        query = self.base_query().where(PurchaseOrder.status.in_(PENDING_STATUSES))
        return await self._paginate(ctx, query, params)

    async def get_overdue(
        self, ctx: Optional[OperationContext], params: Optional[PaginationParams] = None
    ) -> PagedResult:
        """已过预计到货日期仍未收货的采购单，按预计到货日期升序"""
        query = self.base_query().where(
            PurchaseOrder.expected_date < datetime.utcnow(),
            PurchaseOrder.status.in_((PurchaseOrderStatus.SENT.value, PurchaseOrderStatus.CONFIRMED.value)),
        )
        return await self._paginate(
            ctx, query, params, order_by=(PurchaseOrder.expected_date.asc(), PurchaseOrder.id.asc())
        )
