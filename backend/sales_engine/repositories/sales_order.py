"""销售订单仓储"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import exists, select

from sales_engine.core.context import OperationContext, run_with_context
from sales_engine.core.exceptions import ValidationFailed
from sales_engine.models.delivery import Delivery
from sales_engine.models.enums import DocumentType
from sales_engine.models.invoice import Invoice
from sales_engine.models.purchase_order import PurchaseOrder
from sales_engine.models.quotation import Quotation
from sales_engine.models.sales_order import SalesOrder, SalesOrderItem
from sales_engine.models.sales_process import process_sales_orders
from sales_engine.repositories.base import DocumentRepository
from sales_engine.schemas.common import PagedResult, PaginationParams
from sales_engine.schemas.sales_order import SalesOrderFilter
from sales_engine.services.status import SALES_ORDER_MACHINE

logger = logging.getLogger(__name__)


class SalesOrderRepository(DocumentRepository):
    model = SalesOrder
    item_model = SalesOrderItem
    item_fk = "sales_order_id"
    document_type = DocumentType.SALES_ORDER
    label = "销售订单"
    machine = SALES_ORDER_MACHINE
    process_link = (process_sales_orders, "sales_order_id")

    async def _resolve_references(self, ctx: Optional[OperationContext], values: Dict[str, Any]) -> Dict[str, Any]:
        await self.master.require_contact(ctx, values.get("contact_id"))
        quotation_id = values.get("quotation_id")
        if quotation_id is not None:
            quotation = await run_with_context(ctx, self.db.get(Quotation, quotation_id))
            if not quotation:
                raise ValidationFailed(f"报价单 {quotation_id} 不存在", field="quotation_id")
        return values

    async def _related_counts(self, ctx: Optional[OperationContext], document_id: int) -> Dict[str, int]:
        return {
            "关联采购单": await self._count(ctx, PurchaseOrder, PurchaseOrder.sales_order_id == document_id),
            "关联发票": await self._count(ctx, Invoice, Invoice.sales_order_id == document_id),
            "关联发货单": await self._count(ctx, Delivery, Delivery.sales_order_id == document_id),
        }

    def _filter_conditions(self, flt) -> List:
        conditions = []
        if not isinstance(flt, SalesOrderFilter):
            return conditions

        if flt.quotation_id:
            conditions.append(SalesOrder.quotation_id == flt.quotation_id)
        if flt.expected_date_start:
            conditions.append(SalesOrder.expected_date >= flt.expected_date_start)
        if flt.expected_date_end:
            conditions.append(SalesOrder.expected_date <= flt.expected_date_end)

        if flt.has_invoice is not None:
            has_invoice = exists().where(Invoice.sales_order_id == SalesOrder.id)
            conditions.append(has_invoice if flt.has_invoice else ~has_invoice)
        if flt.has_purchase_order is not None:
            has_po = exists().where(PurchaseOrder.sales_order_id == SalesOrder.id)
            conditions.append(has_po if flt.has_purchase_order else ~has_po)
        return conditions

    async def get_by_quotation(self, ctx: Optional[OperationContext], quotation_id: int) -> List[SalesOrder]:
        """报价单转换出的销售订单（最新的在前）"""
        result = await run_with_context(ctx, self.db.execute(
            select(SalesOrder)
            .options(*self.load_options())
            .where(SalesOrder.quotation_id == quotation_id)
            .order_by(*self.default_order())
            .execution_options(populate_existing=True)
        ))
        return list(result.scalars().all())

    async def get_by_expected_date(
        self,
        ctx: Optional[OperationContext],
        start_date: datetime,
        end_date: datetime,
        params: Optional[PaginationParams] = None,
    ) -> PagedResult:
        """按预计交货日期查询，日期近的在前"""
        query = self.base_query().where(
            SalesOrder.expected_date >= start_date,
            SalesOrder.expected_date <= end_date,
        )
        return await self._paginate(
            ctx, query, params, order_by=(SalesOrder.expected_date.asc(), SalesOrder.id.asc())
        )
