"""
发货单仓储

发货单没有金额，只跟踪数量：
- 发货时记录物流单号和发货日期
- 签收可以逐行登记，全部签收后自动变为已送达
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sales_engine.core.context import OperationContext, run_with_context
from sales_engine.core.exceptions import NotFound, ValidationFailed
from sales_engine.db.unit_of_work import transaction
from sales_engine.models.delivery import Delivery, DeliveryItem
from sales_engine.models.enums import DeliveryStatus, DocumentType, status_display
from sales_engine.models.purchase_order import PurchaseOrder
from sales_engine.models.sales_order import SalesOrder
from sales_engine.models.sales_process import process_deliveries
from sales_engine.repositories.base import DocumentRepository
from sales_engine.schemas.common import PagedResult, PaginationParams
from sales_engine.schemas.delivery import DeliveryFilter, DeliveryTracking, ItemTracking
from sales_engine.services.status import DELIVERY_MACHINE

logger = logging.getLogger(__name__)


class DeliveryRepository(DocumentRepository):
    model = Delivery
    item_model = DeliveryItem
    item_fk = "delivery_id"
    document_type = DocumentType.DELIVERY
    label = "发货单"
    machine = DELIVERY_MACHINE
    has_totals = False
    process_link = (process_deliveries, "delivery_id")

    async def _resolve_references(self, ctx: Optional[OperationContext], values: Dict[str, Any]) -> Dict[str, Any]:
        sales_order_id = values.get("sales_order_id")
        if sales_order_id is not None:
            sales_order = await run_with_context(ctx, self.db.get(SalesOrder, sales_order_id))
            if not sales_order:
                raise ValidationFailed(f"销售订单 {sales_order_id} 不存在", field="sales_order_id")
            values["so_no"] = sales_order.document_no
            if values.get("contact_id") is None:
                values["contact_id"] = sales_order.contact_id

        purchase_order_id = values.get("purchase_order_id")
        if purchase_order_id is not None:
            purchase_order = await run_with_context(ctx, self.db.get(PurchaseOrder, purchase_order_id))
            if not purchase_order:
                raise ValidationFailed(f"采购单 {purchase_order_id} 不存在", field="purchase_order_id")
            values["po_no"] = purchase_order.document_no
            if values.get("contact_id") is None:
                values["contact_id"] = purchase_order.contact_id

        # 联系人可以为空（没有来源单据时），填了就必须存在
        if values.get("contact_id") is not None:
            await self.master.require_contact(ctx, values["contact_id"])
        return values

    def _build_items(self, items_values: List[Dict[str, Any]]) -> List:
        for position, values in enumerate(items_values, start=1):
            quantity = values.get("quantity")
            if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
                raise ValidationFailed(f"第 {position} 行发货数量必须是大于 0 的整数", field="quantity")
            received = values.get("received_qty") or 0
            if received < 0 or received > quantity:
                raise ValidationFailed(f"第 {position} 行签收数量必须在 0 到 {quantity} 之间", field="received_qty")
        return [self.item_model(**values) for values in items_values]

    def _on_status_change(self, doc: Delivery, old_status: str, new_status: str):
        now = datetime.utcnow()
        if new_status == DeliveryStatus.SHIPPED.value and not doc.delivery_date:
            doc.delivery_date = now
        elif new_status == DeliveryStatus.DELIVERED.value:
            if not doc.received_date:
                doc.received_date = now
            for item in doc.items:
                item.received_qty = item.quantity

    def _filter_conditions(self, flt) -> List:
        conditions = []
        if not isinstance(flt, DeliveryFilter):
            return conditions

        if flt.sales_order_id:
            conditions.append(Delivery.sales_order_id == flt.sales_order_id)
        if flt.purchase_order_id:
            conditions.append(Delivery.purchase_order_id == flt.purchase_order_id)
        if flt.delivery_date_start:
            conditions.append(Delivery.delivery_date >= flt.delivery_date_start)
        if flt.delivery_date_end:
            conditions.append(Delivery.delivery_date <= flt.delivery_date_end)
        if flt.tracking_number:
            conditions.append(Delivery.tracking_number == flt.tracking_number)
        return conditions

    # ===== 发货 / 签收 / 退回 =====

    async def mark_shipped(
        self,
        ctx: Optional[OperationContext],
        delivery_id: int,
        tracking_number: Optional[str] = None,
        shipping_method: Optional[str] = None,
    ) -> Delivery:
        """标记已发货（仅待发货状态）"""
        async with transaction(self.db, ctx):
            doc = await self._load(ctx, delivery_id)
            if not doc:
                raise NotFound(self.label, delivery_id)

            if doc.status != DeliveryStatus.PENDING.value:
                raise ValidationFailed("只有待发货的发货单才能标记为已发货", field="status")

            old_status = doc.status
            doc.status = self.machine.validate(old_status, DeliveryStatus.SHIPPED)
            if tracking_number:
                doc.tracking_number = tracking_number
            if shipping_method:
                doc.shipping_method = shipping_method
            self._on_status_change(doc, old_status, doc.status)
            doc.updated_at = datetime.utcnow()
            await run_with_context(ctx, self.db.flush())

        logger.info(f"🚚 发货单 {doc.document_no} 已发货，物流单号: {doc.tracking_number or '-'}")
        return await self.get_by_id(ctx, delivery_id)

    async def mark_delivered(self, ctx: Optional[OperationContext], delivery_id: int) -> Delivery:
        """标记已送达（仅已发货状态），全部明细按发货数量签收"""
        async with transaction(self.db, ctx):
            doc = await self._load(ctx, delivery_id)
            if not doc:
                raise NotFound(self.label, delivery_id)

            if doc.status != DeliveryStatus.SHIPPED.value:
                raise ValidationFailed("只有已发货的发货单才能标记为已送达", field="status")

            old_status = doc.status
            doc.status = self.machine.validate(old_status, DeliveryStatus.DELIVERED)
            self._on_status_change(doc, old_status, doc.status)
            doc.updated_at = datetime.utcnow()
            await run_with_context(ctx, self.db.flush())

        logger.info(f"📦 发货单 {doc.document_no} 已送达")
        return await self.get_by_id(ctx, delivery_id)

    async def mark_returned(
        self, ctx: Optional[OperationContext], delivery_id: int, reason: Optional[str] = None
    ) -> Delivery:
        """标记退回，原因记入备注"""
        async with transaction(self.db, ctx):
            doc = await self._load(ctx, delivery_id)
            if not doc:
                raise NotFound(self.label, delivery_id)

            doc.status = self.machine.validate(doc.status, DeliveryStatus.RETURNED)
            if reason:
                self._append_note(doc, f"退回原因: {reason}")
            doc.updated_at = datetime.utcnow()
            await run_with_context(ctx, self.db.flush())

        logger.info(f"↩️ 发货单 {doc.document_no} 已退回")
        return await self.get_by_id(ctx, delivery_id)

    async def update_item_received_qty(
        self,
        ctx: Optional[OperationContext],
        delivery_id: int,
        item_id: int,
        received_qty: int,
    ) -> Delivery:
        """
        登记单行签收数量

        只有已发货的发货单可以登记；全部明细签收完成后自动变为已送达。
        """
        async with transaction(self.db, ctx):
            doc = await self._load(ctx, delivery_id)
            if not doc:
                raise NotFound(self.label, delivery_id)

            item = next((i for i in doc.items if i.id == item_id), None)
            if item is None:
                raise NotFound("发货明细", item_id)

            if doc.status != DeliveryStatus.SHIPPED.value:
                raise ValidationFailed("只有已发货的发货单才能登记签收数量", field="status")
            if received_qty < 0 or received_qty > item.quantity:
                raise ValidationFailed(f"签收数量必须在 0 到 {item.quantity} 之间", field="received_qty")

            item.received_qty = received_qty

            if doc.is_fully_received:
                old_status = doc.status
                doc.status = self.machine.validate(old_status, DeliveryStatus.DELIVERED)
                self._on_status_change(doc, old_status, doc.status)
                logger.info(f"📦 发货单 {doc.document_no} 全部签收，自动标记为已送达")

            doc.updated_at = datetime.utcnow()
            await run_with_context(ctx, self.db.flush())

        return await self.get_by_id(ctx, delivery_id)

    # ===== 查询 =====

    async def get_pending(
        self, ctx: Optional[OperationContext], params: Optional[PaginationParams] = None
    ) -> PagedResult:
        return await self.get_by_status(ctx, DeliveryStatus.PENDING.value, params)

    async def get_overdue(
        self, ctx: Optional[OperationContext], params: Optional[PaginationParams] = None
    ) -> PagedResult:
        """发货日期已过但仍未送达的发货单，按发货日期升序"""
        query = self.base_query().where(
            Delivery.delivery_date < datetime.utcnow(),
            Delivery.status.in_((DeliveryStatus.PENDING.value, DeliveryStatus.SHIPPED.value)),
        )
        return await self._paginate(
            ctx, query, params, order_by=(Delivery.delivery_date.asc(), Delivery.id.asc())
        )

    async def get_tracking_info(self, ctx: Optional[OperationContext], delivery_id: int) -> DeliveryTracking:
        doc = await self.get_by_id(ctx, delivery_id)

        items = [
            ItemTracking(
                item_id=item.id,
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=item.quantity,
                received_qty=item.received_qty or 0,
                receipt_status=item.receipt_status,
            )
            for item in doc.items
        ]
        return DeliveryTracking(
            delivery_id=doc.id,
            document_no=doc.document_no,
            status=doc.status,
            status_display=status_display(doc.status),
            tracking_number=doc.tracking_number,
            shipping_method=doc.shipping_method,
            delivery_date=doc.delivery_date,
            received_date=doc.received_date,
            total_quantity=sum(i.quantity for i in items),
            total_received=sum(i.received_qty for i in items),
            items=items,
        )
