"""
单据转换

报价单 → 销售订单 → 采购单 / 发票 / 发货单。
转换在一个事务里完成，来源单据不做任何修改；明细逐字段复制，保证金额一致。

来源单据先读成普通数据再进入事务：单号冲突回滚重试时，
回滚会让已加载的 ORM 对象过期，不能在重试里再访问它们。
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from sales_engine.core.config import settings
from sales_engine.core.context import OperationContext, check_context
from sales_engine.core.exceptions import InvalidStatusTransition, ValidationFailed
from sales_engine.models.delivery import Delivery, DeliveryItem
from sales_engine.models.enums import (
    DeliveryStatus,
    DocumentType,
    InvoiceStatus,
    PurchaseOrderStatus,
    QuotationStatus,
    SalesOrderStatus,
)
from sales_engine.models.invoice import Invoice, InvoiceItem
from sales_engine.models.purchase_order import PurchaseOrder, PurchaseOrderItem
from sales_engine.models.sales_order import SalesOrder, SalesOrderItem
from sales_engine.repositories.delivery import DeliveryRepository
from sales_engine.repositories.invoice import InvoiceRepository
from sales_engine.repositories.purchase_order import PurchaseOrderRepository
from sales_engine.repositories.quotation import QuotationRepository
from sales_engine.repositories.sales_order import SalesOrderRepository
from sales_engine.schemas.conversion import (
    DeliveryConversionOptions,
    InvoiceConversionOptions,
    PurchaseOrderConversionOptions,
    SalesOrderConversionOptions,
)
from sales_engine.services.financials import DocumentTotals
from sales_engine.services.master_data import MasterDataReader

logger = logging.getLogger(__name__)

PRODUCT_FIELDS = ("product_id", "product_name", "product_code", "description", "quantity")
LINE_FIELDS = PRODUCT_FIELDS + ("unit_price", "discount", "tax", "total")

# 可以生成下游单据的销售订单状态
PURCHASABLE = (SalesOrderStatus.CONFIRMED.value, SalesOrderStatus.PROCESSING.value)
INVOICEABLE = (
    SalesOrderStatus.CONFIRMED.value,
    SalesOrderStatus.PROCESSING.value,
    SalesOrderStatus.COMPLETED.value,
)
DELIVERABLE = (SalesOrderStatus.CONFIRMED.value, SalesOrderStatus.PROCESSING.value)


def snapshot_items(items, fields: Sequence[str] = LINE_FIELDS) -> List[Dict[str, Any]]:
    """明细 → 普通字典（逐字段复制）"""
    return [{field: getattr(item, field) for field in fields} for item in items]


def snapshot_totals(doc) -> DocumentTotals:
    return DocumentTotals(
        subtotal=doc.subtotal,
        tax_total=doc.tax_total,
        discount_total=doc.discount_total,
        grand_total=doc.grand_total,
    )


class ConversionEngine:
    """单据转换服务"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.quotations = QuotationRepository(db)
        self.sales_orders = SalesOrderRepository(db)
        self.purchase_orders = PurchaseOrderRepository(db)
        self.invoices = InvoiceRepository(db)
        self.deliveries = DeliveryRepository(db)
        self.master = MasterDataReader(db)

    @staticmethod
    def _require_status(document_type: str, current: str, allowed: Sequence[str], action: str):
        if current not in allowed:
            logger.warning(f"⛔ {document_type} 状态 {current} 不能{action}")
            raise InvalidStatusTransition(
                document_type,
                current,
                action,
                message=f"{document_type} 当前状态 {current} 不能{action}（需要: {', '.join(allowed)}）",
                allowed=allowed,
            )

    @staticmethod
    def _select_items(items: List[Dict[str, Any]], item_ids: Optional[List[int]], source_no: str):
        """按明细ID挑选要复制的行，不填返回全部"""
        if item_ids is None:
            return items
        by_id = {item["id"]: item for item in items}
        missing = [item_id for item_id in item_ids if item_id not in by_id]
        if missing:
            raise ValidationFailed(
                f"明细 {', '.join(str(i) for i in missing)} 不属于销售订单 {source_no}",
                field="item_ids",
            )
        return [by_id[item_id] for item_id in dict.fromkeys(item_ids)]

    # ===== 报价单 → 销售订单 =====

    async def convert_quotation_to_sales_order(
        self,
        ctx: Optional[OperationContext],
        quotation_id: int,
        options: Optional[SalesOrderConversionOptions] = None,
    ) -> SalesOrder:
        """
        已接受的报价单转换为销售订单

        联系人、金额、备注原样复制，条款成为付款条件，新订单直接为已确认状态。
        """
        check_context(ctx)
        options = options or SalesOrderConversionOptions()

        quotation = await self.quotations.get_by_id(ctx, quotation_id)
        self._require_status(
            DocumentType.QUOTATION.value, quotation.status, (QuotationStatus.ACCEPTED.value,), "转换为销售订单"
        )
        if not quotation.items:
            raise ValidationFailed(f"报价单 {quotation.document_no} 没有明细，不能转换", field="items")

        source_no = quotation.document_no
        header = {
            "contact_id": quotation.contact_id,
            "quotation_id": quotation.id,
            "notes": quotation.notes,
            "payment_terms": quotation.terms,
            "shipping_address": options.shipping_address,
            "expected_date": options.expected_date
            or datetime.utcnow() + timedelta(days=settings.SALES_ORDER_LEAD_DAYS),
        }
        totals = snapshot_totals(quotation)
        items = snapshot_items(quotation.items)

        def build():
            order = SalesOrder(**header)
            order.status = SalesOrderStatus.CONFIRMED.value
            order.copy_totals_from(totals)
            return order, [SalesOrderItem(**values) for values in items]

        order = await self.sales_orders._insert_with_number(ctx, build, options.document_no)
        logger.info(f"🔁 报价单 {source_no} 转换为销售订单 {order.document_no}")
        return order

    # ===== 销售订单 → 采购单 =====

    async def create_purchase_order_from_sales_order(
        self,
        ctx: Optional[OperationContext],
        sales_order_id: int,
        options: Optional[PurchaseOrderConversionOptions] = None,
    ) -> PurchaseOrder:
        """已确认/处理中的销售订单生成采购单（可指定供应商）"""
        check_context(ctx)
        options = options or PurchaseOrderConversionOptions()

        order = await self.sales_orders.get_by_id(ctx, sales_order_id)
        self._require_status(DocumentType.SALES_ORDER.value, order.status, PURCHASABLE, "生成采购单")
        if not order.items:
            raise ValidationFailed(f"销售订单 {order.document_no} 没有明细，不能生成采购单", field="items")

        contact_id = order.contact_id
        if options.contact_id is not None:
            await self.master.require_contact(ctx, options.contact_id)
            contact_id = options.contact_id

        source_no = order.document_no
        header = {
            "contact_id": contact_id,
            "sales_order_id": order.id,
            "so_no": order.document_no,
            "payment_terms": order.payment_terms,
            "shipping_address": order.shipping_address,
            "notes": options.notes if options.notes is not None else order.notes,
            "expected_date": options.expected_date
            or datetime.utcnow() + timedelta(days=settings.PURCHASE_ORDER_LEAD_DAYS),
        }
        totals = snapshot_totals(order)
        items = snapshot_items(order.items)

        def build():
            purchase_order = PurchaseOrder(**header)
            purchase_order.status = PurchaseOrderStatus.DRAFT.value
            purchase_order.copy_totals_from(totals)
            return purchase_order, [PurchaseOrderItem(**values) for values in items]

        purchase_order = await self.purchase_orders._insert_with_number(ctx, build, options.document_no)
        logger.info(f"🔁 销售订单 {source_no} 生成采购单 {purchase_order.document_no}")
        return purchase_order

    # ===== 销售订单 → 发票 =====

    async def create_invoice_from_sales_order(
        self,
        ctx: Optional[OperationContext],
        sales_order_id: int,
        options: Optional[InvoiceConversionOptions] = None,
    ) -> Invoice:
        """销售订单开票，可以只开部分明细，金额按复制的明细重算"""
        check_context(ctx)
        options = options or InvoiceConversionOptions()

        order = await self.sales_orders.get_by_id(ctx, sales_order_id)
        self._require_status(DocumentType.SALES_ORDER.value, order.status, INVOICEABLE, "开票")

        source_no = order.document_no
        items = self._select_items(snapshot_items(order.items, ("id",) + LINE_FIELDS), options.item_ids, source_no)
        if not items:
            raise ValidationFailed(f"销售订单 {source_no} 没有可开票的明细", field="items")
        for values in items:
            values.pop("id")

        issue_date = options.issue_date or datetime.utcnow()
        due_date = options.due_date or issue_date + timedelta(days=settings.INVOICE_DUE_DAYS)
        if due_date < issue_date:
            raise ValidationFailed("到期日不能早于开票日期", field="due_date")

        header = {
            "contact_id": order.contact_id,
            "sales_order_id": order.id,
            "so_no": order.document_no,
            "payment_terms": order.payment_terms,
            "issue_date": issue_date,
            "due_date": due_date,
            "notes": options.notes if options.notes is not None else order.notes,
        }

        def build():
            invoice = Invoice(**header)
            invoice.status = InvoiceStatus.DRAFT.value
            invoice_items = [InvoiceItem(**values) for values in items]
            for item in invoice_items:
                item.calculate()
            invoice.recalculate_totals(invoice_items)
            return invoice, invoice_items

        invoice = await self.invoices._insert_with_number(ctx, build, options.document_no)
        logger.info(f"🧾 销售订单 {source_no} 开出发票 {invoice.document_no} ¥{invoice.grand_total}")
        return invoice

    # ===== 销售订单 → 发货单 =====

    async def create_delivery_from_sales_order(
        self,
        ctx: Optional[OperationContext],
        sales_order_id: int,
        options: Optional[DeliveryConversionOptions] = None,
    ) -> Delivery:
        """销售订单生成发货单，只复制数量和商品快照"""
        check_context(ctx)
        options = options or DeliveryConversionOptions()

        order = await self.sales_orders.get_by_id(ctx, sales_order_id)
        self._require_status(DocumentType.SALES_ORDER.value, order.status, DELIVERABLE, "发货")

        source_no = order.document_no
        items = self._select_items(snapshot_items(order.items, ("id",) + PRODUCT_FIELDS), options.item_ids, source_no)
        if not items:
            raise ValidationFailed(f"销售订单 {source_no} 没有可发货的明细", field="items")
        for values in items:
            values.pop("id")

        header = {
            "contact_id": order.contact_id,
            "sales_order_id": order.id,
            "so_no": order.document_no,
            "delivery_date": options.delivery_date,
            "shipping_method": options.shipping_method,
            "shipping_address": options.shipping_address or order.shipping_address,
            "notes": options.notes,
        }

        def build():
            delivery = Delivery(**header)
            delivery.status = DeliveryStatus.PENDING.value
            return delivery, [DeliveryItem(received_qty=0, **values) for values in items]

        delivery = await self.deliveries._insert_with_number(ctx, build, options.document_no)
        logger.info(f"🚚 销售订单 {source_no} 生成发货单 {delivery.document_no}")
        return delivery
