# models包初始化文件
# 销售单据模型 + 只读主数据（联系人、商品）

from sales_engine.models.contact import Contact
from sales_engine.models.product import Product
from sales_engine.models.quotation import Quotation, QuotationItem
from sales_engine.models.sales_order import SalesOrder, SalesOrderItem
from sales_engine.models.purchase_order import PurchaseOrder, PurchaseOrderItem
from sales_engine.models.delivery import Delivery, DeliveryItem
from sales_engine.models.invoice import Invoice, InvoiceItem
from sales_engine.models.payment import Payment
from sales_engine.models.sales_process import (
    SalesProcess,
    process_quotations,
    process_sales_orders,
    process_purchase_orders,
    process_deliveries,
    process_invoices,
)
from sales_engine.models.document_sequence import DocumentSequence

__all__ = [
    "Contact",
    "Product",
    "Quotation",
    "QuotationItem",
    "SalesOrder",
    "SalesOrderItem",
    "PurchaseOrder",
    "PurchaseOrderItem",
    "Delivery",
    "DeliveryItem",
    "Invoice",
    "InvoiceItem",
    "Payment",
    "SalesProcess",
    "process_quotations",
    "process_sales_orders",
    "process_purchase_orders",
    "process_deliveries",
    "process_invoices",
    "DocumentSequence",
]
