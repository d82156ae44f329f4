"""
单据状态枚举

状态列在库中存字符串，取值限定在这里列出的枚举值。
"""

from enum import Enum


class DocumentType(str, Enum):
    QUOTATION = "quotation"
    SALES_ORDER = "sales_order"
    PURCHASE_ORDER = "purchase_order"
    DELIVERY = "delivery"
    INVOICE = "invoice"


class QuotationStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class SalesOrderStatus(str, Enum):
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PurchaseOrderStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    CONFIRMED = "confirmed"
    RECEIVED = "received"
    CANCELLED = "cancelled"


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    RETURNED = "returned"


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class SalesProcessStatus(str, Enum):
    DRAFT = "draft"
    QUOTATION = "quotation"
    SALES_ORDER = "sales_order"
    PURCHASE = "purchase"
    DELIVERY = "delivery"
    INVOICING = "invoicing"
    PAYMENT = "payment"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


STATUS_DISPLAY = {
    "draft": "草稿",
    "sent": "已发送",
    "accepted": "已接受",
    "rejected": "已拒绝",
    "expired": "已过期",
    "cancelled": "已取消",
    "confirmed": "已确认",
    "processing": "处理中",
    "completed": "已完成",
    "received": "已收货",
    "pending": "待发货",
    "shipped": "已发货",
    "delivered": "已送达",
    "returned": "已退回",
    "partial": "部分收款",
    "paid": "已结清",
    "overdue": "已逾期",
    "quotation": "报价阶段",
    "sales_order": "订单阶段",
    "purchase": "采购阶段",
    "delivery": "发货阶段",
    "invoicing": "开票阶段",
    "payment": "收款阶段",
}


def status_display(status: str) -> str:
    """状态显示名称"""
    return STATUS_DISPLAY.get(status, status)
