"""
采购单模型

通常由销售订单生成（sales_order_id / so_no 反向引用），联系人为供应商
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sales_engine.db.base import Base
from sales_engine.models.enums import PurchaseOrderStatus
from sales_engine.models.mixins import DocumentMixin, FinancialTotalsMixin, LineItemMixin


class PurchaseOrder(DocumentMixin, FinancialTotalsMixin, Base):
    """采购单"""
    __tablename__ = "purchase_orders"

    status = Column(String(20), nullable=False, default=PurchaseOrderStatus.DRAFT.value, index=True, comment="状态")
    sales_order_id = Column(Integer, ForeignKey("sales_orders.id"), index=True, comment="来源销售订单ID")
    so_no = Column(String(50), comment="来源销售订单号")
    expected_date = Column(DateTime, index=True, comment="预计到货日期")
    payment_terms = Column(Text, comment="付款条件")
    shipping_address = Column(Text, comment="收货地址")

    items = relationship(
        "PurchaseOrderItem",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderItem.id",
    )


class PurchaseOrderItem(LineItemMixin, Base):
    """采购单明细"""
    __tablename__ = "purchase_order_items"

    purchase_order_id = Column(Integer, ForeignKey("purchase_orders.id"), nullable=False, index=True)

    purchase_order = relationship("PurchaseOrder", back_populates="items")
