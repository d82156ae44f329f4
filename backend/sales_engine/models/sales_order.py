"""
销售订单模型

来源：报价单转换（quotation_id）或直接创建
下游：采购单、发货单、发票（均通过 sales_order_id 反向引用，不在这里建对象关系）
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sales_engine.db.base import Base
from sales_engine.models.enums import SalesOrderStatus
from sales_engine.models.mixins import DocumentMixin, FinancialTotalsMixin, LineItemMixin


class SalesOrder(DocumentMixin, FinancialTotalsMixin, Base):
    """销售订单"""
    __tablename__ = "sales_orders"

    status = Column(String(20), nullable=False, default=SalesOrderStatus.DRAFT.value, index=True, comment="状态")
    quotation_id = Column(Integer, ForeignKey("quotations.id"), index=True, comment="来源报价单ID")
    expected_date = Column(DateTime, index=True, comment="预计交货日期")
    payment_terms = Column(Text, comment="付款条件")
    shipping_address = Column(Text, comment="收货地址")

    items = relationship(
        "SalesOrderItem",
        back_populates="sales_order",
        cascade="all, delete-orphan",
        order_by="SalesOrderItem.id",
    )


class SalesOrderItem(LineItemMixin, Base):
    """销售订单明细"""
    __tablename__ = "sales_order_items"

    sales_order_id = Column(Integer, ForeignKey("sales_orders.id"), nullable=False, index=True)

    sales_order = relationship("SalesOrder", back_populates="items")
