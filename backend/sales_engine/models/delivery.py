"""
发货单模型

发货单只记录数量，不记录金额：
pending（待发货）→ shipped（已发货）→ delivered（已送达），已发货/已送达后可退回
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sales_engine.db.base import Base
from sales_engine.models.enums import DeliveryStatus
from sales_engine.models.mixins import DocumentMixin, ProductSnapshotMixin


class Delivery(DocumentMixin, Base):
    """发货单"""
    __tablename__ = "deliveries"

    status = Column(String(20), nullable=False, default=DeliveryStatus.PENDING.value, index=True, comment="状态")

    # 发货单可以只挂在销售订单或采购单上，联系人从来源单据带出
    contact_id = Column(Integer, ForeignKey("contacts.id"), index=True, comment="联系人ID")

    sales_order_id = Column(Integer, ForeignKey("sales_orders.id"), index=True, comment="来源销售订单ID")
    so_no = Column(String(50), comment="来源销售订单号")
    purchase_order_id = Column(Integer, ForeignKey("purchase_orders.id"), index=True, comment="来源采购单ID")
    po_no = Column(String(50), comment="来源采购单号")

    delivery_date = Column(DateTime, index=True, comment="发货日期")
    received_date = Column(DateTime, comment="签收日期")
    shipping_method = Column(String(50), comment="运输方式")
    tracking_number = Column(String(100), index=True, comment="物流单号")
    shipping_address = Column(Text, comment="收货地址")

    items = relationship(
        "DeliveryItem",
        back_populates="delivery",
        cascade="all, delete-orphan",
        order_by="DeliveryItem.id",
    )

    @property
    def is_fully_received(self) -> bool:
        return bool(self.items) and all(item.is_fully_received for item in self.items)


class DeliveryItem(ProductSnapshotMixin, Base):
    """发货单明细"""
    __tablename__ = "delivery_items"

    delivery_id = Column(Integer, ForeignKey("deliveries.id"), nullable=False, index=True)
    received_qty = Column(Integer, nullable=False, default=0, comment="已签收数量")
    notes = Column(Text, comment="备注")

    delivery = relationship("Delivery", back_populates="items")

    @property
    def is_fully_received(self) -> bool:
        return (self.received_qty or 0) >= self.quantity

    @property
    def receipt_status(self) -> str:
        """签收状态：pending / partial / complete"""
        received = self.received_qty or 0
        if received <= 0:
            return "pending"
        if received < self.quantity:
            return "partial"
        return "complete"
