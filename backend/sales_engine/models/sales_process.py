"""
销售流程模型 - 报表用聚合

把同一联系人的报价单、销售订单、采购单、发货单、发票串成一条流程。
total_value / profit 只是派生缓存，每次关联单据或重新核算时重算，不作为财务依据。
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, DECIMAL, Table
from sqlalchemy.orm import relationship
from sales_engine.db.base import Base
from sales_engine.models.enums import SalesProcessStatus, status_display


def _link_table(name: str, column: str, target: str) -> Table:
    return Table(
        name,
        Base.metadata,
        Column("process_id", Integer, ForeignKey("sales_processes.id", ondelete="CASCADE"), primary_key=True),
        Column(column, Integer, ForeignKey(f"{target}.id", ondelete="CASCADE"), primary_key=True),
        Column("created_at", DateTime, default=datetime.utcnow),
    )


process_quotations = _link_table("process_quotations", "quotation_id", "quotations")
process_sales_orders = _link_table("process_sales_orders", "sales_order_id", "sales_orders")
process_purchase_orders = _link_table("process_purchase_orders", "purchase_order_id", "purchase_orders")
process_deliveries = _link_table("process_deliveries", "delivery_id", "deliveries")
process_invoices = _link_table("process_invoices", "invoice_id", "invoices")


class SalesProcess(Base):
    """销售流程"""
    __tablename__ = "sales_processes"

    id = Column(Integer, primary_key=True, index=True)
    contact_id = Column(Integer, ForeignKey("contacts.id"), nullable=False, index=True, comment="联系人ID")
    status = Column(String(20), nullable=False, default=SalesProcessStatus.DRAFT.value, index=True, comment="流程阶段")

    # 派生数据（缓存）
    total_value = Column(DECIMAL(12, 2), default=Decimal("0.00"), comment="流程金额")
    profit = Column(DECIMAL(12, 2), default=Decimal("0.00"), comment="毛利")

    notes = Column(Text, comment="备注")
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    contact = relationship("Contact")
    quotations = relationship("Quotation", secondary=process_quotations, order_by="Quotation.id")
    sales_orders = relationship("SalesOrder", secondary=process_sales_orders, order_by="SalesOrder.id")
    purchase_orders = relationship("PurchaseOrder", secondary=process_purchase_orders, order_by="PurchaseOrder.id")
    deliveries = relationship("Delivery", secondary=process_deliveries, order_by="Delivery.id")
    invoices = relationship("Invoice", secondary=process_invoices, order_by="Invoice.id")

    def __repr__(self):
        return f"<SalesProcess {self.id} ({self.status})>"

    @property
    def status_display(self) -> str:
        return status_display(self.status)
