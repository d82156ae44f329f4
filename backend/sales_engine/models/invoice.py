"""
发票模型

收款状态由已收金额驱动：
- 已收 >= 总额 → paid
- 0 < 已收 < 总额 → partial
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, DECIMAL
from sqlalchemy.orm import relationship
from sales_engine.db.base import Base
from sales_engine.models.enums import InvoiceStatus
from sales_engine.models.mixins import DocumentMixin, FinancialTotalsMixin, LineItemMixin


class Invoice(DocumentMixin, FinancialTotalsMixin, Base):
    """发票"""
    __tablename__ = "invoices"

    status = Column(String(20), nullable=False, default=InvoiceStatus.DRAFT.value, index=True, comment="状态")
    sales_order_id = Column(Integer, ForeignKey("sales_orders.id"), index=True, comment="来源销售订单ID")
    so_no = Column(String(50), comment="来源销售订单号")
    issue_date = Column(DateTime, default=datetime.utcnow, comment="开票日期")
    due_date = Column(DateTime, index=True, comment="到期日")
    amount_paid = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"), comment="已收金额")
    payment_terms = Column(Text, comment="付款条件")

    items = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.id",
    )

    @property
    def balance_due(self) -> Decimal:
        """未收金额"""
        return max((self.grand_total or Decimal("0")) - (self.amount_paid or Decimal("0")), Decimal("0.00"))

    @property
    def is_overdue(self) -> bool:
        if self.status in (InvoiceStatus.PAID.value, InvoiceStatus.CANCELLED.value):
            return False
        return self.due_date is not None and self.due_date < datetime.utcnow()

    def derive_payment_status(self) -> str:
        """
        按已收金额推导应处的状态（只计算，不修改发票）

        - 已收 >= 总额 → paid
        - 0 < 已收 < 总额 → partial
        - 已收为 0 且之前是 partial/paid（付款被撤销）→ sent
        - 其他情况保持不变
        """
        paid = self.amount_paid or Decimal("0")
        total = self.grand_total or Decimal("0")

        if paid > Decimal("0") and paid >= total:
            return InvoiceStatus.PAID.value
        if Decimal("0") < paid < total:
            return InvoiceStatus.PARTIAL.value
        if paid <= Decimal("0") and self.status in (InvoiceStatus.PARTIAL.value, InvoiceStatus.PAID.value):
            return InvoiceStatus.SENT.value
        return self.status


class InvoiceItem(LineItemMixin, Base):
    """发票明细"""
    __tablename__ = "invoice_items"

    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False, index=True)

    invoice = relationship("Invoice", back_populates="items")
