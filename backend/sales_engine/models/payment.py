"""
收款记录模型

收款记录的增删改都通过收款核销服务完成，和发票已收金额在同一事务中更新
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, DECIMAL
from sales_engine.db.base import Base


class Payment(Base):
    """收款记录"""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)

    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False, index=True, comment="发票ID")

    amount = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"), comment="收款金额")
    payment_date = Column(DateTime, nullable=False, default=datetime.utcnow, index=True, comment="收款日期")

    # cash: 现金 / bank_transfer: 银行转账 / credit_card: 信用卡 / check: 支票 / other: 其他
    payment_method = Column(String(30), nullable=False, default="bank_transfer", index=True, comment="收款方式")

    reference = Column(String(100), comment="凭证号/流水号")
    notes = Column(Text, comment="备注")

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Payment {self.id}: invoice={self.invoice_id} ¥{self.amount}>"

    @property
    def method_display(self) -> str:
        method_map = {
            "cash": "现金",
            "bank_transfer": "银行转账",
            "credit_card": "信用卡",
            "check": "支票",
            "other": "其他",
        }
        return method_map.get(self.payment_method, self.payment_method)
