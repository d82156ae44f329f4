"""
单据公共字段

所有销售单据共享：单号、联系人、状态、备注、审计时间；
带金额的单据再加上小计/税额/折扣/总额；明细行共享商品快照和金额字段。
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, DECIMAL, UniqueConstraint
from sqlalchemy.orm import declared_attr, relationship

from sales_engine.models.enums import status_display
from sales_engine.services.financials import calculate_line, calculate_totals


class DocumentMixin:
    """单据头公共字段"""

    id = Column(Integer, primary_key=True, index=True)

    # 单号（自动生成）格式：{前缀}-{年份}-{序号}，如 QT-2025-00001
    document_no = Column(String(50), nullable=False, index=True, comment="单号")

    status = Column(String(20), nullable=False, index=True, comment="状态")
    notes = Column(Text, comment="备注")

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @declared_attr
    def __table_args__(cls):
        return (UniqueConstraint("document_no", name=f"uq_{cls.__tablename__}_document_no"),)

    @declared_attr
    def contact_id(cls):
        return Column(Integer, ForeignKey("contacts.id"), nullable=False, index=True, comment="联系人ID")

    @declared_attr
    def contact(cls):
        return relationship("Contact")

    @property
    def status_display(self) -> str:
        """状态显示名称"""
        return status_display(self.status)

    @property
    def contact_name(self) -> str:
        return self.contact.name if self.contact else ""

    def __repr__(self):
        return f"<{type(self).__name__} {self.document_no} ({self.status})>"


class FinancialTotalsMixin:
    """金额汇总（从明细计算得出，不能单独写入）"""

    subtotal = Column(DECIMAL(12, 2), default=Decimal("0.00"), comment="小计（折后不含税）")
    tax_total = Column(DECIMAL(12, 2), default=Decimal("0.00"), comment="税额")
    discount_total = Column(DECIMAL(12, 2), default=Decimal("0.00"), comment="折扣合计")
    grand_total = Column(DECIMAL(12, 2), default=Decimal("0.00"), comment="总额")

    def recalculate_totals(self, items=None):
        """重新计算汇总金额"""
        totals = calculate_totals(self.items if items is None else items)
        self.subtotal = totals.subtotal
        self.tax_total = totals.tax_total
        self.discount_total = totals.discount_total
        self.grand_total = totals.grand_total
        return totals

    def copy_totals_from(self, other):
        """原样复制另一张单据的汇总（单据转换用）"""
        self.subtotal = other.subtotal
        self.tax_total = other.tax_total
        self.discount_total = other.discount_total
        self.grand_total = other.grand_total


class ProductSnapshotMixin:
    """明细行公共字段：商品快照"""

    id = Column(Integer, primary_key=True, index=True)

    product_name = Column(String(200), comment="商品名称快照")
    product_code = Column(String(50), comment="商品编码快照")
    description = Column(Text, comment="描述")
    quantity = Column(Integer, nullable=False, default=1, comment="数量")

    created_at = Column(DateTime, default=datetime.utcnow)

    @declared_attr
    def product_id(cls):
        return Column(Integer, ForeignKey("products.id"), nullable=False, index=True, comment="商品ID")

    @declared_attr
    def product(cls):
        return relationship("Product")

    def __repr__(self):
        return f"<{type(self).__name__} {self.product_id} x {self.quantity}>"


class LineItemMixin(ProductSnapshotMixin):
    """带金额的明细行"""

    unit_price = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"), comment="单价")
    discount = Column(DECIMAL(12, 2), default=Decimal("0.00"), comment="折扣金额")
    tax = Column(DECIMAL(5, 2), default=Decimal("0.00"), comment="税率（百分比）")
    # 合计 = (数量 × 单价 − 折扣) × (1 + 税率/100)
    total = Column(DECIMAL(12, 2), default=Decimal("0.00"), comment="合计")

    def calculate(self):
        """计算合计"""
        self.total = calculate_line(self.quantity, self.unit_price, self.discount, self.tax).total
        return self.total

    def __repr__(self):
        return f"<{type(self).__name__} {self.product_id} x {self.quantity} @ {self.unit_price}>"
