"""
报价单模型

报价单 → 接受后可转换为销售订单（转换不会修改报价单本身）
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sales_engine.db.base import Base
from sales_engine.models.enums import QuotationStatus
from sales_engine.models.mixins import DocumentMixin, FinancialTotalsMixin, LineItemMixin


class Quotation(DocumentMixin, FinancialTotalsMixin, Base):
    """报价单"""
    __tablename__ = "quotations"

    status = Column(String(20), nullable=False, default=QuotationStatus.DRAFT.value, index=True, comment="状态")
    expiry_date = Column(DateTime, index=True, comment="有效期至")
    terms = Column(Text, comment="条款（转换时成为销售订单的付款条件）")

    items = relationship(
        "QuotationItem",
        back_populates="quotation",
        cascade="all, delete-orphan",
        order_by="QuotationItem.id",
    )


class QuotationItem(LineItemMixin, Base):
    """报价单明细"""
    __tablename__ = "quotation_items"

    quotation_id = Column(Integer, ForeignKey("quotations.id"), nullable=False, index=True)

    quotation = relationship("Quotation", back_populates="items")
