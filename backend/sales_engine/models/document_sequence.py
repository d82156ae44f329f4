"""
单号序列

每种单据、每个年份一行计数器，(document_type, year) 唯一
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint
from sales_engine.db.base import Base


class DocumentSequence(Base):
    """单号序列计数器"""
    __tablename__ = "document_sequences"
    __table_args__ = (
        UniqueConstraint("document_type", "year", name="uq_document_sequences_type_year"),
    )

    id = Column(Integer, primary_key=True, index=True)
    document_type = Column(String(30), nullable=False, comment="单据类型")
    year = Column(Integer, nullable=False, comment="年份")
    current_value = Column(Integer, nullable=False, default=0, comment="当前序号")
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<DocumentSequence {self.document_type}-{self.year}: {self.current_value}>"
