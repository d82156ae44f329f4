"""
商品模型 - 外部主数据

明细行只保存商品名称/编码快照，价格以明细行为准，不从这里取财务数据。
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Text, DateTime, DECIMAL
from sales_engine.db.base import Base


class Product(Base):
    """商品"""
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False, index=True, comment="商品名称")
    code = Column(String(50), unique=True, index=True, comment="商品编码")
    description = Column(Text, comment="描述")
    price = Column(DECIMAL(12, 2), default=Decimal("0.00"), comment="参考售价")
    cost = Column(DECIMAL(12, 2), default=Decimal("0.00"), comment="参考成本")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Product {self.code}: {self.name}>"
