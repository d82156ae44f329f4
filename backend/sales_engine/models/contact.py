"""
联系人模型 - 外部主数据

联系人由主数据模块维护，销售引擎只按 ID 引用并做只读展示。
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime
from sales_engine.db.base import Base


class Contact(Base):
    """联系人（客户/供应商/潜在客户）"""
    __tablename__ = "contacts"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, index=True, comment="姓名")
    company_name = Column(String(200), comment="公司名称")

    # customer: 客户
    # supplier: 供应商
    # lead: 潜在客户
    type = Column(String(20), nullable=False, default="customer", index=True, comment="联系人类型")

    email = Column(String(100), comment="邮箱")
    phone = Column(String(30), comment="电话")
    address = Column(Text, comment="地址")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Contact {self.id}: {self.name}>"

    @property
    def display_name(self) -> str:
        if self.company_name:
            return f"{self.name}（{self.company_name}）"
        return self.name

    @property
    def type_display(self) -> str:
        type_map = {
            "customer": "客户",
            "supplier": "供应商",
            "lead": "潜在客户",
        }
        return type_map.get(self.type, self.type)
