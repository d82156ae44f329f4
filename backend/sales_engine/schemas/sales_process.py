"""销售流程Schema"""
from typing import Any, Optional, List
from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal

from sales_engine.schemas.common import ContactSnapshot


class SalesProcessCreate(BaseModel):
    """创建销售流程"""
    contact_id: int = Field(..., description="联系人ID")
    notes: Optional[str] = Field(None, description="备注")


class SalesProcessUpdate(BaseModel):
    """更新销售流程（金额和利润是派生数据，不能直接修改）"""
    contact_id: Optional[int] = None
    status: Optional[str] = None
    notes: Optional[str] = None


class SalesProcessResponse(BaseModel):
    """销售流程响应"""
    id: int
    contact_id: int
    contact: Optional[ContactSnapshot] = None
    status: str
    status_display: str = ""
    total_value: Decimal = Decimal("0")
    profit: Decimal = Decimal("0")
    notes: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SalesProcessFilter(BaseModel):
    """销售流程筛选"""
    status: Optional[List[str]] = Field(None, description="阶段（多选）")
    contact_id: Optional[int] = Field(None, description="联系人ID")
    start_date: Optional[datetime] = Field(None, description="创建时间起")
    end_date: Optional[datetime] = Field(None, description="创建时间止")
    search_query: Optional[str] = Field(None, description="关键字：备注、联系人名称/公司")


class Profitability(BaseModel):
    """流程盈利"""
    revenue: Decimal = Decimal("0")
    cost: Decimal = Decimal("0")
    profit: Decimal = Decimal("0")
    margin: Decimal = Decimal("0")


class TimelineEvent(BaseModel):
    """流程时间线事件"""
    occurred_at: datetime
    document_type: str
    document_id: int
    document_no: str = ""
    status: str = ""
    description: str = ""
    amount: Optional[Decimal] = None


class SalesProcessFlow(BaseModel):
    """完整流程视图（ORM 对象原样返回，由调用方转换）"""
    process: Any
    quotations: List[Any] = []
    sales_orders: List[Any] = []
    purchase_orders: List[Any] = []
    deliveries: List[Any] = []
    invoices: List[Any] = []
    payments: List[Any] = []
    profitability: Profitability = Profitability()
    timeline: List[TimelineEvent] = []

    class Config:
        arbitrary_types_allowed = True
