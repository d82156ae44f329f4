"""发票Schema"""
from typing import Optional, List
from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal

from sales_engine.schemas.common import (
    DocumentFilter, DocumentResponseBase, LineItemCreate, LineItemResponse, TotalsResponseMixin,
)


class InvoiceBase(BaseModel):
    """发票基础字段"""
    contact_id: int = Field(..., description="联系人ID")
    sales_order_id: Optional[int] = Field(None, description="来源销售订单ID")
    so_no: Optional[str] = Field(None, max_length=50, description="来源销售订单号")
    issue_date: Optional[datetime] = Field(None, description="开票日期，不填为当前时间")
    due_date: Optional[datetime] = Field(None, description="到期日")
    payment_terms: Optional[str] = Field(None, description="付款条件")
    notes: Optional[str] = Field(None, description="备注")


class InvoiceCreate(InvoiceBase):
    """创建发票（已收金额只能通过收款记录变化）"""
    document_no: Optional[str] = Field(None, max_length=50, description="单号，不填自动生成")
    items: List[LineItemCreate] = Field(default_factory=list, description="明细列表")


class InvoiceUpdate(BaseModel):
    """更新发票（传入 items 时整体替换明细）"""
    contact_id: Optional[int] = None
    issue_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    payment_terms: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[str] = None
    items: Optional[List[LineItemCreate]] = None


class InvoiceItemResponse(LineItemResponse):
    invoice_id: int


class InvoiceResponse(DocumentResponseBase, TotalsResponseMixin):
    """发票响应"""
    sales_order_id: Optional[int] = None
    so_no: Optional[str] = None
    issue_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    amount_paid: Decimal = Decimal("0")
    balance_due: Decimal = Decimal("0")
    payment_terms: Optional[str] = None
    items: List[InvoiceItemResponse] = []


class InvoiceFilter(DocumentFilter):
    """发票筛选"""
    sales_order_id: Optional[int] = Field(None, description="来源销售订单ID")
    due_date_start: Optional[datetime] = Field(None, description="到期日起")
    due_date_end: Optional[datetime] = Field(None, description="到期日止")
    is_overdue: Optional[bool] = Field(None, description="是否逾期（未结清且已过到期日）")
