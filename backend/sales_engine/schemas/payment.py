"""收款记录Schema"""
from typing import Optional, List
from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal


class PaymentCreate(BaseModel):
    """登记收款"""
    invoice_id: int = Field(..., description="发票ID")
    amount: Decimal = Field(..., description="收款金额（必须大于 0）")
    payment_date: Optional[datetime] = Field(None, description="收款日期，不填为当前时间")
    payment_method: str = Field(default="bank_transfer", max_length=30, description="收款方式")
    reference: Optional[str] = Field(None, max_length=100, description="凭证号/流水号")
    notes: Optional[str] = Field(None, description="备注")


class PaymentUpdate(BaseModel):
    """修改收款（金额变化按差额调整发票已收金额）"""
    amount: Optional[Decimal] = None
    payment_date: Optional[datetime] = None
    payment_method: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None


class PaymentResponse(BaseModel):
    """收款响应"""
    id: int
    invoice_id: int
    amount: Decimal
    payment_date: datetime
    payment_method: str
    method_display: str = ""
    reference: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PaymentFilter(BaseModel):
    """收款筛选"""
    invoice_id: Optional[int] = Field(None, description="发票ID")
    payment_method: Optional[List[str]] = Field(None, description="收款方式（多选）")
    start_date: Optional[datetime] = Field(None, description="收款日期起")
    end_date: Optional[datetime] = Field(None, description="收款日期止")
    min_amount: Optional[Decimal] = Field(None, description="最小金额")
    max_amount: Optional[Decimal] = Field(None, description="最大金额")
    search_query: Optional[str] = Field(None, description="关键字：凭证号、备注")
