"""报价单Schema"""
from typing import Optional, List
from pydantic import BaseModel, Field
from datetime import datetime

from sales_engine.schemas.common import (
    DocumentFilter, DocumentResponseBase, LineItemCreate, LineItemResponse, TotalsResponseMixin,
)


class QuotationBase(BaseModel):
    """报价单基础字段"""
    contact_id: int = Field(..., description="联系人ID")
    expiry_date: Optional[datetime] = Field(None, description="有效期至")
    terms: Optional[str] = Field(None, description="条款")
    notes: Optional[str] = Field(None, description="备注")


class QuotationCreate(QuotationBase):
    """创建报价单"""
    document_no: Optional[str] = Field(None, max_length=50, description="单号，不填自动生成")
    items: List[LineItemCreate] = Field(default_factory=list, description="明细列表")


class QuotationUpdate(BaseModel):
    """更新报价单（传入 items 时整体替换明细）"""
    contact_id: Optional[int] = None
    expiry_date: Optional[datetime] = None
    terms: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[str] = None
    items: Optional[List[LineItemCreate]] = None


class QuotationItemResponse(LineItemResponse):
    quotation_id: int


class QuotationResponse(DocumentResponseBase, TotalsResponseMixin):
    """报价单响应"""
    expiry_date: Optional[datetime] = None
    terms: Optional[str] = None
    items: List[QuotationItemResponse] = []


class QuotationFilter(DocumentFilter):
    """报价单筛选"""
    expiry_date_start: Optional[datetime] = Field(None, description="有效期起")
    expiry_date_end: Optional[datetime] = Field(None, description="有效期止")


class ContactQuotationSummary(BaseModel):
    """联系人报价汇总"""
    contact_id: int
    total_quotations: int = 0
    accepted_quotations: int = 0
    total_value: float = 0
    accepted_value: float = 0
    conversion_rate: float = 0
