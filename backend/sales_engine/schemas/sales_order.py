"""销售订单Schema"""
from typing import Optional, List
from pydantic import BaseModel, Field
from datetime import datetime

from sales_engine.schemas.common import (
    DocumentFilter, DocumentResponseBase, LineItemCreate, LineItemResponse, TotalsResponseMixin,
)


class SalesOrderBase(BaseModel):
    """销售订单基础字段"""
    contact_id: int = Field(..., description="联系人ID")
    quotation_id: Optional[int] = Field(None, description="来源报价单ID")
    expected_date: Optional[datetime] = Field(None, description="预计交货日期")
    payment_terms: Optional[str] = Field(None, description="付款条件")
    shipping_address: Optional[str] = Field(None, description="收货地址")
    notes: Optional[str] = Field(None, description="备注")


class SalesOrderCreate(SalesOrderBase):
    """创建销售订单"""
    document_no: Optional[str] = Field(None, max_length=50, description="单号，不填自动生成")
    items: List[LineItemCreate] = Field(default_factory=list, description="明细列表")


class SalesOrderUpdate(BaseModel):
    """更新销售订单（传入 items 时整体替换明细）"""
    contact_id: Optional[int] = None
    expected_date: Optional[datetime] = None
    payment_terms: Optional[str] = None
    shipping_address: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[str] = None
    items: Optional[List[LineItemCreate]] = None


class SalesOrderItemResponse(LineItemResponse):
    sales_order_id: int


class SalesOrderResponse(DocumentResponseBase, TotalsResponseMixin):
    """销售订单响应"""
    quotation_id: Optional[int] = None
    expected_date: Optional[datetime] = None
    payment_terms: Optional[str] = None
    shipping_address: Optional[str] = None
    items: List[SalesOrderItemResponse] = []


class SalesOrderFilter(DocumentFilter):
    """销售订单筛选"""
    quotation_id: Optional[int] = Field(None, description="来源报价单ID")
    expected_date_start: Optional[datetime] = Field(None, description="预计交货日期起")
    expected_date_end: Optional[datetime] = Field(None, description="预计交货日期止")
    has_invoice: Optional[bool] = Field(None, description="是否已开票")
    has_purchase_order: Optional[bool] = Field(None, description="是否已生成采购单")
