"""采购单Schema"""
from typing import Optional, List
from pydantic import BaseModel, Field
from datetime import datetime

from sales_engine.schemas.common import (
    DocumentFilter, DocumentResponseBase, LineItemCreate, LineItemResponse, TotalsResponseMixin,
)


class PurchaseOrderBase(BaseModel):
    """采购单基础字段"""
    contact_id: int = Field(..., description="供应商（联系人）ID")
    sales_order_id: Optional[int] = Field(None, description="来源销售订单ID")
    so_no: Optional[str] = Field(None, max_length=50, description="来源销售订单号")
    expected_date: Optional[datetime] = Field(None, description="预计到货日期")
    payment_terms: Optional[str] = Field(None, description="付款条件")
    shipping_address: Optional[str] = Field(None, description="收货地址")
    notes: Optional[str] = Field(None, description="备注")


class PurchaseOrderCreate(PurchaseOrderBase):
    """创建采购单"""
    document_no: Optional[str] = Field(None, max_length=50, description="单号，不填自动生成")
    items: List[LineItemCreate] = Field(default_factory=list, description="明细列表")


class PurchaseOrderUpdate(BaseModel):
    """更新采购单（传入 items 时整体替换明细）"""
    contact_id: Optional[int] = None
    expected_date: Optional[datetime] = None
    payment_terms: Optional[str] = None
    shipping_address: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[str] = None
    items: Optional[List[LineItemCreate]] = None


class PurchaseOrderItemResponse(LineItemResponse):
    purchase_order_id: int


class PurchaseOrderResponse(DocumentResponseBase, TotalsResponseMixin):
    """采购单响应"""
    sales_order_id: Optional[int] = None
    so_no: Optional[str] = None
    expected_date: Optional[datetime] = None
    payment_terms: Optional[str] = None
    shipping_address: Optional[str] = None
    items: List[PurchaseOrderItemResponse] = []


class PurchaseOrderFilter(DocumentFilter):
    """采购单筛选"""
    sales_order_id: Optional[int] = Field(None, description="来源销售订单ID")
    expected_date_start: Optional[datetime] = Field(None, description="预计到货日期起")
    expected_date_end: Optional[datetime] = Field(None, description="预计到货日期止")
