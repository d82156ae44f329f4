"""发货单Schema"""
from typing import Optional, List
from pydantic import BaseModel, Field
from datetime import datetime

from sales_engine.schemas.common import DocumentFilter, DocumentResponseBase


class DeliveryItemCreate(BaseModel):
    """发货明细（只有数量，没有金额）"""
    product_id: int = Field(..., description="商品ID")
    product_name: Optional[str] = Field(None, max_length=200, description="商品名称快照")
    product_code: Optional[str] = Field(None, max_length=50, description="商品编码快照")
    description: Optional[str] = Field(None, description="描述")
    quantity: int = Field(..., description="发货数量（必须大于 0）")
    received_qty: int = Field(default=0, description="已签收数量")
    notes: Optional[str] = Field(None, description="备注")


class DeliveryBase(BaseModel):
    """发货单基础字段"""
    contact_id: Optional[int] = Field(None, description="联系人ID，不填从来源单据带出")
    sales_order_id: Optional[int] = Field(None, description="来源销售订单ID")
    so_no: Optional[str] = Field(None, max_length=50, description="来源销售订单号")
    purchase_order_id: Optional[int] = Field(None, description="来源采购单ID")
    po_no: Optional[str] = Field(None, max_length=50, description="来源采购单号")
    delivery_date: Optional[datetime] = Field(None, description="发货日期")
    shipping_method: Optional[str] = Field(None, max_length=50, description="运输方式")
    tracking_number: Optional[str] = Field(None, max_length=100, description="物流单号")
    shipping_address: Optional[str] = Field(None, description="收货地址")
    notes: Optional[str] = Field(None, description="备注")


class DeliveryCreate(DeliveryBase):
    """创建发货单"""
    document_no: Optional[str] = Field(None, max_length=50, description="单号，不填自动生成")
    items: List[DeliveryItemCreate] = Field(default_factory=list, description="明细列表")


class DeliveryUpdate(BaseModel):
    """更新发货单（传入 items 时整体替换明细）"""
    contact_id: Optional[int] = None
    delivery_date: Optional[datetime] = None
    received_date: Optional[datetime] = None
    shipping_method: Optional[str] = None
    tracking_number: Optional[str] = None
    shipping_address: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[str] = None
    items: Optional[List[DeliveryItemCreate]] = None


class DeliveryItemResponse(BaseModel):
    id: int
    delivery_id: int
    product_id: int
    product_name: Optional[str] = None
    product_code: Optional[str] = None
    description: Optional[str] = None
    quantity: int
    received_qty: int = 0
    receipt_status: str = "pending"
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class DeliveryResponse(DocumentResponseBase):
    """发货单响应"""
    sales_order_id: Optional[int] = None
    so_no: Optional[str] = None
    purchase_order_id: Optional[int] = None
    po_no: Optional[str] = None
    delivery_date: Optional[datetime] = None
    received_date: Optional[datetime] = None
    shipping_method: Optional[str] = None
    tracking_number: Optional[str] = None
    shipping_address: Optional[str] = None
    items: List[DeliveryItemResponse] = []


class DeliveryFilter(DocumentFilter):
    """发货单筛选（发货单没有金额，min/max_amount 不生效）"""
    sales_order_id: Optional[int] = Field(None, description="来源销售订单ID")
    purchase_order_id: Optional[int] = Field(None, description="来源采购单ID")
    delivery_date_start: Optional[datetime] = Field(None, description="发货日期起")
    delivery_date_end: Optional[datetime] = Field(None, description="发货日期止")
    tracking_number: Optional[str] = Field(None, description="物流单号")


class ItemTracking(BaseModel):
    """明细签收进度"""
    item_id: int
    product_id: int
    product_name: Optional[str] = None
    quantity: int
    received_qty: int
    receipt_status: str


class DeliveryTracking(BaseModel):
    """发货跟踪信息"""
    delivery_id: int
    document_no: str
    status: str
    status_display: str = ""
    tracking_number: Optional[str] = None
    shipping_method: Optional[str] = None
    delivery_date: Optional[datetime] = None
    received_date: Optional[datetime] = None
    total_quantity: int = 0
    total_received: int = 0
    items: List[ItemTracking] = []
