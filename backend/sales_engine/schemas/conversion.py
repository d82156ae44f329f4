"""单据转换选项Schema"""
from typing import Optional, List
from pydantic import BaseModel, Field
from datetime import datetime


class SalesOrderConversionOptions(BaseModel):
    """报价单 → 销售订单"""
    document_no: Optional[str] = Field(None, max_length=50, description="销售订单号，不填自动生成")
    expected_date: Optional[datetime] = Field(None, description="预计交货日期，不填为当前时间 + 默认交货天数")
    shipping_address: Optional[str] = Field(None, description="收货地址")


class PurchaseOrderConversionOptions(BaseModel):
    """销售订单 → 采购单"""
    document_no: Optional[str] = Field(None, max_length=50, description="采购单号，不填自动生成")
    contact_id: Optional[int] = Field(None, description="供应商ID，不填沿用销售订单联系人")
    expected_date: Optional[datetime] = Field(None, description="预计到货日期")
    notes: Optional[str] = Field(None, description="备注，不填沿用销售订单备注")


class InvoiceConversionOptions(BaseModel):
    """销售订单 → 发票"""
    document_no: Optional[str] = Field(None, max_length=50, description="发票号，不填自动生成")
    item_ids: Optional[List[int]] = Field(None, description="开票的销售订单明细ID，不填全部开票")
    issue_date: Optional[datetime] = Field(None, description="开票日期，不填为当前时间")
    due_date: Optional[datetime] = Field(None, description="到期日，不填为开票日期 + 默认账期")
    notes: Optional[str] = Field(None, description="备注")


class DeliveryConversionOptions(BaseModel):
    """销售订单 → 发货单"""
    document_no: Optional[str] = Field(None, max_length=50, description="发货单号，不填自动生成")
    item_ids: Optional[List[int]] = Field(None, description="发货的销售订单明细ID，不填全部发货")
    delivery_date: Optional[datetime] = Field(None, description="计划发货日期")
    shipping_method: Optional[str] = Field(None, max_length=50, description="运输方式")
    shipping_address: Optional[str] = Field(None, description="收货地址，不填沿用销售订单")
    notes: Optional[str] = Field(None, description="备注")
