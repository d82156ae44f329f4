"""公共Schema：分页、明细、联系人快照、基础筛选"""
from typing import Generic, List, Optional, Type, TypeVar
from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal

from sales_engine.core.config import settings

T = TypeVar("T")
S = TypeVar("S", bound=BaseModel)


# ===== 分页 =====
class PaginationParams(BaseModel):
    """分页参数（合法性由分页工具校验，不在这里约束）"""
    page: int = Field(default=1, description="页码，从 1 开始")
    page_size: int = Field(default=settings.DEFAULT_PAGE_SIZE, description="每页条数")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


class PagedResult(BaseModel, Generic[T]):
    """分页结果"""
    items: List[T] = []
    total_items: int = 0
    total_pages: int = 0
    current_page: int = 1
    page_size: int = settings.DEFAULT_PAGE_SIZE

    class Config:
        arbitrary_types_allowed = True

    def convert(self, schema: Type[S]) -> "PagedResult[S]":
        """把 ORM 对象转换为响应Schema（from_attributes）"""
        return PagedResult[schema](
            items=[schema.model_validate(item) for item in self.items],
            total_items=self.total_items,
            total_pages=self.total_pages,
            current_page=self.current_page,
            page_size=self.page_size,
        )


# ===== 联系人快照 =====
class ContactSnapshot(BaseModel):
    """联系人只读快照"""
    id: int
    name: str
    company_name: Optional[str] = None
    type: str = "customer"
    email: Optional[str] = None
    phone: Optional[str] = None

    class Config:
        from_attributes = True


# ===== 明细 =====
class LineItemCreate(BaseModel):
    """创建明细（数值合法性由金额计算模块校验）"""
    product_id: int = Field(..., description="商品ID")
    product_name: Optional[str] = Field(None, max_length=200, description="商品名称快照，不填则取商品资料")
    product_code: Optional[str] = Field(None, max_length=50, description="商品编码快照，不填则取商品资料")
    description: Optional[str] = Field(None, description="描述")
    quantity: int = Field(..., description="数量（必须大于 0）")
    unit_price: Decimal = Field(..., description="单价（必须大于 0）")
    discount: Decimal = Field(default=Decimal("0"), description="折扣金额（0-100）")
    tax: Decimal = Field(default=Decimal("0"), description="税率百分比（>= 0）")


class LineItemResponse(BaseModel):
    """明细响应"""
    id: int
    product_id: int
    product_name: Optional[str] = None
    product_code: Optional[str] = None
    description: Optional[str] = None
    quantity: int
    unit_price: Decimal
    discount: Decimal = Decimal("0")
    tax: Decimal = Decimal("0")
    total: Decimal = Decimal("0")

    class Config:
        from_attributes = True


# ===== 单据头公共字段 =====
class DocumentResponseBase(BaseModel):
    """单据响应公共字段"""
    id: int
    document_no: str
    contact_id: Optional[int] = None
    contact: Optional[ContactSnapshot] = None
    status: str
    status_display: str = ""
    notes: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TotalsResponseMixin(BaseModel):
    subtotal: Decimal = Decimal("0")
    tax_total: Decimal = Decimal("0")
    discount_total: Decimal = Decimal("0")
    grand_total: Decimal = Decimal("0")


# ===== 筛选 =====
class DocumentFilter(BaseModel):
    """单据通用筛选条件"""
    status: Optional[List[str]] = Field(None, description="状态（多选）")
    contact_id: Optional[int] = Field(None, description="联系人ID")
    contact_type: Optional[str] = Field(None, description="联系人类型：customer/supplier/lead")
    start_date: Optional[datetime] = Field(None, description="创建时间起")
    end_date: Optional[datetime] = Field(None, description="创建时间止")
    min_amount: Optional[Decimal] = Field(None, description="最小总额")
    max_amount: Optional[Decimal] = Field(None, description="最大总额")
    search_query: Optional[str] = Field(None, description="关键字：单号、备注、联系人名称/公司")


class StatusSummary(BaseModel):
    """按状态统计"""
    status: str
    status_display: str = ""
    count: int = 0
    total_value: Decimal = Decimal("0")


class DocumentStats(BaseModel):
    """单据统计"""
    total_count: int = 0
    total_value: Decimal = Decimal("0")
    by_status: List[StatusSummary] = []

