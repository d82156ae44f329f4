"""
主数据读取（联系人、商品）

只用于引用校验和名称快照，不参与任何金额计算。
"""

from typing import Dict, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sales_engine.core.context import OperationContext, run_with_context
from sales_engine.core.exceptions import ValidationFailed
from sales_engine.models.contact import Contact
from sales_engine.models.product import Product


class MasterDataReader:
    """联系人/商品只读访问"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_contact(self, ctx: Optional[OperationContext], contact_id: int) -> Optional[Contact]:
        return await run_with_context(ctx, self.db.get(Contact, contact_id))

    async def get_product(self, ctx: Optional[OperationContext], product_id: int) -> Optional[Product]:
        return await run_with_context(ctx, self.db.get(Product, product_id))

    async def require_contact(self, ctx: Optional[OperationContext], contact_id: Optional[int]) -> Contact:
        if contact_id is None:
            raise ValidationFailed("联系人不能为空", field="contact_id")
        contact = await self.get_contact(ctx, contact_id)
        if not contact:
            raise ValidationFailed(f"联系人 {contact_id} 不存在", field="contact_id")
        return contact

    async def require_products(self, ctx: Optional[OperationContext], product_ids: Iterable[int]) -> Dict[int, Product]:
        """批量校验商品存在，返回 {id: Product}"""
        wanted = set(product_ids)
        if not wanted:
            return {}
        result = await run_with_context(ctx, self.db.execute(select(Product).where(Product.id.in_(wanted))))
        products = {product.id: product for product in result.scalars().all()}
        missing = sorted(wanted - set(products))
        if missing:
            raise ValidationFailed(f"商品 {', '.join(str(i) for i in missing)} 不存在", field="product_id")
        return products
