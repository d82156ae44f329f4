"""
单据仓储基类

各单据仓储的公共实现：
- 创建：校验引用 → 计算金额 → 生成单号 → 事务内插入单据和明细
- 读取：单据 + 明细 + 联系人快照
- 更新：事务内替换字段、整体替换明细、重算金额、校验状态变更
- 删除：先检查下游单据引用，再事务内删除
- 列表：筛选 + 分页（按创建时间倒序，最新的在前）
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import and_, delete, func, literal, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.sql import Select

from sales_engine.core.config import settings
from sales_engine.core.context import OperationContext, check_context, run_with_context
from sales_engine.core.exceptions import (
    DocumentNumberConflict,
    NotFound,
    RelatedRecordsExist,
    ValidationFailed,
)
from sales_engine.db.unit_of_work import transaction
from sales_engine.models.contact import Contact
from sales_engine.models.enums import DocumentType, status_display
from sales_engine.models.product import Product
from sales_engine.schemas.common import (
    DocumentFilter,
    DocumentStats,
    PagedResult,
    PaginationParams,
    StatusSummary,
)
from sales_engine.services.financials import ZERO, calculate_totals, quantize, to_decimal
from sales_engine.services.master_data import MasterDataReader
from sales_engine.services.numbering import is_document_no_conflict, next_document_no
from sales_engine.services.pagination import paginate, validate_pagination
from sales_engine.services.status import StatusMachine

logger = logging.getLogger(__name__)


class DocumentRepository:
    """单据仓储基类"""

    model = None
    item_model = None
    # 明细表指向单据的外键字段名
    item_fk: str = None
    document_type: DocumentType = None
    label: str = "单据"
    machine: StatusMachine = None
    # 是否有金额汇总（发货单没有）
    has_totals: bool = True
    # 销售流程关联表及字段 (table, column)
    process_link: Tuple[Any, str] = None

    def __init__(self, db: AsyncSession):
        self.db = db
        self.master = MasterDataReader(db)

    # ===== 查询基础 =====

    def load_options(self) -> List:
        """明细和联系人快照一起加载"""
        return [
            selectinload(self.model.items),
            selectinload(self.model.contact),
        ]

    def default_order(self) -> Sequence:
        return (self.model.created_at.desc(), self.model.id.desc())

    def base_query(self) -> Select:
        return select(self.model)

    async def _load(self, ctx: Optional[OperationContext], document_id: int):
        query = (
            select(self.model)
            .options(*self.load_options())
            .where(self.model.id == document_id)
            .execution_options(populate_existing=True)
        )
        result = await run_with_context(ctx, self.db.execute(query))
        return result.scalars().first()

    async def _paginate(
        self,
        ctx: Optional[OperationContext],
        query: Select,
        params: Optional[PaginationParams],
        order_by: Sequence = None,
    ) -> PagedResult:
        return await paginate(
            self.db,
            query.execution_options(populate_existing=True),
            params,
            ctx,
            options=self.load_options(),
            order_by=order_by or self.default_order(),
        )

    async def _count(self, ctx: Optional[OperationContext], model, *conditions) -> int:
        result = await run_with_context(
            ctx, self.db.execute(select(func.count()).select_from(model).where(*conditions))
        )
        return result.scalar() or 0

    # ===== 读取 =====

    async def get_by_id(self, ctx: Optional[OperationContext], document_id: int):
        """获取单据（含明细和联系人），不存在抛 NotFound"""
        doc = await self._load(ctx, document_id)
        if not doc:
            raise NotFound(self.label, document_id)
        return doc

    async def get_by_document_no(self, ctx: Optional[OperationContext], document_no: str):
        result = await run_with_context(ctx, self.db.execute(
            select(self.model)
            .options(*self.load_options())
            .where(self.model.document_no == document_no)
            .execution_options(populate_existing=True)
        ))
        doc = result.scalars().first()
        if not doc:
            raise NotFound(self.label, document_no)
        return doc

    async def get_all(self, ctx: Optional[OperationContext], params: Optional[PaginationParams] = None) -> PagedResult:
        """获取全部单据（分页）"""
        return await self._paginate(ctx, self.base_query(), params)

    async def get_by_status(
        self, ctx: Optional[OperationContext], status: str, params: Optional[PaginationParams] = None
    ) -> PagedResult:
        validate_pagination(params)
        status = self._require_valid_status(status)
        return await self._paginate(ctx, self.base_query().where(self.model.status == status), params)

    async def get_by_contact(
        self, ctx: Optional[OperationContext], contact_id: int, params: Optional[PaginationParams] = None
    ) -> PagedResult:
        return await self._paginate(ctx, self.base_query().where(self.model.contact_id == contact_id), params)

    async def get_by_period(
        self,
        ctx: Optional[OperationContext],
        start_date: datetime,
        end_date: datetime,
        params: Optional[PaginationParams] = None,
    ) -> PagedResult:
        """按创建时间区间查询（含两端）"""
        validate_pagination(params)
        if start_date and end_date and start_date > end_date:
            raise ValidationFailed("开始时间不能晚于结束时间", field="start_date")
        query = self.base_query().where(
            self.model.created_at >= start_date,
            self.model.created_at <= end_date,
        )
        return await self._paginate(ctx, query, params)

    async def search(
        self,
        ctx: Optional[OperationContext],
        filter: Optional[DocumentFilter] = None,
        params: Optional[PaginationParams] = None,
    ) -> PagedResult:
        """组合筛选"""
        validate_pagination(params)
        query = self._apply_filter(self.base_query(), filter)
        return await self._paginate(ctx, query, params)

    async def get_stats(self, ctx: Optional[OperationContext], filter: Optional[DocumentFilter] = None) -> DocumentStats:
        """按状态统计数量和金额"""
        m = self.model
        value_column = func.coalesce(func.sum(m.grand_total), 0) if self.has_totals else literal(0)
        query = select(m.status, func.count(m.id), value_column).group_by(m.status)
        query = self._apply_filter(query, filter)
        result = await run_with_context(ctx, self.db.execute(query))

        stats = DocumentStats()
        by_status = []
        for status, count, value in result.all():
            value = money(value)
            by_status.append(StatusSummary(
                status=status,
                status_display=status_display(status),
                count=count,
                total_value=value,
            ))
            stats.total_count += count
            stats.total_value += value
        stats.by_status = sorted(by_status, key=lambda s: s.status)
        return stats

    # ===== 筛选 =====

    def _filter_conditions(self, flt: DocumentFilter) -> List:
        """各单据类型的附加筛选条件"""
        return []

    def _apply_filter(self, query: Select, flt: Optional[DocumentFilter]) -> Select:
        if flt is None:
            return query

        m = self.model
        conditions = []

        if flt.status:
            conditions.append(m.status.in_(flt.status))
        if flt.contact_id:
            conditions.append(m.contact_id == flt.contact_id)
        if flt.start_date:
            conditions.append(m.created_at >= flt.start_date)
        if flt.end_date:
            conditions.append(m.created_at <= flt.end_date)
        if self.has_totals and flt.min_amount is not None:
            conditions.append(m.grand_total >= flt.min_amount)
        if self.has_totals and flt.max_amount is not None:
            conditions.append(m.grand_total <= flt.max_amount)

        if flt.contact_type or flt.search_query:
            query = query.outerjoin(Contact, Contact.id == m.contact_id)
            if flt.contact_type:
                conditions.append(Contact.type == flt.contact_type)
            if flt.search_query:
                pattern = f"%{flt.search_query.strip()}%"
                conditions.append(or_(
                    m.document_no.ilike(pattern),
                    m.notes.ilike(pattern),
                    Contact.name.ilike(pattern),
                    Contact.company_name.ilike(pattern),
                ))

        conditions.extend(self._filter_conditions(flt))

        if conditions:
            query = query.where(and_(*conditions))
        return query

    def _require_valid_status(self, status) -> str:
        value = getattr(status, "value", status)
        if not self.machine.is_valid(value):
            raise ValidationFailed(f"{self.label}状态 {value} 不存在", field="status")
        return value

    # ===== 明细 =====

    def _item_values(self, item, products: Dict[int, Product]) -> Dict[str, Any]:
        """明细输入 → 明细字段，补齐商品名称/编码快照"""
        values = item.model_dump()
        product = products.get(item.product_id)
        if product is not None:
            if not values.get("product_name"):
                values["product_name"] = product.name
            if not values.get("product_code"):
                values["product_code"] = product.code
        return values

    def _build_items(self, items_values: List[Dict[str, Any]]) -> List:
        """构建明细对象并计算每行合计"""
        items = [self.item_model(**values) for values in items_values]
        if self.has_totals:
            # 先整体校验，再逐行计算
            calculate_totals(items)
            for item in items:
                item.calculate()
        return items

    async def _prepare_items(self, ctx: Optional[OperationContext], items_in) -> List[Dict[str, Any]]:
        products = await self.master.require_products(ctx, [item.product_id for item in items_in])
        values = [self._item_values(item, products) for item in items_in]
        # 提前校验，避免进入事务后才失败
        self._build_items(values)
        return values

    async def _replace_items(self, ctx: Optional[OperationContext], doc, items_values: List[Dict[str, Any]]) -> List:
        """整体替换明细：先删除全部旧明细，再插入新明细"""
        doc.items.clear()
        await run_with_context(ctx, self.db.flush())
        new_items = self._build_items(items_values)
        doc.items.extend(new_items)
        await run_with_context(ctx, self.db.flush())
        return new_items

    # ===== 钩子 =====

    async def _resolve_references(self, ctx: Optional[OperationContext], values: Dict[str, Any]) -> Dict[str, Any]:
        """校验引用并补齐冗余字段，默认只校验联系人"""
        await self.master.require_contact(ctx, values.get("contact_id"))
        return values

    def _check_header(self, doc):
        """更新字段后的单据级校验（发票校验到期日）"""

    def _after_items_changed(self, doc):
        """明细或金额变化后的处理（发票需要重算收款状态）"""

    def _on_status_change(self, doc, old_status: str, new_status: str):
        """状态变化时的附带处理（发货单填日期等）"""

    # ===== 创建 =====

    async def create(self, ctx: Optional[OperationContext], data):
        """
        创建单据

        单号未提供时自动生成；明细金额和单据汇总一律重新计算。
        """
        check_context(ctx)
        header = data.model_dump(exclude={"items", "document_no"})
        header = await self._resolve_references(ctx, header)
        items_values = await self._prepare_items(ctx, data.items)

        def build():
            doc = self.model(**header)
            doc.status = self.machine.initial
            items = self._build_items(items_values)
            if self.has_totals:
                doc.recalculate_totals(items)
            return doc, items

        doc = await self._insert_with_number(ctx, build, data.document_no)
        logger.info(f"✅ 创建{self.label} {doc.document_no} (id={doc.id})")
        return doc

    async def _insert_with_number(
        self,
        ctx: Optional[OperationContext],
        build: Callable[[], Tuple[Any, List]],
        document_no: Optional[str] = None,
    ):
        """
        事务内插入单据和明细

        自动单号冲突时整个事务回滚，用新单号重试（次数有上限）；
        调用方指定的单号冲突直接抛 DocumentNumberConflict。
        build 每次重试都会被重新调用，不能依赖上一次事务中的对象。
        """
        max_retries = settings.DOCUMENT_NO_MAX_RETRIES
        for attempt in range(1, max_retries + 1):
            doc, items = build()
            try:
                async with transaction(self.db, ctx):
                    doc.document_no = document_no or await next_document_no(
                        self.db, self.document_type.value, self.model, ctx
                    )
                    self.db.add(doc)
                    await run_with_context(ctx, self.db.flush())
                    for item in items:
                        setattr(item, self.item_fk, doc.id)
                        self.db.add(item)
                    await run_with_context(ctx, self.db.flush())
            except IntegrityError as exc:
                if not is_document_no_conflict(exc):
                    raise
                if document_no:
                    raise DocumentNumberConflict(self.document_type.value, document_no) from exc
                logger.warning(f"⚠️ {self.label}单号冲突，第 {attempt} 次重试")
                continue
            return await self.get_by_id(ctx, doc.id)

        logger.error(f"❌ {self.label}单号冲突重试 {max_retries} 次仍失败")
        raise DocumentNumberConflict(self.document_type.value, attempts=max_retries)

    # ===== 更新 =====

    async def update(self, ctx: Optional[OperationContext], document_id: int, data):
        """
        更新单据

        只更新传入的字段；传入 items 时整体替换明细。金额始终按明细重算。
        """
        values = data.model_dump(exclude_unset=True, exclude={"items", "status"})
        requested_status = data.status if "status" in data.model_fields_set else None
        items_in = data.items if "items" in data.model_fields_set else None

        async with transaction(self.db, ctx):
            doc = await self._load(ctx, document_id)
            if not doc:
                raise NotFound(self.label, document_id)

            if "contact_id" in values:
                await self.master.require_contact(ctx, values["contact_id"])

            for field, value in values.items():
                setattr(doc, field, value)
            self._check_header(doc)

            if items_in is not None:
                items_values = await self._prepare_items(ctx, items_in)
                await self._replace_items(ctx, doc, items_values)

            if self.has_totals:
                doc.recalculate_totals(doc.items)
            self._after_items_changed(doc)

            # 按重算后的状态校验请求的状态
            if requested_status is not None:
                old_status = doc.status
                new_status = self.machine.validate(old_status, requested_status)
                if new_status != old_status:
                    doc.status = new_status
                    self._on_status_change(doc, old_status, new_status)

            doc.updated_at = datetime.utcnow()
            await run_with_context(ctx, self.db.flush())

        logger.info(f"✏️ 更新{self.label} {doc.document_no} (id={document_id})")
        return await self.get_by_id(ctx, document_id)

    async def update_status(
        self,
        ctx: Optional[OperationContext],
        document_id: int,
        status,
        reason: Optional[str] = None,
    ):
        """变更状态（按状态机校验），取消时可附带原因"""
        async with transaction(self.db, ctx):
            doc = await self._load(ctx, document_id)
            if not doc:
                raise NotFound(self.label, document_id)

            old_status = doc.status
            new_status = self.machine.validate(old_status, status)
            if new_status != old_status:
                doc.status = new_status
                if new_status == "cancelled" and reason:
                    self._append_note(doc, f"取消原因: {reason}")
                self._on_status_change(doc, old_status, new_status)
                doc.updated_at = datetime.utcnow()
                await run_with_context(ctx, self.db.flush())

        logger.info(f"🔄 {self.label} {doc.document_no} 状态: {old_status} → {new_status}")
        return await self.get_by_id(ctx, document_id)

    @staticmethod
    def _append_note(doc, text: str):
        doc.notes = f"{doc.notes}\n\n{text}" if doc.notes else text

    # ===== 删除 =====

    async def _related_counts(self, ctx: Optional[OperationContext], document_id: int) -> Dict[str, int]:
        """下游单据引用数量 {名称: 数量}"""
        return {}

    async def delete(self, ctx: Optional[OperationContext], document_id: int):
        """删除单据：存在下游单据引用时抛 RelatedRecordsExist"""
        async with transaction(self.db, ctx):
            doc = await self._load(ctx, document_id)
            if not doc:
                raise NotFound(self.label, document_id)

            related = await self._related_counts(ctx, document_id)
            if any(related.values()):
                logger.warning(f"⛔ {self.label} {doc.document_no} 存在关联单据，禁止删除: {related}")
                raise RelatedRecordsExist(self.label, document_id, related)

            if self.process_link is not None:
                table, column = self.process_link
                await run_with_context(ctx, self.db.execute(
                    delete(table).where(table.c[column] == document_id)
                ))

            # 明细随单据级联删除（先删明细，再删单据）
            await self.db.delete(doc)
            await run_with_context(ctx, self.db.flush())

        logger.info(f"🗑️ 删除{self.label} {doc.document_no} (id={document_id})")

    # ===== 测试辅助 =====

    async def set_created_at_for_testing(
        self, ctx: Optional[OperationContext], document_id: int, created_at: datetime
    ):
        """仅供测试使用：改写创建时间"""
        async with transaction(self.db, ctx):
            result = await run_with_context(ctx, self.db.execute(
                update(self.model)
                .where(self.model.id == document_id)
                .values(created_at=created_at)
                .execution_options(synchronize_session=False)
            ))
            if result.rowcount == 0:
                raise NotFound(self.label, document_id)


def money(value: Any) -> Decimal:
    """数据库聚合结果转金额"""
    if value is None:
        return ZERO
    return quantize(to_decimal(value))
