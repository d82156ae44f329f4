"""
收款核销

收款记录和发票已收金额在同一个事务里更新：
- 登记收款：已收金额增加，按总额推导 partial / paid
- 删除收款：已收金额回滚，全部撤销后回到 sent
- 修改收款：按金额差额调整
发票在事务内重新读取，不使用调用方手里的旧对象。
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sales_engine.core.context import OperationContext, check_context, run_with_context
from sales_engine.core.exceptions import NotFound, ValidationFailed
from sales_engine.db.unit_of_work import transaction
from sales_engine.models.enums import InvoiceStatus
from sales_engine.models.invoice import Invoice
from sales_engine.models.payment import Payment
from sales_engine.schemas.payment import PaymentCreate, PaymentUpdate
from sales_engine.services.financials import ZERO, quantize, to_decimal
from sales_engine.services.status import INVOICE_MACHINE

logger = logging.getLogger(__name__)


def _require_positive(amount) -> Decimal:
    value = quantize(to_decimal(amount))
    if value <= ZERO:
        raise ValidationFailed("收款金额必须大于 0", field="amount")
    return value


class PaymentReconciler:
    """收款核销服务"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _lock_invoice(self, ctx: Optional[OperationContext], invoice_id: int) -> Invoice:
        result = await run_with_context(ctx, self.db.execute(
            select(Invoice).where(Invoice.id == invoice_id).execution_options(populate_existing=True)
        ))
        invoice = result.scalars().first()
        if not invoice:
            raise NotFound("发票", invoice_id)
        return invoice

    async def _get_payment(self, ctx: Optional[OperationContext], payment_id: int) -> Payment:
        result = await run_with_context(ctx, self.db.execute(
            select(Payment).where(Payment.id == payment_id).execution_options(populate_existing=True)
        ))
        payment = result.scalars().first()
        if not payment:
            raise NotFound("收款记录", payment_id)
        return payment

    @staticmethod
    def _apply_delta(invoice: Invoice, delta: Decimal):
        """调整已收金额并按状态机推导收款状态（已取消的发票只调金额）"""
        invoice.amount_paid = quantize((invoice.amount_paid or ZERO) + delta)
        if invoice.amount_paid < ZERO:
            raise ValidationFailed(f"发票 {invoice.document_no} 已收金额不能小于 0", field="amount")

        if invoice.status != InvoiceStatus.CANCELLED.value:
            derived = invoice.derive_payment_status()
            invoice.status = INVOICE_MACHINE.validate(invoice.status, derived, automatic=True)
        invoice.updated_at = datetime.utcnow()

    async def apply_payment(self, ctx: Optional[OperationContext], data: PaymentCreate) -> Payment:
        """登记收款"""
        check_context(ctx)
        amount = _require_positive(data.amount)

        async with transaction(self.db, ctx):
            invoice = await self._lock_invoice(ctx, data.invoice_id)
            if invoice.status == InvoiceStatus.CANCELLED.value:
                raise ValidationFailed(f"发票 {invoice.document_no} 已取消，不能登记收款", field="invoice_id")

            payment = Payment(
                invoice_id=invoice.id,
                amount=amount,
                payment_date=data.payment_date or datetime.utcnow(),
                payment_method=data.payment_method,
                reference=data.reference,
                notes=data.notes,
            )
            self.db.add(payment)
            self._apply_delta(invoice, amount)
            await run_with_context(ctx, self.db.flush())

        logger.info(
            f"💰 发票 {invoice.document_no} 收款 ¥{amount}，"
            f"已收 ¥{invoice.amount_paid}/¥{invoice.grand_total}，状态: {invoice.status}"
        )
        return payment

    async def delete_payment(self, ctx: Optional[OperationContext], payment_id: int):
        """删除收款，回滚发票已收金额和状态"""
        async with transaction(self.db, ctx):
            payment = await self._get_payment(ctx, payment_id)
            invoice = await self._lock_invoice(ctx, payment.invoice_id)
            self._apply_delta(invoice, -payment.amount)
            await self.db.delete(payment)
            await run_with_context(ctx, self.db.flush())

        logger.info(f"🗑️ 删除收款 {payment_id}，发票 {invoice.document_no} 状态: {invoice.status}")

    async def update_payment(self, ctx: Optional[OperationContext], payment_id: int, data: PaymentUpdate) -> Payment:
        """修改收款，金额变化按差额调整发票"""
        values = data.model_dump(exclude_unset=True)
        new_amount = None
        if values.get("amount") is not None:
            new_amount = _require_positive(values.pop("amount"))
        else:
            values.pop("amount", None)

        async with transaction(self.db, ctx):
            payment = await self._get_payment(ctx, payment_id)
            invoice = await self._lock_invoice(ctx, payment.invoice_id)

            if new_amount is not None and new_amount != payment.amount:
                if invoice.status == InvoiceStatus.CANCELLED.value:
                    raise ValidationFailed(f"发票 {invoice.document_no} 已取消，不能修改收款金额", field="amount")
                delta = new_amount - payment.amount
                payment.amount = new_amount
                self._apply_delta(invoice, delta)

            for field, value in values.items():
                if value is not None:
                    setattr(payment, field, value)
            payment.updated_at = datetime.utcnow()
            await run_with_context(ctx, self.db.flush())

        logger.info(f"✏️ 修改收款 {payment_id}，发票 {invoice.document_no} 状态: {invoice.status}")
        return payment
