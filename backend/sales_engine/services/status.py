"""
单据状态机

每种单据一张合法迁移表：
- 不在表里的迁移一律抛 InvalidStatusTransition，不做静默纠正
- 自动状态（发票 partial/paid、报价单 expired）只能由系统推导，调用方不能直接设置
- 请求的状态与当前状态相同视为无操作
"""

import logging
from typing import Dict, FrozenSet, Iterable, List, Type
from enum import Enum

from sales_engine.core.exceptions import InvalidStatusTransition
from sales_engine.models.enums import (
    DeliveryStatus,
    DocumentType,
    InvoiceStatus,
    PurchaseOrderStatus,
    QuotationStatus,
    SalesOrderStatus,
)

logger = logging.getLogger(__name__)


class StatusMachine:
    """单据状态机"""

    def __init__(
        self,
        document_type: str,
        status_enum: Type[Enum],
        initial: Enum,
        transitions: Dict[Enum, Iterable[Enum]],
        automatic: Iterable[Enum] = (),
        system_transitions: Dict[Enum, Iterable[Enum]] = None,
    ):
        self.document_type = document_type
        self.status_enum = status_enum
        self.initial = initial.value
        self.transitions: Dict[str, FrozenSet[str]] = {
            source.value: frozenset(target.value for target in targets)
            for source, targets in transitions.items()
        }
        self.automatic: FrozenSet[str] = frozenset(status.value for status in automatic)
        # 仅系统推导时允许的迁移（如撤销付款后 paid → sent）
        self.system_transitions: Dict[str, FrozenSet[str]] = {
            source.value: frozenset(target.value for target in targets)
            for source, targets in (system_transitions or {}).items()
        }
        self.values: FrozenSet[str] = frozenset(member.value for member in status_enum)

    def is_valid(self, status: str) -> bool:
        return status in self.values

    def is_terminal(self, status: str) -> bool:
        return not self.transitions.get(status)

    def allowed(self, current: str, automatic: bool = False) -> List[str]:
        """当前状态可迁移到的状态"""
        targets = self.transitions.get(current, frozenset())
        if automatic:
            targets = targets | self.system_transitions.get(current, frozenset())
        else:
            targets = targets - self.automatic
        return sorted(targets)

    def can_transition(self, current: str, target: str, automatic: bool = False) -> bool:
        if current == target:
            return True
        if not automatic and target in self.automatic:
            return False
        if target in self.transitions.get(current, frozenset()):
            return True
        return automatic and target in self.system_transitions.get(current, frozenset())

    def validate(self, current: str, target, automatic: bool = False) -> str:
        """
        校验迁移，返回规范化后的目标状态字符串

        Args:
            current: 当前状态
            target: 目标状态（字符串或枚举）
            automatic: 是否系统推导（允许进入自动状态）
        """
        target_value = target.value if isinstance(target, Enum) else str(target)

        if not self.is_valid(target_value):
            raise InvalidStatusTransition(
                self.document_type, current, target_value,
                message=f"{self.document_type} 不存在状态 {target_value}",
            )

        if not automatic and target_value != current and target_value in self.automatic:
            logger.warning(f"⛔ {self.document_type} 状态 {target_value} 只能由系统推导")
            raise InvalidStatusTransition(
                self.document_type, current, target_value,
                message=f"{self.document_type} 状态 {target_value} 由系统自动推导，不能直接设置",
            )

        if not self.can_transition(current, target_value, automatic=automatic):
            logger.warning(f"⛔ 非法状态变更 {self.document_type}: {current} → {target_value}")
            raise InvalidStatusTransition(
                self.document_type, current, target_value,
                allowed=self.allowed(current, automatic=automatic),
            )
        return target_value


QUOTATION_MACHINE = StatusMachine(
    DocumentType.QUOTATION.value,
    QuotationStatus,
    initial=QuotationStatus.DRAFT,
    transitions={
        QuotationStatus.DRAFT: [QuotationStatus.SENT, QuotationStatus.CANCELLED, QuotationStatus.EXPIRED],
        QuotationStatus.SENT: [
            QuotationStatus.ACCEPTED,
            QuotationStatus.REJECTED,
            QuotationStatus.EXPIRED,
            QuotationStatus.CANCELLED,
        ],
        QuotationStatus.ACCEPTED: [QuotationStatus.CANCELLED],
        QuotationStatus.REJECTED: [QuotationStatus.CANCELLED],
        QuotationStatus.EXPIRED: [QuotationStatus.CANCELLED],
        QuotationStatus.CANCELLED: [],
    },
    automatic=[QuotationStatus.EXPIRED],
)

SALES_ORDER_MACHINE = StatusMachine(
    DocumentType.SALES_ORDER.value,
    SalesOrderStatus,
    initial=SalesOrderStatus.DRAFT,
    transitions={
        SalesOrderStatus.DRAFT: [SalesOrderStatus.CONFIRMED, SalesOrderStatus.CANCELLED],
        SalesOrderStatus.CONFIRMED: [SalesOrderStatus.PROCESSING, SalesOrderStatus.CANCELLED],
        SalesOrderStatus.PROCESSING: [SalesOrderStatus.COMPLETED, SalesOrderStatus.CANCELLED],
        SalesOrderStatus.COMPLETED: [],
        SalesOrderStatus.CANCELLED: [],
    },
)

PURCHASE_ORDER_MACHINE = StatusMachine(
    DocumentType.PURCHASE_ORDER.value,
    PurchaseOrderStatus,
    initial=PurchaseOrderStatus.DRAFT,
    transitions={
        PurchaseOrderStatus.DRAFT: [PurchaseOrderStatus.SENT, PurchaseOrderStatus.CANCELLED],
        PurchaseOrderStatus.SENT: [PurchaseOrderStatus.CONFIRMED, PurchaseOrderStatus.CANCELLED],
        PurchaseOrderStatus.CONFIRMED: [PurchaseOrderStatus.RECEIVED, PurchaseOrderStatus.CANCELLED],
        PurchaseOrderStatus.RECEIVED: [],
        PurchaseOrderStatus.CANCELLED: [],
    },
)

DELIVERY_MACHINE = StatusMachine(
    DocumentType.DELIVERY.value,
    DeliveryStatus,
    initial=DeliveryStatus.PENDING,
    transitions={
        DeliveryStatus.PENDING: [DeliveryStatus.SHIPPED],
        DeliveryStatus.SHIPPED: [DeliveryStatus.DELIVERED, DeliveryStatus.RETURNED],
        DeliveryStatus.DELIVERED: [DeliveryStatus.RETURNED],
        DeliveryStatus.RETURNED: [],
    },
)

INVOICE_MACHINE = StatusMachine(
    DocumentType.INVOICE.value,
    InvoiceStatus,
    initial=InvoiceStatus.DRAFT,
    transitions={
        # 草稿发票也可以直接登记收款
        InvoiceStatus.DRAFT: [
            InvoiceStatus.SENT,
            InvoiceStatus.CANCELLED,
            InvoiceStatus.PARTIAL,
            InvoiceStatus.PAID,
        ],
        InvoiceStatus.SENT: [
            InvoiceStatus.PARTIAL,
            InvoiceStatus.PAID,
            InvoiceStatus.OVERDUE,
            InvoiceStatus.CANCELLED,
        ],
        InvoiceStatus.PARTIAL: [
            InvoiceStatus.PAID,
            InvoiceStatus.OVERDUE,
            InvoiceStatus.CANCELLED,
        ],
        InvoiceStatus.OVERDUE: [InvoiceStatus.PARTIAL, InvoiceStatus.PAID, InvoiceStatus.CANCELLED],
        InvoiceStatus.PAID: [],
        InvoiceStatus.CANCELLED: [],
    },
    automatic=[InvoiceStatus.PARTIAL, InvoiceStatus.PAID],
    # 付款被撤销或修改时回退
    system_transitions={
        InvoiceStatus.PAID: [InvoiceStatus.PARTIAL, InvoiceStatus.SENT],
        InvoiceStatus.PARTIAL: [InvoiceStatus.SENT],
    },
)

MACHINES: Dict[str, StatusMachine] = {
    machine.document_type: machine
    for machine in (
        QUOTATION_MACHINE,
        SALES_ORDER_MACHINE,
        PURCHASE_ORDER_MACHINE,
        DELIVERY_MACHINE,
        INVOICE_MACHINE,
    )
}


def get_machine(document_type: str) -> StatusMachine:
    return MACHINES[document_type.value if isinstance(document_type, Enum) else document_type]
