import pytest

from sales_engine.core.exceptions import InvalidStatusTransition
from sales_engine.models.enums import (
    DeliveryStatus,
    InvoiceStatus,
    PurchaseOrderStatus,
    QuotationStatus,
    SalesOrderStatus,
)
from sales_engine.services.status import (
    DELIVERY_MACHINE,
    INVOICE_MACHINE,
    PURCHASE_ORDER_MACHINE,
    QUOTATION_MACHINE,
    SALES_ORDER_MACHINE,
    get_machine,
)


def test_initial_statuses():
    assert QUOTATION_MACHINE.initial == "draft"
    assert SALES_ORDER_MACHINE.initial == "draft"
    assert PURCHASE_ORDER_MACHINE.initial == "draft"
    assert INVOICE_MACHINE.initial == "draft"
    assert DELIVERY_MACHINE.initial == "pending"


def test_same_status_is_noop():
    assert QUOTATION_MACHINE.validate("sent", QuotationStatus.SENT) == "sent"
    assert SALES_ORDER_MACHINE.validate("completed", "completed") == "completed"


@pytest.mark.parametrize(
    "machine, current, target",
    [
        (QUOTATION_MACHINE, "draft", QuotationStatus.SENT),
        (QUOTATION_MACHINE, "sent", QuotationStatus.ACCEPTED),
        (QUOTATION_MACHINE, "rejected", QuotationStatus.CANCELLED),
        (SALES_ORDER_MACHINE, "draft", SalesOrderStatus.CONFIRMED),
        (SALES_ORDER_MACHINE, "processing", SalesOrderStatus.COMPLETED),
        (PURCHASE_ORDER_MACHINE, "confirmed", PurchaseOrderStatus.RECEIVED),
        (DELIVERY_MACHINE, "delivered", DeliveryStatus.RETURNED),
        (INVOICE_MACHINE, "sent", InvoiceStatus.OVERDUE),
        (INVOICE_MACHINE, "overdue", InvoiceStatus.CANCELLED),
    ],
)
def test_legal_transitions(machine, current, target):
    assert machine.validate(current, target) == target.value


@pytest.mark.parametrize(
    "machine, current, target",
    [
        (QUOTATION_MACHINE, "draft", "accepted"),
        (QUOTATION_MACHINE, "cancelled", "draft"),
        (SALES_ORDER_MACHINE, "draft", "completed"),
        (SALES_ORDER_MACHINE, "completed", "cancelled"),
        (PURCHASE_ORDER_MACHINE, "received", "cancelled"),
        (DELIVERY_MACHINE, "pending", "delivered"),
        (DELIVERY_MACHINE, "returned", "shipped"),
        (INVOICE_MACHINE, "paid", "cancelled"),
    ],
)
def test_illegal_transitions(machine, current, target):
    with pytest.raises(InvalidStatusTransition) as exc_info:
        machine.validate(current, target)
    assert exc_info.value.current == current
    assert exc_info.value.requested == target


def test_unknown_status_rejected():
    with pytest.raises(InvalidStatusTransition):
        SALES_ORDER_MACHINE.validate("draft", "shipped")


def test_automatic_statuses_cannot_be_requested():
    with pytest.raises(InvalidStatusTransition):
        INVOICE_MACHINE.validate("sent", InvoiceStatus.PAID)
    with pytest.raises(InvalidStatusTransition):
        INVOICE_MACHINE.validate("sent", "partial")
    with pytest.raises(InvalidStatusTransition):
        QUOTATION_MACHINE.validate("sent", QuotationStatus.EXPIRED)

    assert INVOICE_MACHINE.validate("sent", InvoiceStatus.PAID, automatic=True) == "paid"
    assert QUOTATION_MACHINE.validate("draft", "expired", automatic=True) == "expired"


def test_payment_reversal_only_for_system():
    with pytest.raises(InvalidStatusTransition):
        INVOICE_MACHINE.validate("paid", "sent")
    assert INVOICE_MACHINE.validate("paid", "partial", automatic=True) == "partial"
    assert INVOICE_MACHINE.validate("partial", "sent", automatic=True) == "sent"


def test_allowed_hides_automatic_targets():
    assert INVOICE_MACHINE.allowed("sent") == ["cancelled", "overdue"]
    assert "paid" in INVOICE_MACHINE.allowed("sent", automatic=True)


def test_terminal_statuses():
    assert SALES_ORDER_MACHINE.is_terminal("completed")
    assert DELIVERY_MACHINE.is_terminal("returned")
    assert not QUOTATION_MACHINE.is_terminal("accepted")


def test_get_machine_by_type():
    assert get_machine("invoice") is INVOICE_MACHINE
    assert get_machine(SALES_ORDER_MACHINE.document_type) is SALES_ORDER_MACHINE
