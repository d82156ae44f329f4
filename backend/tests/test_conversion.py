from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from sales_engine.core.config import settings
from sales_engine.core.exceptions import InvalidStatusTransition, NotFound, ValidationFailed
from sales_engine.repositories.quotation import QuotationRepository
from sales_engine.repositories.sales_order import SalesOrderRepository
from sales_engine.schemas.conversion import (
    DeliveryConversionOptions,
    InvoiceConversionOptions,
    PurchaseOrderConversionOptions,
    SalesOrderConversionOptions,
)
from sales_engine.schemas.quotation import QuotationResponse
from sales_engine.schemas.sales_order import SalesOrderCreate
from sales_engine.services.conversion import ConversionEngine

from factories import accepted_quotation, confirmed_order, quotation_data, standard_items, this_year


def test_draft_quotation_cannot_be_converted(db, seed, run):
    quotation = run(QuotationRepository(db).create(None, quotation_data(seed)))
    engine = ConversionEngine(db)

    with pytest.raises(InvalidStatusTransition) as exc_info:
        run(engine.convert_quotation_to_sales_order(None, quotation.id))
    assert exc_info.value.current == "draft"
    assert run(SalesOrderRepository(db).get_all(None)).total_items == 0


def test_missing_quotation(db, seed, run):
    with pytest.raises(NotFound):
        run(ConversionEngine(db).convert_quotation_to_sales_order(None, 404))


def test_accepted_quotation_becomes_confirmed_order(db, seed, run):
    quotation = run(accepted_quotation(db, seed))
    before = QuotationResponse.model_validate(quotation)

    order = run(ConversionEngine(db).convert_quotation_to_sales_order(None, quotation.id))

    assert order.status == "confirmed"
    assert order.document_no == f"SO-{this_year()}-00001"
    assert order.quotation_id == quotation.id
    assert order.contact_id == seed.customer.id
    assert order.notes == "首批试单"
    assert order.payment_terms == "30 天内付款"
    assert order.subtotal == Decimal("240.00")
    assert order.tax_total == Decimal("43.20")
    assert order.discount_total == Decimal("10.00")
    assert order.grand_total == Decimal("283.20")

    copied = [(i.product_id, i.product_name, i.quantity, i.unit_price, i.discount, i.tax, i.total) for i in order.items]
    source = [(i.product_id, i.product_name, i.quantity, i.unit_price, i.discount, i.tax, i.total) for i in quotation.items]
    assert copied == source

    expected = datetime.utcnow() + timedelta(days=settings.SALES_ORDER_LEAD_DAYS)
    assert abs(order.expected_date - expected) < timedelta(minutes=1)

    # 来源报价单不变
    after = QuotationResponse.model_validate(run(QuotationRepository(db).get_by_id(None, quotation.id)))
    assert after == before


def test_conversion_options(db, seed, run):
    quotation = run(accepted_quotation(db, seed))
    expected_date = datetime(2030, 6, 1)

    order = run(ConversionEngine(db).convert_quotation_to_sales_order(
        None,
        quotation.id,
        SalesOrderConversionOptions(document_no="SO-CUSTOM-1", expected_date=expected_date, shipping_address="上海"),
    ))
    assert order.document_no == "SO-CUSTOM-1"
    assert order.expected_date == expected_date
    assert order.shipping_address == "上海"

    linked = run(SalesOrderRepository(db).get_by_quotation(None, quotation.id))
    assert [o.id for o in linked] == [order.id]


def test_same_quotation_can_be_converted_twice(db, seed, run):
    quotation = run(accepted_quotation(db, seed))
    engine = ConversionEngine(db)

    first = run(engine.convert_quotation_to_sales_order(None, quotation.id))
    second = run(engine.convert_quotation_to_sales_order(None, quotation.id))

    assert first.document_no != second.document_no
    linked = run(SalesOrderRepository(db).get_by_quotation(None, quotation.id))
    assert [o.id for o in linked] == [second.id, first.id]


def test_purchase_order_from_sales_order(db, seed, run):
    order = run(confirmed_order(db, seed, shipping_address="上海"))

    purchase_order = run(ConversionEngine(db).create_purchase_order_from_sales_order(
        None, order.id, PurchaseOrderConversionOptions(contact_id=seed.supplier.id, notes="加急")
    ))

    assert purchase_order.status == "draft"
    assert purchase_order.document_no == f"PO-{this_year()}-00001"
    assert purchase_order.contact_id == seed.supplier.id
    assert purchase_order.contact.company_name == "远航供应"
    assert purchase_order.sales_order_id == order.id
    assert purchase_order.so_no == order.document_no
    assert purchase_order.notes == "加急"
    assert purchase_order.shipping_address == "上海"
    assert purchase_order.grand_total == Decimal("283.20")
    assert [i.total for i in purchase_order.items] == [i.total for i in order.items]


def test_purchase_order_with_unknown_supplier(db, seed, run):
    order = run(confirmed_order(db, seed))
    with pytest.raises(ValidationFailed):
        run(ConversionEngine(db).create_purchase_order_from_sales_order(
            None, order.id, PurchaseOrderConversionOptions(contact_id=9999)
        ))


def test_draft_order_cannot_produce_downstream_documents(db, seed, run):
    order = run(SalesOrderRepository(db).create(
        None, SalesOrderCreate(contact_id=seed.customer.id, items=standard_items(seed))
    ))
    engine = ConversionEngine(db)

    with pytest.raises(InvalidStatusTransition):
        run(engine.create_purchase_order_from_sales_order(None, order.id))
    with pytest.raises(InvalidStatusTransition):
        run(engine.create_invoice_from_sales_order(None, order.id))
    with pytest.raises(InvalidStatusTransition):
        run(engine.create_delivery_from_sales_order(None, order.id))


def test_invoice_from_all_items(db, seed, run):
    order = run(confirmed_order(db, seed))

    invoice = run(ConversionEngine(db).create_invoice_from_sales_order(None, order.id))

    assert invoice.status == "draft"
    assert invoice.document_no == f"INV-{this_year()}-00001"
    assert invoice.so_no == order.document_no
    assert invoice.grand_total == Decimal("283.20")
    assert invoice.amount_paid == Decimal("0.00")
    assert invoice.due_date - invoice.issue_date == timedelta(days=settings.INVOICE_DUE_DAYS)


def test_invoice_from_item_subset(db, seed, run):
    order = run(confirmed_order(db, seed))
    wrench_line = order.items[1]

    invoice = run(ConversionEngine(db).create_invoice_from_sales_order(
        None, order.id, InvoiceConversionOptions(item_ids=[wrench_line.id], notes="第一期")
    ))

    assert [i.product_name for i in invoice.items] == ["扳手"]
    assert invoice.subtotal == Decimal("50.00")
    assert invoice.tax_total == Decimal("9.00")
    assert invoice.grand_total == Decimal("59.00")
    assert invoice.notes == "第一期"


def test_invoice_rejects_foreign_items_and_bad_dates(db, seed, run):
    order = run(confirmed_order(db, seed))
    engine = ConversionEngine(db)

    with pytest.raises(ValidationFailed) as exc_info:
        run(engine.create_invoice_from_sales_order(None, order.id, InvoiceConversionOptions(item_ids=[9999])))
    assert exc_info.value.field == "item_ids"

    with pytest.raises(ValidationFailed):
        run(engine.create_invoice_from_sales_order(None, order.id, InvoiceConversionOptions(
            issue_date=datetime(2030, 1, 10), due_date=datetime(2030, 1, 1)
        )))


def test_completed_order_can_invoice_but_not_deliver(db, seed, run):
    order = run(confirmed_order(db, seed))
    orders = SalesOrderRepository(db)
    run(orders.update_status(None, order.id, "processing"))
    run(orders.update_status(None, order.id, "completed"))
    engine = ConversionEngine(db)

    invoice = run(engine.create_invoice_from_sales_order(None, order.id))
    assert invoice.grand_total == Decimal("283.20")

    with pytest.raises(InvalidStatusTransition):
        run(engine.create_delivery_from_sales_order(None, order.id))


def test_delivery_from_sales_order(db, seed, run):
    order = run(confirmed_order(db, seed, shipping_address="北京"))

    delivery = run(ConversionEngine(db).create_delivery_from_sales_order(
        None, order.id, DeliveryConversionOptions(shipping_method="顺丰")
    ))

    assert delivery.status == "pending"
    assert delivery.document_no == f"DEL-{this_year()}-00001"
    assert delivery.contact_id == seed.customer.id
    assert delivery.so_no == order.document_no
    assert delivery.shipping_method == "顺丰"
    assert delivery.shipping_address == "北京"
    assert [(i.product_code, i.quantity, i.received_qty) for i in delivery.items] == [("P001", 2, 0), ("P002", 1, 0)]
