from decimal import Decimal

import pytest

from sales_engine.core.exceptions import NotFound, RelatedRecordsExist, ValidationFailed
from sales_engine.repositories.payment import PaymentRepository
from sales_engine.repositories.purchase_order import PurchaseOrderRepository
from sales_engine.repositories.sales_process import SalesProcessRepository
from sales_engine.schemas.conversion import InvoiceConversionOptions
from sales_engine.schemas.payment import PaymentCreate
from sales_engine.schemas.purchase_order import PurchaseOrderCreate
from sales_engine.schemas.sales_process import SalesProcessCreate, SalesProcessFilter, SalesProcessUpdate
from sales_engine.services.conversion import ConversionEngine

from factories import accepted_quotation, line


def test_create_update_delete(db, seed, run):
    repo = SalesProcessRepository(db)
    process = run(repo.create(None, SalesProcessCreate(contact_id=seed.customer.id, notes="年度框架")))
    process_id = process.id
    assert process.status == "draft"
    assert process.total_value == Decimal("0.00")

    updated = run(repo.update(None, process_id, SalesProcessUpdate(status="sales_order", notes="已谈妥")))
    assert updated.status == "sales_order"
    assert updated.notes == "已谈妥"

    with pytest.raises(ValidationFailed):
        run(repo.update(None, process_id, SalesProcessUpdate(status="shipping")))

    assert [p.id for p in run(repo.get_by_status(None, "sales_order")).items] == [process_id]
    assert run(repo.search(None, SalesProcessFilter(search_query="华星"))).total_items == 1

    run(repo.delete(None, process_id))
    with pytest.raises(NotFound):
        run(repo.get_by_id(None, process_id))


def test_create_requires_existing_contact(db, seed, run):
    with pytest.raises(ValidationFailed):
        run(SalesProcessRepository(db).create(None, SalesProcessCreate(contact_id=404)))


def test_initiate_from_quotation(db, seed, run):
    quotation = run(accepted_quotation(db, seed))
    repo = SalesProcessRepository(db)

    process = run(repo.initiate_from_quotation(None, quotation.id))
    assert process.status == "quotation"
    assert process.contact_id == seed.customer.id
    assert process.total_value == Decimal("283.20")
    assert process.notes == f"由报价单 {quotation.document_no} 发起"

    flow = run(repo.get_complete_flow(None, process.id))
    assert [q.id for q in flow.quotations] == [quotation.id]

    with pytest.raises(RelatedRecordsExist):
        run(repo.delete(None, process.id))


def test_links_advance_stage_and_profit(db, seed, run):
    engine = ConversionEngine(db)
    repo = SalesProcessRepository(db)
    quotation = run(accepted_quotation(db, seed))
    order = run(engine.convert_quotation_to_sales_order(None, quotation.id))
    purchase_order = run(PurchaseOrderRepository(db).create(None, PurchaseOrderCreate(
        contact_id=seed.supplier.id,
        sales_order_id=order.id,
        items=[line(seed.screwdriver, 2, 60), line(seed.wrench, 1, 30)],
    )))
    delivery = run(engine.create_delivery_from_sales_order(None, order.id))
    invoice = run(engine.create_invoice_from_sales_order(None, order.id))

    process = run(repo.initiate_from_quotation(None, quotation.id))
    process_id = process.id

    process = run(repo.link_sales_order(None, process_id, order.id))
    assert process.status == "sales_order"
    assert process.total_value == Decimal("283.20")

    process = run(repo.link_purchase_order(None, process_id, purchase_order.id))
    assert process.status == "purchase"
    assert process.profit == Decimal("133.20")

    process = run(repo.link_delivery(None, process_id, delivery.id))
    assert process.status == "delivery"

    process = run(repo.link_invoice(None, process_id, invoice.id))
    assert process.status == "invoicing"

    # 重复关联不会产生重复行
    run(repo.link_invoice(None, process_id, invoice.id))
    flow = run(repo.get_complete_flow(None, process_id))
    assert [i.id for i in flow.invoices] == [invoice.id]

    with pytest.raises(NotFound):
        run(repo.link_delivery(None, process_id, 9999))


def test_link_paid_invoice_completes_process(db, seed, run):
    engine = ConversionEngine(db)
    repo = SalesProcessRepository(db)
    quotation = run(accepted_quotation(db, seed))
    order = run(engine.convert_quotation_to_sales_order(None, quotation.id))
    invoice = run(engine.create_invoice_from_sales_order(None, order.id))
    run(PaymentRepository(db).create(None, PaymentCreate(invoice_id=invoice.id, amount=invoice.grand_total)))

    process = run(repo.create(None, SalesProcessCreate(contact_id=seed.customer.id)))
    process = run(repo.link_invoice(None, process.id, invoice.id))
    assert process.status == "completed"


def test_profitability_and_flow(db, seed, run):
    engine = ConversionEngine(db)
    repo = SalesProcessRepository(db)
    quotation = run(accepted_quotation(db, seed))
    order = run(engine.convert_quotation_to_sales_order(None, quotation.id))
    screwdriver_line, wrench_line = order.items
    first = run(engine.create_invoice_from_sales_order(
        None, order.id, InvoiceConversionOptions(item_ids=[screwdriver_line.id])
    ))
    second = run(engine.create_invoice_from_sales_order(
        None, order.id, InvoiceConversionOptions(item_ids=[wrench_line.id])
    ))
    purchase_order = run(PurchaseOrderRepository(db).create(None, PurchaseOrderCreate(
        contact_id=seed.supplier.id,
        sales_order_id=order.id,
        items=[line(seed.screwdriver, 2, 60), line(seed.wrench, 1, 30)],
    )))
    payment = run(PaymentRepository(db).create(None, PaymentCreate(
        invoice_id=first.id, amount=Decimal("100"), reference="BANK-01"
    )))

    process_id = run(repo.initiate_from_quotation(None, quotation.id)).id
    run(repo.link_sales_order(None, process_id, order.id))
    run(repo.link_invoice(None, process_id, first.id))
    run(repo.link_invoice(None, process_id, second.id))
    run(repo.link_purchase_order(None, process_id, purchase_order.id))

    figures = run(repo.calculate_profitability(None, process_id))
    assert figures.revenue == Decimal("283.20")
    assert figures.cost == Decimal("150.00")
    assert figures.profit == Decimal("133.20")
    assert figures.margin == Decimal("47.03")

    process = run(repo.get_by_id(None, process_id))
    assert process.total_value == Decimal("283.20")
    assert process.profit == Decimal("133.20")

    # 取消的采购单不计入成本
    run(PurchaseOrderRepository(db).update_status(None, purchase_order.id, "cancelled"))
    figures = run(repo.calculate_profitability(None, process_id))
    assert figures.cost == Decimal("0.00")
    assert figures.margin == Decimal("100.00")

    flow = run(repo.get_complete_flow(None, process_id))
    assert [p.id for p in flow.payments] == [payment.id]
    assert [i.id for i in flow.invoices] == [first.id, second.id]
    assert flow.profitability.revenue == Decimal("283.20")

    times = [event.occurred_at for event in flow.timeline]
    assert times == sorted(times)
    assert flow.timeline[0].document_type == "quotation"
    assert {e.document_type for e in flow.timeline} == {
        "sales_process", "quotation", "sales_order", "purchase_order", "invoice", "payment",
    }


def test_process_lists(db, seed, run):
    repo = SalesProcessRepository(db)
    first = run(repo.create(None, SalesProcessCreate(contact_id=seed.customer.id)))
    second = run(repo.create(None, SalesProcessCreate(contact_id=seed.supplier.id)))

    assert [p.id for p in run(repo.get_all(None)).items] == [second.id, first.id]
    assert [p.id for p in run(repo.get_by_contact(None, seed.supplier.id)).items] == [second.id]
    assert run(repo.search(None, SalesProcessFilter(status=["draft"], contact_id=seed.customer.id))).total_items == 1
