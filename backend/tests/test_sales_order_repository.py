from datetime import datetime
from decimal import Decimal

import pytest

from sales_engine.core.exceptions import InvalidStatusTransition, RelatedRecordsExist, ValidationFailed
from sales_engine.repositories.purchase_order import PurchaseOrderRepository
from sales_engine.repositories.sales_order import SalesOrderRepository
from sales_engine.schemas.sales_order import SalesOrderCreate, SalesOrderFilter, SalesOrderUpdate
from sales_engine.services.conversion import ConversionEngine

from factories import confirmed_order, line, standard_items


def test_direct_create_starts_as_draft(db, seed, run):
    repo = SalesOrderRepository(db)
    order = run(repo.create(None, SalesOrderCreate(
        contact_id=seed.customer.id,
        payment_terms="货到付款",
        items=standard_items(seed),
    )))
    assert order.status == "draft"
    assert order.quotation_id is None
    assert order.grand_total == Decimal("283.20")


def test_create_with_unknown_quotation(db, seed, run):
    with pytest.raises(ValidationFailed) as exc_info:
        run(SalesOrderRepository(db).create(None, SalesOrderCreate(
            contact_id=seed.customer.id, quotation_id=404, items=standard_items(seed)
        )))
    assert exc_info.value.field == "quotation_id"


def test_status_flow(db, seed, run):
    repo = SalesOrderRepository(db)
    order_id = run(repo.create(None, SalesOrderCreate(contact_id=seed.customer.id, items=standard_items(seed)))).id

    with pytest.raises(InvalidStatusTransition):
        run(repo.update_status(None, order_id, "completed"))

    for status in ("confirmed", "processing", "completed"):
        order = run(repo.update_status(None, order_id, status))
    assert order.status == "completed"

    with pytest.raises(InvalidStatusTransition):
        run(repo.update(None, order_id, SalesOrderUpdate(status="cancelled")))


def test_update_items_recalculates(db, seed, run):
    repo = SalesOrderRepository(db)
    order = run(repo.create(None, SalesOrderCreate(contact_id=seed.customer.id, items=standard_items(seed))))

    updated = run(repo.update(None, order.id, SalesOrderUpdate(
        items=[line(seed.screwdriver, 3, 100)],
    )))
    assert [(i.product_code, i.quantity) for i in updated.items] == [("P001", 3)]
    assert updated.grand_total == Decimal("300.00")


def test_delete_blocked_by_downstream_documents(db, seed, run):
    order_id = run(confirmed_order(db, seed)).id
    repo = SalesOrderRepository(db)
    purchase_order_id = run(ConversionEngine(db).create_purchase_order_from_sales_order(None, order_id)).id

    with pytest.raises(RelatedRecordsExist) as exc_info:
        run(repo.delete(None, order_id))
    assert exc_info.value.related == {"关联采购单": 1}
    assert run(repo.get_by_id(None, order_id)).status == "confirmed"

    run(PurchaseOrderRepository(db).delete(None, purchase_order_id))
    run(repo.delete(None, order_id))
    assert run(repo.get_all(None)).total_items == 0


def test_filters_on_downstream_documents(db, seed, run):
    with_po = run(confirmed_order(db, seed))
    without_po = run(confirmed_order(db, seed))
    engine = ConversionEngine(db)
    run(engine.create_purchase_order_from_sales_order(None, with_po.id))
    run(engine.create_invoice_from_sales_order(None, without_po.id))
    repo = SalesOrderRepository(db)

    result = run(repo.search(None, SalesOrderFilter(has_purchase_order=True)))
    assert [o.id for o in result.items] == [with_po.id]

    result = run(repo.search(None, SalesOrderFilter(has_purchase_order=False)))
    assert [o.id for o in result.items] == [without_po.id]

    result = run(repo.search(None, SalesOrderFilter(has_invoice=True)))
    assert [o.id for o in result.items] == [without_po.id]

    result = run(repo.search(None, SalesOrderFilter(quotation_id=with_po.quotation_id)))
    assert [o.id for o in result.items] == [with_po.id]


def test_expected_date_queries(db, seed, run):
    late = run(confirmed_order(db, seed, expected_date=datetime(2030, 3, 1)))
    early = run(confirmed_order(db, seed, expected_date=datetime(2030, 1, 1)))
    repo = SalesOrderRepository(db)

    result = run(repo.get_by_expected_date(None, datetime(2029, 12, 1), datetime(2030, 12, 31)))
    assert [o.id for o in result.items] == [early.id, late.id]

    result = run(repo.search(None, SalesOrderFilter(expected_date_end=datetime(2030, 2, 1))))
    assert [o.id for o in result.items] == [early.id]
