from datetime import datetime
from decimal import Decimal

import pytest

from sales_engine.core.exceptions import InvalidStatusTransition, RelatedRecordsExist, ValidationFailed
from sales_engine.repositories.delivery import DeliveryRepository
from sales_engine.repositories.purchase_order import PurchaseOrderRepository
from sales_engine.schemas.delivery import DeliveryCreate, DeliveryItemCreate
from sales_engine.schemas.purchase_order import PurchaseOrderCreate, PurchaseOrderFilter, PurchaseOrderUpdate
from sales_engine.services.conversion import ConversionEngine

from factories import confirmed_order, line


def make_po(repo, seed, expected=None, **fields):
    return repo.create(None, PurchaseOrderCreate(
        contact_id=seed.supplier.id,
        expected_date=expected,
        items=[line(seed.screwdriver, 2, 60), line(seed.wrench, 1, 30)],
        **fields,
    ))


def test_create_direct(db, seed, run):
    po = run(make_po(PurchaseOrderRepository(db), seed, shipping_address="仓库 A"))
    assert po.status == "draft"
    assert po.document_no.startswith("PO-")
    assert po.contact.company_name == "远航供应"
    assert po.grand_total == Decimal("150.00")
    assert po.so_no is None


def test_create_links_sales_order_number(db, seed, run):
    order = run(confirmed_order(db, seed))
    po = run(make_po(PurchaseOrderRepository(db), seed, sales_order_id=order.id))
    assert po.so_no == order.document_no

    with pytest.raises(ValidationFailed) as exc_info:
        run(make_po(PurchaseOrderRepository(db), seed, sales_order_id=404))
    assert exc_info.value.field == "sales_order_id"


def test_status_flow(db, seed, run):
    repo = PurchaseOrderRepository(db)
    po_id = run(make_po(repo, seed)).id

    with pytest.raises(InvalidStatusTransition):
        run(repo.update_status(None, po_id, "received"))

    run(repo.update(None, po_id, PurchaseOrderUpdate(status="sent", notes="已发供应商")))
    run(repo.update_status(None, po_id, "confirmed"))
    received = run(repo.update_status(None, po_id, "received"))
    assert received.status == "received"
    assert received.notes == "已发供应商"

    with pytest.raises(InvalidStatusTransition):
        run(repo.update_status(None, po_id, "cancelled"))


def test_pending_and_overdue(db, seed, run):
    repo = PurchaseOrderRepository(db)
    draft = run(make_po(repo, seed, expected=datetime(2020, 1, 1)))
    late = run(make_po(repo, seed, expected=datetime(2020, 6, 1)))
    received = run(make_po(repo, seed, expected=datetime(2020, 2, 1)))
    future = run(make_po(repo, seed, expected=datetime(2099, 1, 1)))
    run(repo.update_status(None, late.id, "sent"))
    run(repo.update_status(None, future.id, "sent"))
    for status in ("sent", "confirmed", "received"):
        run(repo.update_status(None, received.id, status))

    pending = run(repo.get_pending(None))
    assert [p.id for p in pending.items] == [future.id, late.id, draft.id]

    # 草稿还没发给供应商，不算逾期
    assert [p.id for p in run(repo.get_overdue(None)).items] == [late.id]

    result = run(repo.search(None, PurchaseOrderFilter(
        expected_date_start=datetime(2020, 1, 15), expected_date_end=datetime(2020, 12, 31)
    )))
    assert [p.id for p in result.items] == [received.id, late.id]


def test_purchase_orders_of_a_sales_order(db, seed, run):
    order = run(confirmed_order(db, seed))
    engine = ConversionEngine(db)
    first = run(engine.create_purchase_order_from_sales_order(None, order.id))
    second = run(engine.create_purchase_order_from_sales_order(None, order.id))
    repo = PurchaseOrderRepository(db)

    assert [p.id for p in run(repo.get_by_sales_order(None, order.id))] == [second.id, first.id]
    assert run(repo.search(None, PurchaseOrderFilter(sales_order_id=order.id))).total_items == 2
    assert run(repo.get_by_sales_order(None, 404)) == []


def test_delete_blocked_by_delivery(db, seed, run):
    repo = PurchaseOrderRepository(db)
    po_id = run(make_po(repo, seed)).id
    delivery = run(DeliveryRepository(db).create(None, DeliveryCreate(
        purchase_order_id=po_id,
        items=[DeliveryItemCreate(product_id=seed.wrench.id, quantity=1)],
    )))
    delivery_id = delivery.id
    assert delivery.contact_id == seed.supplier.id

    with pytest.raises(RelatedRecordsExist) as exc_info:
        run(repo.delete(None, po_id))
    assert exc_info.value.related == {"关联发货单": 1}

    run(DeliveryRepository(db).delete(None, delivery_id))
    run(repo.delete(None, po_id))
    assert run(repo.get_all(None)).total_items == 0
