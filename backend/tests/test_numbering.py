import asyncio

import pytest
from sqlalchemy import select

from sales_engine.core.config import settings
from sales_engine.core.exceptions import DocumentNumberConflict
from sales_engine.models.quotation import Quotation
from sales_engine.models.document_sequence import DocumentSequence
from sales_engine.repositories.quotation import QuotationRepository
from sales_engine.repositories.sales_order import SalesOrderRepository
from sales_engine.schemas.sales_order import SalesOrderCreate
from sales_engine.repositories import base as repository_base
from sales_engine.services import numbering
from sales_engine.services.numbering import format_document_no, get_prefix

from factories import quotation_data, standard_items, this_year


def test_format_document_no():
    assert format_document_no("purchase_order", 2025, 42) == "PO-2025-00042"
    assert format_document_no("delivery", 2024, 1) == "DEL-2024-00001"
    assert get_prefix("quotation") == "QT"
    assert get_prefix("invoice") == "INV"


def test_sequential_numbers_per_type(db, seed, run):
    quotations = QuotationRepository(db)
    orders = SalesOrderRepository(db)
    year = this_year()

    first = run(quotations.create(None, quotation_data(seed)))
    second = run(quotations.create(None, quotation_data(seed)))
    order = run(orders.create(None, SalesOrderCreate(contact_id=seed.customer.id, items=standard_items(seed))))

    assert first.document_no == f"QT-{year}-00001"
    assert second.document_no == f"QT-{year}-00002"
    assert order.document_no == f"SO-{year}-00001"

    counters = run(db.execute(
        select(DocumentSequence).order_by(DocumentSequence.document_type).execution_options(populate_existing=True)
    ))
    values = {(c.document_type, c.year): c.current_value for c in counters.scalars()}
    assert values == {("quotation", year): 2, ("sales_order", year): 1}


def test_caller_supplied_number_is_kept(db, seed, run):
    repo = QuotationRepository(db)
    doc = run(repo.create(None, quotation_data(seed, document_no="QT-MANUAL-1")))
    assert doc.document_no == "QT-MANUAL-1"


def test_duplicate_caller_number_conflicts(db, seed, run):
    repo = QuotationRepository(db)
    run(repo.create(None, quotation_data(seed, document_no="QT-MANUAL-1")))

    with pytest.raises(DocumentNumberConflict) as exc_info:
        run(repo.create(None, quotation_data(seed, document_no="QT-MANUAL-1")))
    assert exc_info.value.retryable is True
    assert exc_info.value.document_no == "QT-MANUAL-1"

    # 冲突的创建整体回滚
    assert run(repo.get_all(None)).total_items == 1


def test_generated_number_skips_taken_one(db, seed, run):
    repo = QuotationRepository(db)
    year = this_year()
    run(repo.create(None, quotation_data(seed, document_no=f"QT-{year}-00001")))

    doc = run(repo.create(None, quotation_data(seed)))
    assert doc.document_no == f"QT-{year}-00002"


def test_conflicting_generated_number_is_retried(db, seed, run, monkeypatch):
    repo = QuotationRepository(db)
    run(repo.create(None, quotation_data(seed, document_no="QT-TAKEN")))
    data = quotation_data(seed)
    calls = []

    async def first_number_taken(*args, **kwargs):
        calls.append(1)
        if len(calls) == 1:
            return "QT-TAKEN"
        return await numbering.next_document_no(*args, **kwargs)

    monkeypatch.setattr(repository_base, "next_document_no", first_number_taken)

    doc = run(repo.create(None, data))
    assert len(calls) == 2
    assert doc.document_no == f"QT-{this_year()}-00001"

    rows = run(db.execute(select(Quotation.document_no).order_by(Quotation.id)))
    assert rows.scalars().all() == ["QT-TAKEN", f"QT-{this_year()}-00001"]


def test_retries_are_bounded(db, seed, run, monkeypatch):
    repo = QuotationRepository(db)
    run(repo.create(None, quotation_data(seed, document_no="QT-TAKEN")))
    data = quotation_data(seed)

    async def always_taken(*args, **kwargs):
        return "QT-TAKEN"

    monkeypatch.setattr(repository_base, "next_document_no", always_taken)

    with pytest.raises(DocumentNumberConflict) as exc_info:
        run(repo.create(None, data))
    assert exc_info.value.attempts == settings.DOCUMENT_NO_MAX_RETRIES
    assert exc_info.value.retryable is True
    assert run(repo.get_all(None)).total_items == 1


def test_concurrent_creates_get_distinct_numbers(seed, session_factory, run):
    data = quotation_data(seed)

    async def create_in_own_session():
        async with session_factory() as session:
            doc = await QuotationRepository(session).create(None, data)
            return doc.document_no

    async def create_many():
        return await asyncio.gather(*(create_in_own_session() for _ in range(8)))

    numbers = run(create_many())
    assert len(set(numbers)) == 8
    assert sorted(numbers) == [f"QT-{this_year()}-{n:05d}" for n in range(1, 9)]
