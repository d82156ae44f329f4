import asyncio

import pytest

from sales_engine.core.context import OperationContext, check_context, run_with_context
from sales_engine.core.exceptions import ContextCancelled, ContextTimeout
from sales_engine.repositories.quotation import QuotationRepository
from sales_engine.schemas.quotation import QuotationUpdate

from factories import quotation_data


def test_background_context_never_expires():
    ctx = OperationContext.background()
    ctx.check()
    assert ctx.remaining() is None
    assert not ctx.cancelled
    check_context(None)


def test_cancel_and_deadline():
    ctx = OperationContext()
    ctx.cancel()
    with pytest.raises(ContextCancelled):
        ctx.check()

    with pytest.raises(ContextTimeout):
        OperationContext.with_timeout(0).check()
    assert OperationContext.with_timeout(0).remaining() == 0.0


def test_wait_is_bounded_by_deadline(run):
    ctx = OperationContext.with_timeout(0.05)
    with pytest.raises(ContextTimeout):
        run(run_with_context(ctx, asyncio.sleep(5)))

    assert run(run_with_context(None, asyncio.sleep(0, result="ok"))) == "ok"
    assert run(run_with_context(OperationContext.with_timeout(5), asyncio.sleep(0, result=1))) == 1


def test_cancelled_context_writes_nothing(db, seed, run):
    repo = QuotationRepository(db)
    ctx = OperationContext()
    ctx.cancel()

    with pytest.raises(ContextCancelled):
        run(repo.create(ctx, quotation_data(seed)))
    assert run(repo.get_all(None)).total_items == 0


def test_expired_context_leaves_document_untouched(db, seed, run):
    repo = QuotationRepository(db)
    doc_id = run(repo.create(None, quotation_data(seed))).id

    with pytest.raises(ContextTimeout):
        run(repo.update(OperationContext.with_timeout(0), doc_id, QuotationUpdate(notes="改过")))
    with pytest.raises(ContextTimeout):
        run(repo.get_by_id(OperationContext.with_timeout(0), doc_id))

    assert run(repo.get_by_id(None, doc_id)).notes == "首批试单"
