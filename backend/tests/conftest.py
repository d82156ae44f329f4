import asyncio
from decimal import Decimal
from types import SimpleNamespace

import pytest

from sales_engine.db.init_db import init_db
from sales_engine.db.session import build_engine, build_session_factory
from sales_engine.models.contact import Contact
from sales_engine.models.product import Product


@pytest.fixture
def loop():
    loop = asyncio.new_event_loop()
    yield loop
    loop.close()


@pytest.fixture
def run(loop):
    """在测试自己的事件循环里执行协程"""
    return loop.run_until_complete


@pytest.fixture
def engine(tmp_path, run):
    engine = build_engine(f"sqlite:///{tmp_path / 'sales_engine_test.db'}")
    run(init_db(engine))
    yield engine
    run(engine.dispose())


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db(session_factory, run):
    session = session_factory()
    yield session
    run(session.close())


@pytest.fixture
def seed(db, run):
    """基础主数据：一个客户、一个供应商、两个商品"""

    async def _seed():
        customer = Contact(name="张三", company_name="华星贸易", type="customer", email="zhangsan@example.com")
        supplier = Contact(name="李四", company_name="远航供应", type="supplier")
        screwdriver = Product(name="螺丝刀", code="P001", price=Decimal("100.00"), cost=Decimal("60.00"))
        wrench = Product(name="扳手", code="P002", price=Decimal("50.00"), cost=Decimal("30.00"))
        db.add_all([customer, supplier, screwdriver, wrench])
        await db.commit()
        return SimpleNamespace(customer=customer, supplier=supplier, screwdriver=screwdriver, wrench=wrench)

    return run(_seed())
