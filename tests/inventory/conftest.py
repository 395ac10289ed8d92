from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import insert, select

from services.inventory.app.schema import metadata, products


@pytest.fixture
async def session_factory(make_session_factory):
    return await make_session_factory(metadata)


@pytest.fixture
async def file_session_factory(make_file_session_factory):
    return await make_file_session_factory(metadata)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


async def add_product(session, stock: int, price: Decimal = Decimal("800")):
    product_id = uuid4()
    await session.execute(
        insert(products).values(
            id=str(product_id), product_name="Test Product", stock=stock, price=price
        )
    )
    await session.commit()
    return product_id


async def stock_of(session, product_id) -> int:
    result = await session.execute(
        select(products.c.stock).where(products.c.id == str(product_id))
    )
    return result.scalar_one()
