from decimal import Decimal

import pytest
from sqlalchemy import insert, select

from services.account.app.schema import accounts, metadata


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


async def add_account(session, user_id: int, balance: Decimal, name: str = "") -> int:
    result = await session.execute(
        insert(accounts)
        .values(user_id=user_id, name=name or f"account-{user_id}", balance=balance)
        .returning(accounts.c.id)
    )
    await session.commit()
    return result.scalar_one()


async def balance_of(session, account_id: int) -> Decimal:
    result = await session.execute(
        select(accounts.c.balance).where(accounts.c.id == account_id)
    )
    return result.scalar_one()
