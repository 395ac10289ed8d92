from decimal import Decimal

import pytest

from services.payment.app.schema import metadata
from services.shared.results import ErrorKind, Result


@pytest.fixture
async def session_factory(make_session_factory):
    return await make_session_factory(metadata)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


class FakeAccounts:
    """In-memory account ledger standing in for the Account Service client."""

    def __init__(self, balances: dict[int, Decimal] | None = None, transfer_result: Result | None = None):
        self.balances = dict(balances or {})
        self.transfer_result = transfer_result
        self.transfers: list[tuple[int, int, Decimal]] = []

    async def get_account(self, user_id: int) -> Result:
        if user_id not in self.balances:
            return Result.fail(ErrorKind.NOT_FOUND, f"User {user_id} has no account")
        return Result.ok({"id": user_id, "user_id": user_id, "balance": str(self.balances[user_id])})

    async def transfer(self, from_user_id, to_user_id, amount, order_id=None) -> Result:
        self.transfers.append((from_user_id, to_user_id, amount))
        if self.transfer_result is not None:
            return self.transfer_result
        self.balances[from_user_id] -= amount
        self.balances[to_user_id] = self.balances.get(to_user_id, Decimal(0)) + amount
        return Result.ok()
