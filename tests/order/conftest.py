from decimal import Decimal
from uuid import UUID

import pytest

from services.order.app.commands import OrderRepository
from services.order.app.schema import metadata
from services.shared.results import ErrorKind, Result


@pytest.fixture
async def session_factory(make_session_factory):
    return await make_session_factory(metadata)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def orders(session):
    return OrderRepository(session)


class FakeInventory:
    """In-memory reservation manager with the same semantics as the Inventory Service."""

    def __init__(self, stock: dict[UUID, int]):
        self.stock = dict(stock)
        self.reservations: dict[UUID, tuple[UUID, int]] = {}
        self.calls: list[str] = []
        self.fail_with: dict[str, Result] = {}

    async def reserve(self, order_id, product_id, quantity) -> Result:
        self.calls.append("reserve")
        if "reserve" in self.fail_with:
            return self.fail_with["reserve"]
        if product_id not in self.stock:
            return Result.fail(ErrorKind.NOT_FOUND, "Product not found")
        if self.stock[product_id] < quantity:
            return Result.fail(ErrorKind.NOT_AVAILABLE, "Insufficient stock")
        self.stock[product_id] -= quantity
        self.reservations[order_id] = (product_id, quantity)
        return Result.ok()

    async def unblock(self, order_id) -> Result:
        self.calls.append("unblock")
        if "unblock" in self.fail_with:
            return self.fail_with["unblock"]
        held = self.reservations.pop(order_id, None)
        if held is None:
            return Result.ok()
        product_id, quantity = held
        self.stock[product_id] += quantity
        return Result.ok({"product_id": str(product_id), "quantity": quantity})

    async def approve(self, order_id) -> Result:
        self.calls.append("approve")
        if "approve" in self.fail_with:
            return self.fail_with["approve"]
        if self.reservations.pop(order_id, None) is None:
            return Result.fail(ErrorKind.NOT_FOUND, "No reservation")
        return Result.ok()


class FakePayments:
    """Payment engine stand-in backed by a dict of balances."""

    def __init__(self, balances: dict[int, Decimal]):
        self.balances = dict(balances)
        self.calls: list[tuple] = []
        self.fail_with: Result | None = None

    async def transfer(self, order_id, from_user_id, to_user_id, amount, kind="DEBIT") -> Result:
        self.calls.append((order_id, from_user_id, to_user_id, amount))
        if self.fail_with is not None:
            return self.fail_with
        if self.balances.get(from_user_id, Decimal(0)) < amount:
            return Result.fail(ErrorKind.NOT_ENOUGH_AMOUNT, "Not enough amount")
        self.balances[from_user_id] -= amount
        self.balances[to_user_id] = self.balances.get(to_user_id, Decimal(0)) + amount
        return Result.ok()
