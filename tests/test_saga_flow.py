"""
End-to-end saga tests.

The four services run in-process and talk to each other over HTTP through
httpx.ASGITransport, each with its own in-memory database.
"""

from decimal import Decimal
from types import SimpleNamespace
from uuid import UUID, uuid4

import httpx
import pytest
from sqlalchemy import insert, select

from services.account.app import main as account_main
from services.account.app.schema import accounts
from services.inventory.app import main as inventory_main
from services.inventory.app.schema import products, reservations
from services.order.app import main as order_main
from services.order.app.clients import PaymentClient
from services.payment.app import main as payment_main
from services.payment.app.clients import AccountClient
from services.payment.app.schema import payments
from services.shared.results import ErrorKind

BUYER = 1
SELLER = 2


@pytest.fixture
async def system(make_session_factory, redis, monkeypatch):
    sessions = {}
    for name, module in (
        ("inventory", inventory_main),
        ("payment", payment_main),
        ("account", account_main),
        ("order", order_main),
    ):
        sessions[name] = await make_session_factory(module.metadata)
        monkeypatch.setattr(module, "async_session", sessions[name])
        monkeypatch.setattr(module, "redis_pool", redis)

    mounts = {
        "http://inventory": httpx.ASGITransport(app=inventory_main.app),
        "http://payment": httpx.ASGITransport(app=payment_main.app),
        "http://account": httpx.ASGITransport(app=account_main.app),
    }
    async with httpx.AsyncClient(mounts=mounts) as http:
        monkeypatch.setattr(order_main, "http_client", http)
        monkeypatch.setattr(order_main, "INVENTORY_SERVICE_URL", "http://inventory")
        monkeypatch.setattr(order_main, "PAYMENT_SERVICE_URL", "http://payment")
        monkeypatch.setattr(payment_main, "http_client", http)
        monkeypatch.setattr(payment_main, "ACCOUNT_SERVICE_URL", "http://account")

        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=order_main.app), base_url="http://order"
        ) as client:
            yield SimpleNamespace(client=client, http=http, sessions=sessions)


async def seed(system, stock: int, buyer_balance: Decimal, seller_has_account: bool = True) -> UUID:
    product_id = uuid4()
    async with system.sessions["inventory"]() as session:
        await session.execute(
            insert(products).values(
                id=str(product_id), product_name="Widget", stock=stock, price=Decimal("800")
            )
        )
        await session.commit()
    async with system.sessions["account"]() as session:
        await session.execute(insert(accounts).values(user_id=BUYER, balance=buyer_balance))
        if seller_has_account:
            await session.execute(insert(accounts).values(user_id=SELLER, balance=Decimal("0")))
        await session.commit()
    return product_id


async def place_order(
    system, product_id: UUID, quantity: int, unit_price: str = "800"
) -> httpx.Response:
    return await system.client.post(
        "/commands/orders",
        json={
            "buyer_id": BUYER,
            "seller_id": SELLER,
            "product_id": str(product_id),
            "quantity": quantity,
            "unit_price": unit_price,
        },
    )


def account_unreachable_on_transfer() -> httpx.MockTransport:
    """Account service that answers queries but drops the connection on transfer."""
    account = httpx.ASGITransport(app=account_main.app)

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/commands/accounts/transfer":
            raise httpx.ConnectError("Connection refused", request=request)
        return await account.handle_async_request(request)

    return httpx.MockTransport(handler)


async def stock_of(system, product_id: UUID) -> int:
    async with system.sessions["inventory"]() as session:
        result = await session.execute(
            select(products.c.stock).where(products.c.id == str(product_id))
        )
        return result.scalar_one()


async def balances(system) -> dict[int, Decimal]:
    async with system.sessions["account"]() as session:
        result = await session.execute(select(accounts.c.user_id, accounts.c.balance))
        return {row.user_id: row.balance for row in result.fetchall()}


async def payment_status(system, order_id: str) -> str | None:
    async with system.sessions["payment"]() as session:
        result = await session.execute(
            select(payments.c.status).where(payments.c.order_id == order_id)
        )
        return result.scalar_one_or_none()


async def reservation_count(system) -> int:
    async with system.sessions["inventory"]() as session:
        result = await session.execute(select(reservations.c.order_id))
        return len(result.fetchall())


class TestOrderSagaOverHttp:

    @pytest.mark.asyncio
    async def test_successful_order(self, system):
        product_id = await seed(system, stock=10, buyer_balance=Decimal("5000"))

        resp = await place_order(system, product_id, 2)

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["status"] == "APPROVED"
        assert await stock_of(system, product_id) == 8
        assert await reservation_count(system) == 0
        assert await balances(system) == {BUYER: Decimal("3400"), SELLER: Decimal("1600")}
        assert await payment_status(system, body["order_id"]) == "APPROVED"

        order = await system.client.get(f"/queries/orders/{body['order_id']}")
        assert order.json()["status"] == "APPROVED"

    @pytest.mark.asyncio
    async def test_insufficient_stock(self, system):
        product_id = await seed(system, stock=4, buyer_balance=Decimal("5000"))

        resp = await place_order(system, product_id, 5)

        assert resp.status_code == 409
        body = resp.json()
        assert body["status"] == "CANCELLED"
        assert body["failure"]["stage"] == "reservation"
        assert body["failure"]["cause"]["kind"] == "NOT_AVAILABLE"
        assert await stock_of(system, product_id) == 4
        assert await payment_status(system, body["order_id"]) is None

    @pytest.mark.asyncio
    async def test_insufficient_funds_restores_stock(self, system):
        product_id = await seed(system, stock=10, buyer_balance=Decimal("100"))

        resp = await place_order(system, product_id, 5)

        assert resp.status_code == 409
        body = resp.json()
        assert body["status"] == "CANCELLED"
        assert body["failure"]["stage"] == "payment"
        assert body["failure"]["cause"]["kind"] == "NOT_ENOUGH_AMOUNT"
        assert body["failure"]["compensation"]["success"] is True
        assert await stock_of(system, product_id) == 10
        assert await reservation_count(system) == 0
        assert await balances(system) == {BUYER: Decimal("100"), SELLER: Decimal("0")}

    @pytest.mark.asyncio
    async def test_seller_without_account_fails_payment(self, system):
        product_id = await seed(
            system, stock=10, buyer_balance=Decimal("5000"), seller_has_account=False
        )

        resp = await place_order(system, product_id, 1)

        assert resp.status_code == 422
        body = resp.json()
        assert body["failure"]["cause"]["kind"] == "BAD_ACCOUNT"
        assert await payment_status(system, body["order_id"]) == "FAILED"
        assert await stock_of(system, product_id) == 10
        assert await balances(system) == {BUYER: Decimal("5000")}

    @pytest.mark.asyncio
    async def test_account_unreachable_during_transfer(self, system, monkeypatch):
        """A dropped connection at the ledger cancels the order and releases the stock."""
        product_id = await seed(system, stock=10, buyer_balance=Decimal("5000"))

        async with httpx.AsyncClient(
            mounts={"http://account": account_unreachable_on_transfer()}
        ) as http:
            monkeypatch.setattr(payment_main, "http_client", http)
            resp = await place_order(system, product_id, 2)

        assert resp.status_code == 502
        body = resp.json()
        assert body["status"] == "CANCELLED"
        assert body["failure"]["stage"] == "payment"
        assert body["failure"]["cause"]["kind"] == "REMOTE_CALL"
        assert body["failure"]["compensation"]["success"] is True
        assert await payment_status(system, body["order_id"]) == "FAILED"
        assert await stock_of(system, product_id) == 10
        assert await reservation_count(system) == 0
        assert await balances(system) == {BUYER: Decimal("5000"), SELLER: Decimal("0")}

        order = await system.client.get(f"/queries/orders/{body['order_id']}")
        assert order.json()["status"] == "CANCELLED"


class TestRequestValidationOverHttp:
    """Malformed requests come back as BAD_REQUEST results, not transport errors."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("unit_price", ["0", "0.004"])
    async def test_order_with_unpayable_price_is_rejected(self, system, unit_price):
        """A price the ledger cannot move is refused before any order is created."""
        product_id = await seed(system, stock=10, buyer_balance=Decimal("5000"))

        resp = await place_order(system, product_id, 2, unit_price=unit_price)

        assert resp.status_code == 422
        body = resp.json()
        assert body["success"] is False
        assert body["kind"] == "BAD_REQUEST"
        assert "unit_price" in body["reason"]
        assert (await system.client.get("/queries/orders")).json() == []
        assert await stock_of(system, product_id) == 10
        assert await balances(system) == {BUYER: Decimal("5000"), SELLER: Decimal("0")}

    @pytest.mark.asyncio
    async def test_payment_rejection_keeps_its_kind(self, system):
        payments = PaymentClient("http://payment", system.http)
        order_id = uuid4()

        result = await payments.transfer(order_id, BUYER, SELLER, Decimal("0.004"))

        assert result.kind == ErrorKind.BAD_REQUEST
        assert await payment_status(system, str(order_id)) is None

    @pytest.mark.asyncio
    async def test_ledger_rejection_keeps_its_kind(self, system):
        await seed(system, stock=1, buyer_balance=Decimal("5000"))
        ledger = AccountClient("http://account", system.http)

        result = await ledger.transfer(BUYER, SELLER, Decimal("0"))

        assert result.kind == ErrorKind.BAD_REQUEST
        assert await balances(system) == {BUYER: Decimal("5000"), SELLER: Decimal("0")}
