"""
Order Service — Inventory / Payment Service クライアント

Saga のステップが呼ぶリモート操作。すべて Result を返す。
"""

from decimal import Decimal
from uuid import UUID

from services.shared.http import ServiceClient
from services.shared.results import Result


class InventoryClient(ServiceClient):
    async def reserve(self, order_id: UUID, product_id: UUID, quantity: int) -> Result:
        return await self._post(
            f"/commands/inventory/{product_id}/reserve",
            {"order_id": str(order_id), "quantity": quantity},
        )

    async def unblock(self, order_id: UUID) -> Result:
        return await self._post(f"/commands/reservations/{order_id}/unblock")

    async def approve(self, order_id: UUID) -> Result:
        return await self._post(f"/commands/reservations/{order_id}/approve")


class PaymentClient(ServiceClient):
    async def transfer(
        self,
        order_id: UUID,
        from_user_id: int,
        to_user_id: int,
        amount: Decimal,
        kind: str = "DEBIT",
    ) -> Result:
        return await self._post(
            "/commands/payments/transfer",
            {
                "order_id": str(order_id),
                "from_user_id": from_user_id,
                "to_user_id": to_user_id,
                "amount": str(amount),
                "kind": kind,
            },
        )
