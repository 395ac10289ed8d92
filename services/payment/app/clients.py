"""
Payment Service — Account Service クライアント
"""

from decimal import Decimal
from typing import Protocol
from uuid import UUID

from services.shared.http import ServiceClient
from services.shared.results import Result


class AccountGateway(Protocol):
    async def get_account(self, user_id: int) -> Result: ...

    async def transfer(
        self,
        from_user_id: int,
        to_user_id: int,
        amount: Decimal,
        order_id: UUID | None = None,
    ) -> Result: ...


class AccountClient(ServiceClient):
    async def get_account(self, user_id: int) -> Result:
        return await self._get(f"/queries/accounts/{user_id}")

    async def transfer(
        self,
        from_user_id: int,
        to_user_id: int,
        amount: Decimal,
        order_id: UUID | None = None,
    ) -> Result:
        return await self._post(
            "/commands/accounts/transfer",
            {
                "order_id": str(order_id) if order_id else None,
                "from_user_id": from_user_id,
                "to_user_id": to_user_id,
                "amount": str(amount),
            },
        )
