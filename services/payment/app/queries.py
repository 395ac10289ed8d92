"""
Payment Service — クエリハンドラ (CQRS Read 側)
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .schema import payments


async def get_payment(session: AsyncSession, order_id: UUID) -> dict | None:
    result = await session.execute(
        select(payments).where(payments.c.order_id == str(order_id))
    )
    row = result.fetchone()
    if not row:
        return None
    return {
        "order_id": row.order_id,
        "from_user_id": row.from_user_id,
        "to_user_id": row.to_user_id,
        "amount": str(row.amount),
        "kind": row.kind,
        "status": row.status,
        "created_at": row.created_at.isoformat() if row.created_at else None,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }
