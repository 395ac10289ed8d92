"""
Order Service — クエリハンドラ (CQRS の Read 側)
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .schema import orders


def _order_row(row) -> dict:
    return {
        "id": row.id,
        "buyer_id": row.buyer_id,
        "seller_id": row.seller_id,
        "product_id": row.product_id,
        "quantity": row.quantity,
        "unit_price": str(row.unit_price),
        "status": row.status,
        "created_at": row.created_at.isoformat() if row.created_at else None,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }


async def get_order(session: AsyncSession, order_id: UUID) -> dict | None:
    result = await session.execute(select(orders).where(orders.c.id == str(order_id)))
    row = result.fetchone()
    if not row:
        return None
    return _order_row(row)


async def list_orders(session: AsyncSession) -> list[dict]:
    result = await session.execute(select(orders).order_by(orders.c.created_at.desc()))
    return [_order_row(row) for row in result.fetchall()]
