"""
Inventory Service — クエリハンドラ (CQRS Read 側)
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .schema import products, reservations


def _product_row(row) -> dict:
    return {
        "id": row.id,
        "product_name": row.product_name,
        "stock": row.stock,
        "price": str(row.price),
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }


async def get_product(session: AsyncSession, product_id: UUID) -> dict | None:
    result = await session.execute(
        select(products).where(products.c.id == str(product_id))
    )
    row = result.fetchone()
    if not row:
        return None
    return _product_row(row)


async def list_products(session: AsyncSession) -> list[dict]:
    result = await session.execute(select(products).order_by(products.c.product_name))
    return [_product_row(row) for row in result.fetchall()]


async def get_reservation(session: AsyncSession, order_id: UUID) -> dict | None:
    result = await session.execute(
        select(reservations).where(reservations.c.order_id == str(order_id))
    )
    row = result.fetchone()
    if not row:
        return None
    return {
        "order_id": row.order_id,
        "product_id": row.product_id,
        "quantity": row.quantity,
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }
