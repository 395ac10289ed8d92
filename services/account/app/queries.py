"""
Account Service — クエリハンドラ (CQRS Read 側)
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .schema import accounts


async def get_payment_account(session: AsyncSession, user_id: int) -> dict | None:
    """ユーザーの支払い口座 (id が最小の口座) を返す。"""
    result = await session.execute(
        select(accounts)
        .where(accounts.c.user_id == user_id)
        .order_by(accounts.c.id)
        .limit(1)
    )
    row = result.fetchone()
    if not row:
        return None
    return {
        "id": row.id,
        "user_id": row.user_id,
        "name": row.name,
        "balance": row.balance,
    }


async def list_accounts(session: AsyncSession, user_id: int) -> list[dict]:
    result = await session.execute(
        select(accounts).where(accounts.c.user_id == user_id).order_by(accounts.c.id)
    )
    return [
        {
            "id": row.id,
            "user_id": row.user_id,
            "name": row.name,
            "balance": str(row.balance),
            "created_at": row.created_at.isoformat() if row.created_at else None,
        }
        for row in result.fetchall()
    ]
