"""
Account Service — コマンドハンドラ (CQRS Write 側)

口座間の資金移動 (AccountLedger)。
Saga 全体の中で唯一、本当の意味でアトミックなステップ:
送金元の引き落としと送金先への入金は 1 つのローカルトランザクションでコミットされる。
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

import redis.asyncio as aioredis
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from services.shared.events import publish_event
from services.shared.log import get_logger
from services.shared.results import ErrorKind, Result

from .events import FundsTransferred
from .queries import get_payment_account
from .schema import accounts

CHANNEL = "account_events"

logger = get_logger(__name__)


async def transfer(
    session: AsyncSession,
    redis: aioredis.Redis,
    from_user_id: int,
    to_user_id: int,
    amount: Decimal,
    order_id: UUID | None = None,
) -> Result:
    """
    資金移動コマンド

    1. 両ユーザーの支払い口座を解決 (どちらかがなければ BAD_ACCOUNT)
    2. 送金元の残高を確認 (足りなければ NOT_ENOUGH_AMOUNT)
    3. 引き落としと入金を同じトランザクションで実行

    引き落としは balance >= amount を条件にした UPDATE で行うため、
    同じ口座への同時送金があっても残高は負にならない。
    行ロックの順序を揃えるため、更新は口座 id の昇順で行う。
    """
    sender = await get_payment_account(session, from_user_id)
    recipient = await get_payment_account(session, to_user_id)
    if sender is None or recipient is None:
        missing = from_user_id if sender is None else to_user_id
        logger.info("transfer: user %s has no payment account", missing)
        return Result.fail(ErrorKind.BAD_ACCOUNT, f"User {missing} has no payment account")

    if sender["balance"] < amount:
        logger.info(
            "transfer: user %s balance %s is less than %s",
            from_user_id, sender["balance"], amount,
        )
        return Result.fail(
            ErrorKind.NOT_ENOUGH_AMOUNT,
            f"Not enough amount: balance={sender['balance']}, requested={amount}",
        )

    deltas: dict[int, Decimal] = {sender["id"]: -amount}
    deltas[recipient["id"]] = deltas.get(recipient["id"], Decimal(0)) + amount

    for account_id in sorted(deltas):
        delta = deltas[account_id]
        stmt = update(accounts).where(accounts.c.id == account_id)
        if delta < 0:
            stmt = stmt.where(accounts.c.balance >= -delta)
        result = await session.execute(stmt.values(balance=accounts.c.balance + delta))
        if result.rowcount == 0:
            # 確認後に別の送金が残高を減らした
            await session.rollback()
            logger.info("transfer: concurrent debit left user %s short", from_user_id)
            return Result.fail(
                ErrorKind.NOT_ENOUGH_AMOUNT,
                f"Not enough amount on account of user {from_user_id}",
            )

    await session.commit()

    logger.info("transfer: %s moved from user %s to user %s", amount, from_user_id, to_user_id)
    await publish_event(
        redis,
        CHANNEL,
        FundsTransferred(
            order_id=order_id,
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            amount=amount,
            timestamp=datetime.now(timezone.utc),
        ),
    )
    return Result.ok()
