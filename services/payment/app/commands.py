"""
Payment Service — コマンドハンドラ (CQRS Write 側)

PaymentEngine:
  check_transfer : 支払い元の残高を確認し、PENDING の支払いを記録する
  transfer       : Account Service に資金移動を依頼し、結果で APPROVED / FAILED に進める
  process_payment: 上の 2 つを 1 つの論理ステップとして実行する (Saga から呼ばれる)

支払いの状態は PENDING からしか進まない。UPDATE の条件に status = PENDING を含めることで
終端状態 (APPROVED / FAILED) が書き換えられないことを保証する。
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

import redis.asyncio as aioredis
from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from services.shared.events import publish_event
from services.shared.log import get_logger
from services.shared.results import ErrorKind, Result

from .clients import AccountGateway
from .events import PaymentApproved, PaymentFailed
from .schema import PaymentStatus, payments

CHANNEL = "payment_events"

logger = get_logger(__name__)


async def check_transfer(
    session: AsyncSession,
    accounts: AccountGateway,
    order_id: UUID,
    from_user_id: int,
    to_user_id: int,
    amount: Decimal,
    kind: str = "DEBIT",
) -> Result:
    """
    送金可能かを確認するコマンド

    1. Account Service から支払い元の口座を取得 (なければ NOT_FOUND)
    2. 残高 < 金額 なら NOT_ENOUGH_AMOUNT
    3. PENDING の支払いを保存 (同じ注文の支払いが既にあれば CONFLICT)
    """
    account = await accounts.get_account(from_user_id)
    if not account.success:
        logger.info("check_transfer: account of user %s: %s", from_user_id, account.reason)
        return account

    balance = Decimal(str(account.data["balance"]))
    if balance < amount:
        logger.info(
            "check_transfer: user %s balance %s is less than %s", from_user_id, balance, amount
        )
        return Result.fail(
            ErrorKind.NOT_ENOUGH_AMOUNT,
            f"Not enough amount: balance={balance}, requested={amount}",
        )

    now = datetime.now(timezone.utc)
    try:
        await session.execute(
            insert(payments).values(
                order_id=str(order_id),
                from_user_id=from_user_id,
                to_user_id=to_user_id,
                amount=amount,
                kind=kind,
                status=PaymentStatus.PENDING.value,
                created_at=now,
                updated_at=now,
            )
        )
        await session.commit()
    except IntegrityError:
        await session.rollback()
        logger.warning("check_transfer: payment for order %s already exists", order_id)
        return Result.fail(ErrorKind.CONFLICT, f"Payment for order {order_id} already exists")

    logger.info("check_transfer: payment for order %s is pending", order_id)
    return Result.ok()


async def transfer(
    session: AsyncSession,
    redis: aioredis.Redis,
    accounts: AccountGateway,
    order_id: UUID,
) -> Result:
    """
    資金移動コマンド

    check_transfer で記録された PENDING の支払いが必要 (なければ NOT_FOUND)。
    Account Service の失敗は FAILED として保存したうえで、その Result を呼び出し元に返す。
    """
    result = await session.execute(
        select(payments).where(payments.c.order_id == str(order_id))
    )
    payment = result.fetchone()
    if payment is None:
        logger.warning("transfer: no payment for order %s", order_id)
        return Result.fail(ErrorKind.NOT_FOUND, f"Payment for order {order_id} not found")
    if payment.status != PaymentStatus.PENDING.value:
        logger.warning("transfer: payment for order %s is already %s", order_id, payment.status)
        return Result.fail(
            ErrorKind.CONFLICT, f"Payment for order {order_id} is already {payment.status}"
        )
    # 読み取りのトランザクションを閉じてからリモート呼び出しを行う
    await session.commit()

    outcome = await accounts.transfer(
        payment.from_user_id, payment.to_user_id, payment.amount, order_id=order_id
    )

    now = datetime.now(timezone.utc)
    status = PaymentStatus.APPROVED if outcome.success else PaymentStatus.FAILED
    await session.execute(
        update(payments)
        .where(
            payments.c.order_id == str(order_id),
            payments.c.status == PaymentStatus.PENDING.value,
        )
        .values(status=status.value, updated_at=now)
    )
    await session.commit()

    if not outcome.success:
        logger.warning("transfer: order %s failed: %s %s", order_id, outcome.kind, outcome.reason)
        await publish_event(
            redis,
            CHANNEL,
            PaymentFailed(
                order_id=order_id,
                kind=outcome.kind.value,
                reason=outcome.reason,
                timestamp=now,
            ),
        )
        return outcome

    logger.info("transfer: payment for order %s approved", order_id)
    await publish_event(
        redis,
        CHANNEL,
        PaymentApproved(
            order_id=order_id,
            from_user_id=payment.from_user_id,
            to_user_id=payment.to_user_id,
            amount=payment.amount,
            timestamp=now,
        ),
    )
    return Result.ok()


async def process_payment(
    session: AsyncSession,
    redis: aioredis.Redis,
    accounts: AccountGateway,
    order_id: UUID,
    from_user_id: int,
    to_user_id: int,
    amount: Decimal,
    kind: str = "DEBIT",
) -> Result:
    """check_transfer と transfer を続けて実行する。"""
    checked = await check_transfer(
        session, accounts, order_id, from_user_id, to_user_id, amount, kind
    )
    if not checked.success:
        return checked
    return await transfer(session, redis, accounts, order_id)
