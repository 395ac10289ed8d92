"""
Inventory Service — コマンドハンドラ (CQRS Write 側)

在庫の引き当て(reserve)、解除(unblock)、確定(approve)を処理する。

  reserve : stock を減らし、注文ごとの引き当て行を作る
  unblock : 引き当てを削除して stock を戻す（Saga の補償トランザクション）
  approve : 引き当てを削除する。stock は戻さない（確定）

同時実行する注文が同じ商品を取り合っても stock が負にならないように、
stock の更新は条件付き UPDATE (compare-and-set) で行い、影響行数で判定する。
引き当て行の削除も同様に DELETE の影響行数で「誰が処理したか」を決める。
"""

from datetime import datetime, timezone
from uuid import UUID

import redis.asyncio as aioredis
from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from services.shared.events import publish_event
from services.shared.log import get_logger
from services.shared.results import ErrorKind, Result

from .events import (
    InventoryReleased,
    InventoryReservationFailed,
    InventoryReserved,
    ReservationApproved,
)
from .schema import products, reservations

CHANNEL = "inventory_events"

logger = get_logger(__name__)


async def reserve(
    session: AsyncSession,
    redis: aioredis.Redis,
    order_id: UUID,
    product_id: UUID,
    quantity: int,
) -> Result:
    """
    在庫引き当てコマンド

    0. quantity は正の数 (0 以下なら BAD_REQUEST)
    1. 商品を確認 (なければ NOT_FOUND)
    2. stock >= quantity の場合だけ stock を減算 (足りなければ NOT_AVAILABLE)
    3. 注文 ID をキーに引き当て行を作成 (既にあれば CONFLICT)

    2 と 3 は同じトランザクションでコミットされる。
    """
    if quantity <= 0:
        logger.info("reserve: rejected quantity %d for order %s", quantity, order_id)
        return Result.fail(
            ErrorKind.BAD_REQUEST, f"Quantity must be positive: requested={quantity}"
        )

    now = datetime.now(timezone.utc)

    result = await session.execute(
        select(products.c.stock).where(products.c.id == str(product_id))
    )
    row = result.fetchone()
    if row is None:
        logger.info("reserve: product %s not found (order %s)", product_id, order_id)
        return Result.fail(ErrorKind.NOT_FOUND, f"Product {product_id} not found")

    # 条件付き減算: 読み取り後に他の注文が在庫を取っても負にはならない
    result = await session.execute(
        update(products)
        .where(products.c.id == str(product_id), products.c.stock >= quantity)
        .values(stock=products.c.stock - quantity, updated_at=now)
    )
    if result.rowcount == 0:
        await session.rollback()
        available = row.stock
        logger.info(
            "reserve: insufficient stock for %s: requested=%d, available=%d",
            product_id, quantity, available,
        )
        await publish_event(
            redis,
            CHANNEL,
            InventoryReservationFailed(
                product_id=product_id,
                order_id=order_id,
                quantity_requested=quantity,
                quantity_available=available,
                timestamp=now,
            ),
        )
        return Result.fail(
            ErrorKind.NOT_AVAILABLE,
            f"Insufficient stock: requested={quantity}, available={available}",
        )

    try:
        await session.execute(
            insert(reservations).values(
                order_id=str(order_id),
                product_id=str(product_id),
                quantity=quantity,
                created_at=now,
            )
        )
        await session.commit()
    except IntegrityError:
        # 同じ注文の引き当てが既にある: 減算ごと取り消す
        await session.rollback()
        logger.warning("reserve: order %s already holds a reservation", order_id)
        return Result.fail(
            ErrorKind.CONFLICT, f"Order {order_id} already holds a reservation"
        )

    logger.info("reserve: order %s reserved %d x %s", order_id, quantity, product_id)
    await publish_event(
        redis,
        CHANNEL,
        InventoryReserved(
            product_id=product_id, order_id=order_id, quantity=quantity, timestamp=now
        ),
    )
    return Result.ok()


async def unblock(
    session: AsyncSession,
    redis: aioredis.Redis,
    order_id: UUID,
) -> Result:
    """
    引き当て解除コマンド（Saga の補償トランザクション）

    引き当てがなければ何もせず成功を返す (在庫は押さえられていない)。
    引き当てがあれば削除して stock を戻し、解除した内容を data で返す。
    """
    now = datetime.now(timezone.utc)

    result = await session.execute(
        select(reservations.c.product_id, reservations.c.quantity).where(
            reservations.c.order_id == str(order_id)
        )
    )
    row = result.fetchone()
    if row is None:
        logger.info("unblock: no reservation for order %s, nothing to release", order_id)
        return Result.ok(reason="No reservation held")

    # 先に削除できたセッションだけが在庫を戻す (二重補償の防止)
    claimed = await session.execute(
        delete(reservations).where(reservations.c.order_id == str(order_id))
    )
    if claimed.rowcount == 0:
        await session.rollback()
        logger.info("unblock: reservation for order %s already released", order_id)
        return Result.ok(reason="No reservation held")

    restored = await session.execute(
        update(products)
        .where(products.c.id == row.product_id)
        .values(stock=products.c.stock + row.quantity, updated_at=now)
    )
    if restored.rowcount == 0:
        await session.rollback()
        logger.error(
            "unblock: product %s for order %s no longer exists", row.product_id, order_id
        )
        return Result.fail(ErrorKind.NOT_FOUND, f"Product {row.product_id} not found")

    await session.commit()

    logger.info(
        "unblock: order %s released %d x %s", order_id, row.quantity, row.product_id
    )
    await publish_event(
        redis,
        CHANNEL,
        InventoryReleased(
            product_id=UUID(row.product_id),
            order_id=order_id,
            quantity=row.quantity,
            timestamp=now,
        ),
    )
    return Result.ok({"product_id": row.product_id, "quantity": row.quantity})


async def approve(
    session: AsyncSession,
    redis: aioredis.Redis,
    order_id: UUID,
) -> Result:
    """引き当て確定コマンド: 引き当て行を削除する。stock は減ったまま。"""
    now = datetime.now(timezone.utc)

    result = await session.execute(
        delete(reservations)
        .where(reservations.c.order_id == str(order_id))
        .returning(reservations.c.product_id, reservations.c.quantity)
    )
    row = result.fetchone()
    if row is None:
        await session.rollback()
        logger.warning("approve: no reservation for order %s", order_id)
        return Result.fail(ErrorKind.NOT_FOUND, f"No reservation for order {order_id}")

    await session.commit()

    logger.info("approve: order %s committed %d x %s", order_id, row.quantity, row.product_id)
    await publish_event(
        redis,
        CHANNEL,
        ReservationApproved(
            product_id=UUID(row.product_id),
            order_id=order_id,
            quantity=row.quantity,
            timestamp=now,
        ),
    )
    return Result.ok({"product_id": row.product_id, "quantity": row.quantity})
