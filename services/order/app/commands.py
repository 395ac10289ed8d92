"""
Order Service — コマンドハンドラ (CQRS の Write 側)

注文行の作成と状態更新。Saga オーケストレーターから OrderRepository 経由で使われる。
状態は CREATED からしか進まないので、終端状態 (APPROVED / CANCELLED) は一度しか書かれない。
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import insert, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from services.shared.log import get_logger

from .schema import OrderStatus, orders

logger = get_logger(__name__)


class OrderRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        buyer_id: int,
        seller_id: int,
        product_id: UUID,
        quantity: int,
        unit_price: Decimal,
    ) -> UUID | None:
        """
        注文作成コマンド

        CREATED の注文を保存し、採番された ID を返す。
        ID が得られなかった場合は None (Saga は BAD_ORDER で中断する)。
        """
        now = datetime.now(timezone.utc)
        try:
            result = await self.session.execute(
                insert(orders)
                .values(
                    buyer_id=buyer_id,
                    seller_id=seller_id,
                    product_id=str(product_id),
                    quantity=quantity,
                    unit_price=unit_price,
                    status=OrderStatus.CREATED.value,
                    created_at=now,
                    updated_at=now,
                )
                .returning(orders.c.id)
            )
            order_id = result.scalar_one_or_none()
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            logger.exception("create: failed to persist order for buyer %s", buyer_id)
            return None
        return UUID(order_id) if order_id else None

    async def set_status(self, order_id: UUID, status: OrderStatus) -> bool:
        """CREATED の注文を終端状態に進める。既に終端か、書き込めなければ False。"""
        try:
            result = await self.session.execute(
                update(orders)
                .where(
                    orders.c.id == str(order_id),
                    orders.c.status == OrderStatus.CREATED.value,
                )
                .values(status=status.value, updated_at=datetime.now(timezone.utc))
            )
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            logger.exception("set_status: failed to move order %s to %s", order_id, status.value)
            return False
        return result.rowcount == 1
