"""
Saga Orchestrator — 注文処理 Saga

Saga パターン（オーケストレーション型）:
  中央のオーケストレーターが各サービスへのコマンド実行を制御する。
  グローバルトランザクションは使わず、失敗時は補償トランザクション
  (Compensating Transaction) を実行して整合性を保つ。

  フロー:
  ┌──────────────────────────────────────────────────────────────┐
  │  1. 注文を作成 (CREATED)          失敗 → BAD_ORDER で中断     │
  │  2. Inventory Service で在庫引き当て                          │
  │     └─ 失敗 → 注文キャンセル                                  │
  │  3. Payment Service で資金移動                                │
  │     └─ 失敗 → 引き当て解除 (補償) → 注文キャンセル            │
  │  4. Inventory Service で引き当て確定                          │
  │  5. 注文を確定 (APPROVED)                                     │
  └──────────────────────────────────────────────────────────────┘

支払いは引き当て成功後にしか行わないので、支払い失敗時に補償すべきものは
その注文の引き当て 1 件だけ。補償は常に「解除 → キャンセル」の順。
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Protocol
from uuid import UUID

import redis.asyncio as aioredis
from pydantic import BaseModel

from services.shared.events import publish_event
from services.shared.log import get_logger
from services.shared.results import ErrorKind, Result

from .events import SagaCompensated, SagaCompleted, SagaFailed
from .schema import OrderStatus

CHANNEL = "saga_events"

logger = get_logger(__name__)


# ── 協調するサービスのインターフェース ────────────


class OrderStore(Protocol):
    async def create(
        self,
        buyer_id: int,
        seller_id: int,
        product_id: UUID,
        quantity: int,
        unit_price: Decimal,
    ) -> UUID | None: ...

    async def set_status(self, order_id: UUID, status: OrderStatus) -> bool: ...


class InventoryGateway(Protocol):
    async def reserve(self, order_id: UUID, product_id: UUID, quantity: int) -> Result: ...

    async def unblock(self, order_id: UUID) -> Result: ...

    async def approve(self, order_id: UUID) -> Result: ...


class PaymentGateway(Protocol):
    async def transfer(
        self,
        order_id: UUID,
        from_user_id: int,
        to_user_id: int,
        amount: Decimal,
        kind: str = "DEBIT",
    ) -> Result: ...


# ── Saga の結果 ───────────────────────────────────


class SagaStage(str, Enum):
    CREATION = "creation"
    RESERVATION = "reservation"
    PAYMENT = "payment"


class OrderFailure(BaseModel):
    """どのステップで何が原因で失敗したか。compensation は実行した補償の結果。"""
    stage: SagaStage
    cause: Result
    compensation: Result | None = None


class SagaResult(BaseModel):
    order_id: UUID | None = None
    success: bool
    status: OrderStatus | None = None
    failure: OrderFailure | None = None
    saga_log: list[dict]


class OrderSagaOrchestrator:
    """注文 Saga のオーケストレーター"""

    def __init__(
        self,
        orders: OrderStore,
        inventory: InventoryGateway,
        payments: PaymentGateway,
        redis: aioredis.Redis,
    ):
        self.orders = orders
        self.inventory = inventory
        self.payments = payments
        self.redis = redis

    async def execute(
        self,
        buyer_id: int,
        seller_id: int,
        product_id: UUID,
        quantity: int,
        unit_price: Decimal,
    ) -> SagaResult:
        """
        Saga を実行する。

        各ステップの Result の kind に応じて次のアクションを決める。
        リモート呼び出しは 1 つずつ順番に行い、自動リトライはしない
        (reserve / transfer は冪等ではない)。
        """
        saga_log: list[dict] = []

        # ── Step 1: 注文を作成 ──────────────────────
        entry = self._begin(saga_log, "CreateOrder")
        order_id = await self.orders.create(
            buyer_id, seller_id, product_id, quantity, unit_price
        )
        if order_id is None:
            cause = Result.fail(ErrorKind.BAD_ORDER, "Order was not assigned an identifier")
            self._end(entry, cause)
            logger.error("saga: order for buyer %s could not be created", buyer_id)
            await publish_event(
                self.redis,
                CHANNEL,
                SagaFailed(order_id=None, saga_log=saga_log, reason=cause.reason),
            )
            return SagaResult(
                success=False,
                failure=OrderFailure(stage=SagaStage.CREATION, cause=cause),
                saga_log=saga_log,
            )
        self._end(entry, Result.ok())
        logger.info("saga: order %s created", order_id)

        # ── Step 2: 在庫を引き当て ──────────────────
        entry = self._begin(saga_log, "ReserveInventory")
        reserved = await self.inventory.reserve(order_id, product_id, quantity)
        self._end(entry, reserved)
        if not reserved.success:
            compensation = None
            if reserved.kind == ErrorKind.REMOTE_CALL:
                # 通信エラーでは引き当てられたか分からないので解除しておく
                compensation = await self._unblock(order_id, saga_log)
            return await self._cancel(
                order_id,
                saga_log,
                OrderFailure(
                    stage=SagaStage.RESERVATION, cause=reserved, compensation=compensation
                ),
            )

        # ── Step 3: 資金移動 ────────────────────────
        amount = unit_price * quantity
        entry = self._begin(saga_log, "TransferFunds")
        paid = await self.payments.transfer(order_id, buyer_id, seller_id, amount)
        self._end(entry, paid)
        if not paid.success:
            compensation = await self._unblock(order_id, saga_log)
            return await self._cancel(
                order_id,
                saga_log,
                OrderFailure(stage=SagaStage.PAYMENT, cause=paid, compensation=compensation),
            )

        # ── Step 4: 引き当てを確定 ──────────────────
        entry = self._begin(saga_log, "ApproveReservation")
        approved = await self.inventory.approve(order_id)
        self._end(entry, approved)
        if not approved.success:
            # 支払い済みなので補償はしない。引き当て行が残るため要調査。
            logger.error(
                "saga: order %s paid but reservation approval failed: %s %s",
                order_id, approved.kind, approved.reason,
            )

        # ── Step 5: 注文を確定 ──────────────────────
        entry = self._begin(saga_log, "ApproveOrder")
        updated = await self.orders.set_status(order_id, OrderStatus.APPROVED)
        self._end(entry, self._status_result(order_id, updated))

        logger.info("saga: order %s approved", order_id)
        await publish_event(
            self.redis, CHANNEL, SagaCompleted(order_id=order_id, saga_log=saga_log)
        )
        return SagaResult(
            order_id=order_id,
            success=True,
            status=OrderStatus.APPROVED,
            saga_log=saga_log,
        )

    async def _unblock(self, order_id: UUID, saga_log: list[dict]) -> Result:
        """補償: 引き当てを解除する。失敗は握りつぶさず Result として返す。"""
        entry = self._begin(saga_log, "UnblockInventory (COMPENSATING)")
        unblocked = await self.inventory.unblock(order_id)
        self._end(entry, unblocked)
        if not unblocked.success:
            logger.error(
                "saga: compensation for order %s failed, stock may still be held: %s %s",
                order_id, unblocked.kind, unblocked.reason,
            )
        return unblocked

    async def _cancel(
        self,
        order_id: UUID,
        saga_log: list[dict],
        failure: OrderFailure,
    ) -> SagaResult:
        """注文をキャンセルして Saga の失敗を返す。"""
        entry = self._begin(saga_log, "CancelOrder (COMPENSATING)")
        updated = await self.orders.set_status(order_id, OrderStatus.CANCELLED)
        self._end(entry, self._status_result(order_id, updated))

        logger.warning(
            "saga: order %s cancelled at %s: %s %s",
            order_id, failure.stage.value, failure.cause.kind, failure.cause.reason,
        )
        await publish_event(
            self.redis,
            CHANNEL,
            SagaCompensated(
                order_id=order_id,
                saga_log=saga_log,
                stage=failure.stage.value,
                reason=failure.cause.reason,
            ),
        )
        return SagaResult(
            order_id=order_id,
            success=False,
            status=OrderStatus.CANCELLED,
            failure=failure,
            saga_log=saga_log,
        )

    @staticmethod
    def _status_result(order_id: UUID, updated: bool) -> Result:
        if updated:
            return Result.ok()
        logger.error("saga: order %s status could not be finalized", order_id)
        return Result.fail(
            ErrorKind.CONFLICT,
            f"Order {order_id} is already finalized or could not be updated",
        )

    @staticmethod
    def _begin(saga_log: list[dict], action: str) -> dict:
        entry = {
            "step": len(saga_log) + 1,
            "action": action,
            "status": "EXECUTING",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        saga_log.append(entry)
        return entry

    @staticmethod
    def _end(entry: dict, result: Result) -> None:
        if result.success:
            entry["status"] = "COMPLETED"
            return
        entry["status"] = "FAILED"
        entry["error"] = result.reason
        if result.kind:
            entry["kind"] = result.kind.value
