"""
Order Service — Saga イベント定義

Saga の結果を saga_events チャネルに発行する。saga_log に各ステップの実行記録が入る。
"""

from uuid import UUID

from pydantic import BaseModel


class SagaEvent(BaseModel):
    order_id: UUID | None
    saga_log: list[dict]


class SagaCompleted(SagaEvent):
    """注文が確定した"""


class SagaCompensated(SagaEvent):
    """途中で失敗し、補償を実行して注文をキャンセルした"""
    stage: str
    reason: str


class SagaFailed(SagaEvent):
    """注文を作成できなかった（リモート呼び出し前に中断）"""
    reason: str
