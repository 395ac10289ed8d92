"""
Payment Service — イベント定義
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel


class PaymentApproved(BaseModel):
    """支払いが完了した"""
    order_id: UUID
    from_user_id: int
    to_user_id: int
    amount: Decimal
    timestamp: datetime


class PaymentFailed(BaseModel):
    """資金移動が失敗した"""
    order_id: UUID
    kind: str
    reason: str
    timestamp: datetime
