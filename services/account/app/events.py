"""
Account Service — イベント定義
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel


class FundsTransferred(BaseModel):
    """2 つの口座間で資金が移動した"""
    order_id: UUID | None = None
    from_user_id: int
    to_user_id: int
    amount: Decimal
    timestamp: datetime
