"""
Order Service — テーブル定義

状態遷移:
    CREATED → APPROVED   (引き当て・支払い・確定がすべて成功)
    CREATED → CANCELLED  (いずれかが失敗 = 補償)
"""

from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, Integer, MetaData, Numeric, String, Table


class OrderStatus(str, Enum):
    CREATED = "CREATED"
    APPROVED = "APPROVED"
    CANCELLED = "CANCELLED"


metadata = MetaData()

orders = Table(
    "orders",
    metadata,
    Column("id", String(36), primary_key=True, default=lambda: str(uuid4())),
    Column("buyer_id", Integer, nullable=False),
    Column("seller_id", Integer, nullable=False),
    Column("product_id", String(36), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("unit_price", Numeric(12, 2), nullable=False),
    Column("status", String(16), nullable=False),
    Column("created_at", DateTime(timezone=True)),
    Column("updated_at", DateTime(timezone=True)),
)
