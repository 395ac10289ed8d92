"""
Payment Service — テーブル定義

状態遷移:
    PENDING → APPROVED  (資金移動成功)
    PENDING → FAILED    (資金移動失敗)
"""

from enum import Enum

from sqlalchemy import Column, DateTime, Integer, MetaData, Numeric, String, Table


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    FAILED = "FAILED"


metadata = MetaData()

payments = Table(
    "payments",
    metadata,
    Column("order_id", String(36), primary_key=True),
    Column("from_user_id", Integer, nullable=False),
    Column("to_user_id", Integer, nullable=False),
    Column("amount", Numeric(12, 2), nullable=False),
    Column("kind", String(16), nullable=False, default="DEBIT"),
    Column("status", String(16), nullable=False),
    Column("created_at", DateTime(timezone=True)),
    Column("updated_at", DateTime(timezone=True)),
)
