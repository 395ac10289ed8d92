"""
Inventory Service — テーブル定義

Database per Service: 在庫サービスは products と reservations だけを持つ。
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
)

metadata = MetaData()

products = Table(
    "products",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("product_name", String(255), nullable=False, default=""),
    Column("stock", Integer, nullable=False),
    Column("price", Numeric(12, 2), nullable=False),
    Column("updated_at", DateTime(timezone=True)),
    CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
)

# 進行中の注文ごとに 1 行。approve / unblock で削除される。
reservations = Table(
    "reservations",
    metadata,
    Column("order_id", String(36), primary_key=True),
    Column("product_id", String(36), ForeignKey("products.id"), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("created_at", DateTime(timezone=True)),
    CheckConstraint("quantity > 0", name="ck_reservations_quantity_positive"),
)
