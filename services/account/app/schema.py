"""
Account Service — テーブル定義

1 ユーザーが複数の口座を持てる。id が最小の口座が支払い口座。
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
)

metadata = MetaData()

accounts = Table(
    "accounts",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("name", String(64), nullable=False, default=""),
    Column("balance", Numeric(12, 2), nullable=False),
    Column("created_at", DateTime(timezone=True)),
    CheckConstraint("balance >= 0", name="ck_accounts_balance_non_negative"),
)
