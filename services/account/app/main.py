"""
Account Service — FastAPI エントリーポイント

ユーザー口座と残高を管理する (AccountLedger)。
Payment Service から呼ばれ、口座情報の参照と資金移動を提供する。
"""

import os
from contextlib import asynccontextmanager
from decimal import Decimal
from uuid import UUID

import redis.asyncio as aioredis
from fastapi import FastAPI
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from services.shared.log import configure_logging
from services.shared.results import ErrorKind, Result, install_error_handlers, to_response

from . import commands, queries
from .schema import metadata

DATABASE_URL = os.environ["DATABASE_URL"]
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

engine = create_async_engine(DATABASE_URL, echo=False)
async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
redis_pool: aioredis.Redis | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    global redis_pool
    configure_logging(LOG_LEVEL)
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    redis_pool = aioredis.from_url(REDIS_URL, decode_responses=True)
    yield
    await redis_pool.aclose()
    await engine.dispose()


app = FastAPI(title="Account Service", lifespan=lifespan)
install_error_handlers(app)


# ── Request Models ───────────────────────────────


class TransferRequest(BaseModel):
    order_id: UUID | None = None
    from_user_id: int
    to_user_id: int
    amount: Decimal = Field(gt=0, decimal_places=2)


# ── Command Endpoints (Write 側) ─────────────────


@app.post("/commands/accounts/transfer")
async def cmd_transfer(req: TransferRequest):
    """資金移動コマンド（Payment Service から呼ばれる）"""
    async with async_session() as session:
        result = await commands.transfer(
            session,
            redis_pool,
            req.from_user_id,
            req.to_user_id,
            req.amount,
            order_id=req.order_id,
        )
        return to_response(result)


# ── Query Endpoints (Read 側) ────────────────────


@app.get("/queries/accounts/{user_id}")
async def query_get_account(user_id: int):
    """支払い口座を Result 形式で返す（Payment Service の残高確認用）"""
    async with async_session() as session:
        account = await queries.get_payment_account(session, user_id)
        if account is None:
            return to_response(
                Result.fail(ErrorKind.NOT_FOUND, f"User {user_id} has no account")
            )
        return to_response(Result.ok(account))


@app.get("/queries/users/{user_id}/accounts")
async def query_list_accounts(user_id: int):
    async with async_session() as session:
        return await queries.list_accounts(session, user_id)


@app.get("/health")
async def health():
    return {"status": "ok", "service": "account-service"}
