"""
Payment Service — FastAPI エントリーポイント

支払いサービス (PaymentEngine)。
Order Service の Saga から呼ばれ、Account Service に資金移動を依頼する。
"""

import os
from contextlib import asynccontextmanager
from decimal import Decimal
from uuid import UUID

import httpx
import redis.asyncio as aioredis
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from services.shared.log import configure_logging
from services.shared.results import install_error_handlers, to_response

from . import commands, queries
from .clients import AccountClient
from .schema import metadata

DATABASE_URL = os.environ["DATABASE_URL"]
ACCOUNT_SERVICE_URL = os.environ["ACCOUNT_SERVICE_URL"]
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379")
HTTP_TIMEOUT = float(os.environ.get("HTTP_TIMEOUT", "30"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

engine = create_async_engine(DATABASE_URL, echo=False)
async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
redis_pool: aioredis.Redis | None = None
http_client: httpx.AsyncClient | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    global redis_pool, http_client
    configure_logging(LOG_LEVEL)
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    redis_pool = aioredis.from_url(REDIS_URL, decode_responses=True)
    http_client = httpx.AsyncClient(timeout=HTTP_TIMEOUT)
    yield
    await http_client.aclose()
    await redis_pool.aclose()
    await engine.dispose()


app = FastAPI(title="Payment Service", lifespan=lifespan)
install_error_handlers(app)


# ── Request Models ───────────────────────────────


class PaymentRequest(BaseModel):
    order_id: UUID
    from_user_id: int
    to_user_id: int
    amount: Decimal = Field(gt=0, decimal_places=2)
    kind: str = "DEBIT"


# ── Command Endpoints (Write 側) ─────────────────


@app.post("/commands/payments/check")
async def cmd_check_transfer(req: PaymentRequest):
    """送金可能かを確認し、PENDING の支払いを記録する"""
    accounts = AccountClient(ACCOUNT_SERVICE_URL, http_client)
    async with async_session() as session:
        result = await commands.check_transfer(
            session,
            accounts,
            req.order_id,
            req.from_user_id,
            req.to_user_id,
            req.amount,
            req.kind,
        )
        return to_response(result)


@app.post("/commands/payments/transfer")
async def cmd_transfer(req: PaymentRequest):
    """確認と資金移動を 1 ステップで行う（Saga から呼ばれる）"""
    accounts = AccountClient(ACCOUNT_SERVICE_URL, http_client)
    async with async_session() as session:
        result = await commands.process_payment(
            session,
            redis_pool,
            accounts,
            req.order_id,
            req.from_user_id,
            req.to_user_id,
            req.amount,
            req.kind,
        )
        return to_response(result)


# ── Query Endpoints (Read 側) ────────────────────


@app.get("/queries/payments/{order_id}")
async def query_get_payment(order_id: UUID):
    async with async_session() as session:
        payment = await queries.get_payment(session, order_id)
        if not payment:
            raise HTTPException(404, "Payment not found")
        return payment


@app.get("/health")
async def health():
    return {"status": "ok", "service": "payment-service"}
