"""
Order Service — FastAPI エントリーポイント

注文の作成を受け付け、Saga オーケストレーターで
Inventory Service と Payment Service を協調させる。
"""

import os
from contextlib import asynccontextmanager
from decimal import Decimal
from uuid import UUID

import httpx
import redis.asyncio as aioredis
from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from services.shared.log import configure_logging
from services.shared.results import HTTP_STATUS, install_error_handlers

from . import queries
from .clients import InventoryClient, PaymentClient
from .commands import OrderRepository
from .orchestrator import OrderSagaOrchestrator
from .schema import metadata

DATABASE_URL = os.environ["DATABASE_URL"]
INVENTORY_SERVICE_URL = os.environ["INVENTORY_SERVICE_URL"]
PAYMENT_SERVICE_URL = os.environ["PAYMENT_SERVICE_URL"]
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


app = FastAPI(title="Order Service", lifespan=lifespan)
install_error_handlers(app)


# ── Request Models ───────────────────────────────


class CreateOrderRequest(BaseModel):
    buyer_id: int
    seller_id: int
    product_id: UUID
    quantity: int = Field(gt=0)
    unit_price: Decimal = Field(gt=0, decimal_places=2)


# ── Command Endpoints (Write 側) ─────────────────


@app.post("/commands/orders")
async def cmd_create_order(req: CreateOrderRequest):
    """
    注文 Saga を実行する。

    成功時は 200 で order_id と saga_log を返す。
    失敗時は原因の kind に対応するステータスで、失敗したステージ・原因・
    補償の結果を返す。
    """
    async with async_session() as session:
        orchestrator = OrderSagaOrchestrator(
            OrderRepository(session),
            InventoryClient(INVENTORY_SERVICE_URL, http_client),
            PaymentClient(PAYMENT_SERVICE_URL, http_client),
            redis_pool,
        )
        result = await orchestrator.execute(
            buyer_id=req.buyer_id,
            seller_id=req.seller_id,
            product_id=req.product_id,
            quantity=req.quantity,
            unit_price=req.unit_price,
        )

    status_code = 200
    if result.failure is not None:
        status_code = HTTP_STATUS.get(result.failure.cause.kind, 500)
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


# ── Query Endpoints (Read 側) ────────────────────


@app.get("/queries/orders")
async def query_list_orders():
    async with async_session() as session:
        return await queries.list_orders(session)


@app.get("/queries/orders/{order_id}")
async def query_get_order(order_id: UUID):
    async with async_session() as session:
        order = await queries.get_order(session, order_id)
        if not order:
            raise HTTPException(404, "Order not found")
        return order


@app.get("/health")
async def health():
    return {"status": "ok", "service": "order-service"}
