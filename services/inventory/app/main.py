"""
Inventory Service — FastAPI エントリーポイント

在庫引き当てサービス (ReservationManager)。
コマンドは Result 形式のボディを返し、失敗時のステータスコードは kind から決まる。
"""

import os
from contextlib import asynccontextmanager
from uuid import UUID

import redis.asyncio as aioredis
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from services.shared.log import configure_logging
from services.shared.results import install_error_handlers, to_response

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


app = FastAPI(title="Inventory Service", lifespan=lifespan)
install_error_handlers(app)


# ── Request Models ───────────────────────────────


class ReserveRequest(BaseModel):
    order_id: UUID
    quantity: int = Field(gt=0)


# ── Command Endpoints (Write 側) ─────────────────


@app.post("/commands/inventory/{product_id}/reserve")
async def cmd_reserve(product_id: UUID, req: ReserveRequest):
    """在庫引き当てコマンド"""
    async with async_session() as session:
        result = await commands.reserve(
            session, redis_pool, req.order_id, product_id, req.quantity
        )
        return to_response(result)


@app.post("/commands/reservations/{order_id}/unblock")
async def cmd_unblock(order_id: UUID):
    """引き当て解除コマンド（補償トランザクション）"""
    async with async_session() as session:
        return to_response(await commands.unblock(session, redis_pool, order_id))


@app.post("/commands/reservations/{order_id}/approve")
async def cmd_approve(order_id: UUID):
    """引き当て確定コマンド"""
    async with async_session() as session:
        return to_response(await commands.approve(session, redis_pool, order_id))


# ── Query Endpoints (Read 側) ────────────────────


@app.get("/queries/products")
async def query_list_products():
    async with async_session() as session:
        return await queries.list_products(session)


@app.get("/queries/products/{product_id}")
async def query_get_product(product_id: UUID):
    async with async_session() as session:
        product = await queries.get_product(session, product_id)
        if not product:
            raise HTTPException(404, "Product not found")
        return product


@app.get("/queries/reservations/{order_id}")
async def query_get_reservation(order_id: UUID):
    async with async_session() as session:
        reservation = await queries.get_reservation(session, order_id)
        if not reservation:
            raise HTTPException(404, "Reservation not found")
        return reservation


@app.get("/health")
async def health():
    return {"status": "ok", "service": "inventory-service"}
