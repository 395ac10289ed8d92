"""
Shared — ドメインイベントの発行

コミット済みの事実を Redis Pub/Sub で他サービスへ通知する。
ローカルトランザクションは既に確定しているため、発行失敗はログに残して処理を続ける。
"""

import json

import redis.asyncio as aioredis
from pydantic import BaseModel
from redis.exceptions import RedisError

from .log import get_logger

logger = get_logger(__name__)


async def publish_event(redis: aioredis.Redis, channel: str, event: BaseModel) -> None:
    message = json.dumps(
        {
            "event_type": type(event).__name__,
            "data": event.model_dump(mode="json"),
        },
        default=str,
    )
    try:
        await redis.publish(channel, message)
    except RedisError:
        logger.exception("Failed to publish %s to %s", type(event).__name__, channel)
