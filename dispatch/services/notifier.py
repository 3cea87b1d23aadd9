"""Real-time event channel backed by Redis pub/sub"""

import json
from typing import Any, Dict, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError
import structlog

from dispatch.config import settings

logger = structlog.get_logger()


def order_room(order_id) -> str:
    """Room id grouping the real-time events of one order"""
    return f"order_{order_id}"


class RealtimeNotifier:
    """
    Fire-and-forget publisher.

    Subscribers join a room by subscribing to its channel. Delivery is not
    confirmed; publish failures are logged and dropped.
    """

    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self._client: Optional[aioredis.Redis] = None

    def _get_client(self) -> aioredis.Redis:
        if self._client is None:
            self._client = aioredis.from_url(self.redis_url, socket_connect_timeout=1)
        return self._client

    async def emit(self, room_id: str, event: str, data: Dict[str, Any]) -> None:
        payload = json.dumps({"event": event, "data": data}, default=str)
        try:
            await self._get_client().publish(room_id, payload)
        except (RedisError, OSError) as e:
            logger.warning("Failed to publish event", room=room_id, event=event, error=str(e))

    async def ping(self) -> None:
        await self._get_client().ping()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


notifier = RealtimeNotifier(settings.redis_url)


def get_notifier() -> RealtimeNotifier:
    """Dependency returning the process-wide notifier"""
    return notifier
