# haatbazaar/services/event_publisher.py
# Publishes JSON events to Redis Pub/Sub for the socket gateway
import json
from typing import Any, Dict, Optional

import redis.asyncio as redis

from haatbazaar.core.logging_setup import logger
from haatbazaar.core.redis_client import get_redis_client


def user_channel(user_id: str) -> str:
    return f"notifications.{user_id}"


class EventPublisher:
    """Thin wrapper over Redis PUBLISH used by the notification outbox."""

    def __init__(self, client: Optional[redis.Redis] = None):
        self._redis = client
        self.log = logger.bind(service="EventPublisher")

    def _get_redis(self) -> redis.Redis:
        if self._redis is None:
            self._redis = get_redis_client()
        return self._redis

    async def publish(self, channel: str, payload: Dict[str, Any]) -> int:
        """Publishes the payload and returns the number of subscribers that received it.

        Raises RuntimeError when Redis is not configured and redis.RedisError on
        transport failure, so the outbox can schedule a retry.
        """
        client = self._get_redis()
        message_json = json.dumps(payload, default=str)
        receivers = await client.publish(channel, message_json)
        self.log.bind(channel=channel).debug(f"Published event. Receivers: {receivers}")
        return receivers

    async def publish_to_user(self, user_id: str, event_type: str, data: Dict[str, Any]) -> int:
        return await self.publish(user_channel(user_id), {"event_type": event_type, "data": data})


event_publisher = EventPublisher()
