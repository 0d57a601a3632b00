# haatbazaar/modules/notifications/channels.py
# Delivery channels used by the outbox dispatcher. Each raises DeliveryError on failure.
from typing import Optional

import httpx
import redis.asyncio as redis

from haatbazaar.core.config import settings
from haatbazaar.core.logging_setup import logger
from haatbazaar.db.schemas.notification_schemas import OutboxChannel, OutboxEntryDoc
from haatbazaar.modules.notifications.exceptions import DeliveryError
from haatbazaar.services.event_publisher import EventPublisher, event_publisher


class RealtimeChannel:
    """Socket fan-out through Redis, one channel per recipient."""
    name = OutboxChannel.REALTIME

    def __init__(self, publisher: Optional[EventPublisher] = None):
        self.publisher = publisher or event_publisher

    async def send(self, entry: OutboxEntryDoc):
        try:
            await self.publisher.publish_to_user(entry.recipient, "notification", entry.payload)
        except (RuntimeError, redis.RedisError) as e:
            raise DeliveryError(self.name.value, str(e)) from e


class ExpoPushChannel:
    """Device push through the Expo push API."""
    name = OutboxChannel.PUSH

    def __init__(self, client: Optional[httpx.AsyncClient] = None, url: Optional[str] = None):
        self._client = client
        self.url = url or settings.EXPO_PUSH_URL

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=settings.PUSH_TIMEOUT_SECONDS)
        return self._client

    async def send(self, entry: OutboxEntryDoc):
        log = logger.bind(outbox_id=entry.id, recipient=entry.recipient)
        try:
            response = await self._get_client().post(
                self.url,
                json=entry.payload,
                headers={"Accept": "application/json", "Content-Type": "application/json"},
            )
        except httpx.HTTPError as e:
            raise DeliveryError(self.name.value, f"transport error: {e}") from e
        if response.status_code >= 400:
            raise DeliveryError(self.name.value, f"HTTP {response.status_code}")
        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            log.warning(f"Unexpected Expo response body ({type(body).__name__}); treating as accepted.")
            body = {}
        ticket = body.get("data") or {}
        if isinstance(ticket, list):
            ticket = ticket[0] if ticket else {}
        if not isinstance(ticket, dict):
            ticket = {}
        if ticket.get("status") == "error":
            raise DeliveryError(self.name.value, ticket.get("message") or "Expo rejected the message")
        log.debug("Push notification accepted by Expo.")

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None
