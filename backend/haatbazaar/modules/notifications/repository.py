# haatbazaar/modules/notifications/repository.py
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from pymongo import ReturnDocument

from haatbazaar.core.exceptions import RepositoryError
from haatbazaar.core.logging_setup import logger
from haatbazaar.db.repository import MongoRepository, to_object_id
from haatbazaar.db.schemas.common_schemas import utcnow
from haatbazaar.db.schemas.notification_schemas import NotificationDoc, OutboxEntryDoc, OutboxStatus


class NotificationRepository(MongoRepository[NotificationDoc]):
    """In-app notifications shown in the user's inbox."""
    collection_name = "notifications"
    document_model = NotificationDoc

    async def list_for_user(self, user_id: str, is_read: Optional[bool] = None, limit: int = 50) -> List[NotificationDoc]:
        query: Dict[str, Any] = {"recipient": user_id}
        if is_read is not None:
            query["is_read"] = is_read
        return await self.find_many(query, sort=[("created_at", -1)], limit=limit)

    async def count_unread(self, user_id: str) -> int:
        return await self.count({"recipient": user_id, "is_read": False})

    async def mark_read(self, notification_id: str, user_id: str) -> Optional[NotificationDoc]:
        return await self.update_by_id(
            notification_id,
            {"$set": {"is_read": True, "read_at": utcnow()}},
            extra_filter={"recipient": user_id},
        )

    async def mark_all_read(self, user_id: str) -> int:
        return await self.update_many(
            {"recipient": user_id, "is_read": False},
            {"$set": {"is_read": True, "read_at": utcnow()}},
        )

    async def delete_for_user(self, notification_id: str, user_id: str) -> bool:
        oid = to_object_id(notification_id)
        if oid is None:
            return False
        return await self.delete_many({"_id": oid, "recipient": user_id}) == 1


class OutboxRepository(MongoRepository[OutboxEntryDoc]):
    """Persisted delivery queue drained by the outbox dispatcher."""
    collection_name = "notification_outbox"
    document_model = OutboxEntryDoc

    async def enqueue(self, entries: List[Dict[str, Any]]) -> List[OutboxEntryDoc]:
        now = utcnow()
        created = []
        for entry in entries:
            entry.setdefault("status", OutboxStatus.PENDING.value)
            entry.setdefault("attempts", 0)
            entry.setdefault("next_attempt_at", now)
            created.append(await self.insert(entry))
        return created

    async def claim_next(self, lease_seconds: float, now: Optional[datetime] = None) -> Optional[OutboxEntryDoc]:
        """Atomically leases one due entry: pending and due, or in flight with an expired lease."""
        now = now or utcnow()
        log = logger.bind(collection=self.collection_name, action="claim")
        try:
            doc = await self._collection.find_one_and_update(
                {"$or": [
                    {"status": OutboxStatus.PENDING.value, "next_attempt_at": {"$lte": now}},
                    {"status": OutboxStatus.IN_FLIGHT.value, "lease_until": {"$lte": now}},
                ]},
                {
                    "$set": {
                        "status": OutboxStatus.IN_FLIGHT.value,
                        "lease_until": now + timedelta(seconds=lease_seconds),
                        "updated_at": now,
                    },
                    "$inc": {"attempts": 1},
                },
                sort=[("next_attempt_at", 1)],
                return_document=ReturnDocument.AFTER,
            )
            return await self._map_doc(doc)
        except Exception as e:
            log.exception("Database error claiming outbox entry.")
            raise RepositoryError(f"Error claiming outbox entry: {e}") from e

    async def mark_delivered(self, entry_id: str) -> Optional[OutboxEntryDoc]:
        return await self.update_by_id(entry_id, {
            "$set": {"status": OutboxStatus.DELIVERED.value, "delivered_at": utcnow(), "lease_until": None, "last_error": None},
        })

    async def schedule_retry(self, entry_id: str, next_attempt_at: datetime, error: str) -> Optional[OutboxEntryDoc]:
        return await self.update_by_id(entry_id, {
            "$set": {
                "status": OutboxStatus.PENDING.value,
                "next_attempt_at": next_attempt_at,
                "lease_until": None,
                "last_error": error[:500],
            },
        })

    async def mark_failed(self, entry_id: str, error: str) -> Optional[OutboxEntryDoc]:
        return await self.update_by_id(entry_id, {
            "$set": {"status": OutboxStatus.FAILED.value, "lease_until": None, "last_error": error[:500]},
        })
