# haatbazaar/modules/haat_events/repository.py
from typing import Any, Dict, List, Optional

from haatbazaar.db.repository import MongoRepository, to_object_id
from haatbazaar.db.schemas.common_schemas import utcnow
from haatbazaar.db.schemas.haat_event_schemas import HaatEventDoc, HaatEventStatus


class HaatEventRepository(MongoRepository[HaatEventDoc]):
    collection_name = "haat_events"
    document_model = HaatEventDoc

    async def list_events(self, status: Optional[HaatEventStatus] = None) -> List[HaatEventDoc]:
        query: Dict[str, Any] = {}
        if status: query["status"] = status.value
        return await self.find_many(query, sort=[("event_date", 1)])

    async def get_many(self, event_ids: List[str]) -> Dict[str, HaatEventDoc]:
        oids = [oid for oid in (to_object_id(eid) for eid in event_ids) if oid is not None]
        if not oids:
            return {}
        events = await self.find_many({"_id": {"$in": oids}})
        return {e.id: e for e in events}

    async def add_registration(self, event_id: str, farmer_id: str) -> Optional[HaatEventDoc]:
        """Appends the farmer unless already registered. Returns None if the guard failed."""
        return await self.update_by_id(
            event_id,
            {"$push": {"farmer_registrations": {"farmer": farmer_id, "registered_at": utcnow()}}},
            extra_filter={"farmer_registrations.farmer": {"$ne": farmer_id}},
        )

    async def set_status(self, event_id: str, status: HaatEventStatus, expected: HaatEventStatus) -> Optional[HaatEventDoc]:
        return await self.update_by_id(
            event_id,
            {"$set": {"status": status.value}},
            extra_filter={"status": expected.value},
        )
