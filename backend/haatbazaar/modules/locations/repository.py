# haatbazaar/modules/locations/repository.py
from typing import List, Optional

from haatbazaar.db.repository import MongoRepository
from haatbazaar.db.schemas.location_schemas import LocationDoc


class LocationRepository(MongoRepository[LocationDoc]):
    collection_name = "locations"
    document_model = LocationDoc

    async def deactivate_for_user(self, user_id: str) -> int:
        return await self.update_many({"user": user_id, "is_active": True}, {"$set": {"is_active": False}})

    async def get_active(self, user_id: str) -> Optional[LocationDoc]:
        return await self.find_one({"user": user_id, "is_active": True})

    async def history(self, user_id: str, limit: int = 10) -> List[LocationDoc]:
        return await self.find_many({"user": user_id}, sort=[("timestamp", -1)], limit=limit)

    async def list_active(self) -> List[LocationDoc]:
        return await self.find_many({"is_active": True})
