# haatbazaar/modules/users/repository.py
import re
from typing import Any, Dict, List, Optional

from haatbazaar.core.logging_setup import logger
from haatbazaar.db.repository import MongoRepository
from haatbazaar.db.schemas.user_schemas import UserDoc, UserRole


class UserRepository(MongoRepository[UserDoc]):
    """Repository for user accounts."""
    collection_name = "users"
    document_model = UserDoc

    async def get_by_phone(self, phone: str) -> Optional[UserDoc]:
        return await self.find_one({"phone": phone})

    async def list_users(
        self,
        role: Optional[UserRole] = None,
        approved: Optional[bool] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[UserDoc]:
        query: Dict[str, Any] = {}
        if role: query["role"] = role.value
        if approved is not None: query["approved"] = approved
        return await self.find_many(query, sort=[("created_at", -1)], skip=skip, limit=limit)

    async def list_approved_farmers(self) -> List[UserDoc]:
        return await self.find_many({"role": UserRole.FARMER.value, "approved": True})

    async def list_farmers_with_location(self) -> List[UserDoc]:
        return await self.find_many({
            "role": UserRole.FARMER.value,
            "approved": True,
            "location.latitude": {"$ne": None},
            "location.longitude": {"$ne": None},
        })

    async def search(self, text: str, roles: List[UserRole], exclude_id: str, limit: int) -> List[UserDoc]:
        pattern = re.escape(text.strip())
        query: Dict[str, Any] = {
            "role": {"$in": [r.value for r in roles]},
            "$or": [
                {"name": {"$regex": pattern, "$options": "i"}},
                {"phone": {"$regex": pattern, "$options": "i"}},
            ],
        }
        logger.bind(collection="users", query=text).debug("Searching users.")
        results = await self.find_many(query, sort=[("name", 1)], limit=limit + 1)
        return [u for u in results if u.id != exclude_id][:limit]
