# haatbazaar/modules/locations/service.py
from typing import Any, Dict, List
from fastapi import Depends

from haatbazaar.core.logging_setup import logger
from haatbazaar.db.schemas.common_schemas import utcnow
from haatbazaar.db.schemas.location_schemas import LocationDoc, LocationUpdate
from haatbazaar.db.schemas.user_schemas import UserDoc, UserRole
from haatbazaar.modules.locations.exceptions import ActiveLocationNotFoundError
from haatbazaar.modules.locations.repository import LocationRepository
from haatbazaar.modules.users.repository import UserRepository
from haatbazaar.utils.geo import haversine_km


class LocationService:

    def __init__(self, location_repo: LocationRepository = Depends(), user_repo: UserRepository = Depends()):
        self.location_repo = location_repo
        self.user_repo = user_repo

    async def update_location(self, user: UserDoc, data: LocationUpdate) -> LocationDoc:
        """Records a new active location and mirrors it onto the user profile."""
        await self.location_repo.deactivate_for_user(user.id)
        location = await self.location_repo.insert({
            "user": user.id,
            "latitude": data.latitude,
            "longitude": data.longitude,
            "accuracy": data.accuracy,
            "timestamp": utcnow(),
            "is_active": True,
        })
        await self.user_repo.update_by_id(
            user.id, {"$set": {"location": {"latitude": data.latitude, "longitude": data.longitude}}},
        )
        logger.bind(user_id=user.id).debug("Location updated.")
        return location

    async def get_active_location(self, user_id: str) -> LocationDoc:
        location = await self.location_repo.get_active(user_id)
        if not location:
            raise ActiveLocationNotFoundError(user_id)
        return location

    async def history(self, user: UserDoc, limit: int = 10) -> List[LocationDoc]:
        return await self.location_repo.history(user.id, limit=max(limit, 1))

    async def farmers_nearby(self, latitude: float, longitude: float, radius_km: float = 5.0) -> List[Dict[str, Any]]:
        """Active farmer locations within radius_km, nearest first."""
        locations = await self.location_repo.list_active()
        users = {u.id: u for u in await self.user_repo.find_many({"role": UserRole.FARMER.value})}
        nearby = []
        for location in locations:
            farmer = users.get(location.user)
            if farmer is None:
                continue
            distance = haversine_km(latitude, longitude, location.latitude, location.longitude)
            if distance <= radius_km:
                nearby.append({
                    **location.to_api(),
                    "user": {"_id": farmer.id, "name": farmer.name, "role": farmer.role.value,
                             "phone": farmer.phone, "profile_pic": farmer.profile_pic},
                    "distance": round(distance, 2),
                })
        nearby.sort(key=lambda row: row["distance"])
        return nearby
