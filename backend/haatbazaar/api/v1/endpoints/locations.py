# haatbazaar/api/v1/endpoints/locations.py
from typing import Annotated
from fastapi import APIRouter, Depends, Path, Query

from haatbazaar.core.security import CurrentUser
from haatbazaar.db.schemas.location_schemas import LocationUpdate
from haatbazaar.modules.locations.service import LocationService

router = APIRouter()

LocationServiceDep = Annotated[LocationService, Depends()]


@router.post("/update", summary="Record my current location")
async def update_location(data: LocationUpdate, current_user: CurrentUser, service: LocationServiceDep):
    location = await service.update_location(current_user, data)
    return {"message": "Location updated successfully", "location": location.to_api()}


@router.get("/history", summary="My location history")
async def location_history(
    current_user: CurrentUser, service: LocationServiceDep, limit: Annotated[int, Query(ge=1, le=100)] = 10,
):
    locations = await service.history(current_user, limit)
    return {"locations": [loc.to_api() for loc in locations]}


@router.get("/user/{user_id}", summary="Active location of a user")
async def active_location(user_id: Annotated[str, Path(description="User ID")], service: LocationServiceDep):
    location = await service.get_active_location(user_id)
    return {"location": location.to_api()}


@router.get("/nearby/farmers", summary="Farmers near a point")
async def nearby_farmers(
    current_user: CurrentUser,
    service: LocationServiceDep,
    latitude: Annotated[float, Query(ge=-90, le=90)],
    longitude: Annotated[float, Query(ge=-180, le=180)],
    radius_km: Annotated[float, Query(alias="radiusKm", gt=0, le=500)] = 5.0,
):
    farmers = await service.farmers_nearby(latitude, longitude, radius_km)
    return {"count": len(farmers), "farmers": farmers}
