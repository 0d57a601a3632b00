# haatbazaar/api/v1/endpoints/haat_events.py
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Path, Query, status

from haatbazaar.core.security import require_role
from haatbazaar.db.schemas.haat_event_schemas import HaatEventCreate, HaatEventStatus, HaatEventStatusUpdate
from haatbazaar.db.schemas.user_schemas import UserDoc
from haatbazaar.modules.haat_events.service import HaatEventService

router = APIRouter()

HaatEventServiceDep = Annotated[HaatEventService, Depends()]
AdminUser = Annotated[UserDoc, Depends(require_role(["admin"]))]
FarmerUser = Annotated[UserDoc, Depends(require_role(["farmer"]))]
EventId = Annotated[str, Path(description="Haat event ID")]


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create a haat event")
async def create_event(data: HaatEventCreate, admin: AdminUser, service: HaatEventServiceDep):
    event = await service.create_event(admin, data)
    return {"message": "Haat event created", "event": event.to_api()}


@router.get("", summary="List haat events")
async def list_events(
    service: HaatEventServiceDep,
    status: Annotated[Optional[HaatEventStatus], Query()] = None,
):
    events = await service.list_events(status)
    return {"events": [e.to_api() for e in events]}


@router.get("/{event_id}", summary="Get a haat event")
async def get_event(event_id: EventId, service: HaatEventServiceDep):
    event = await service.get_event(event_id)
    return {"event": event.to_api()}


@router.post("/{event_id}/register", summary="Farmer registers for an event")
async def register_for_event(event_id: EventId, farmer: FarmerUser, service: HaatEventServiceDep):
    event = await service.register_farmer(farmer, event_id)
    return {"message": "Registered for haat event", "event": event.to_api()}


@router.put("/{event_id}/status", summary="Change event status")
async def update_event_status(
    event_id: EventId, data: HaatEventStatusUpdate, admin: AdminUser, service: HaatEventServiceDep,
):
    event = await service.update_status(admin, event_id, data.status)
    return {"message": "Haat event status updated", "event": event.to_api()}
