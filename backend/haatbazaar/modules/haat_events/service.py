# haatbazaar/modules/haat_events/service.py
from typing import Dict, FrozenSet, List, Optional
from fastapi import Depends

from haatbazaar.core.logging_setup import logger
from haatbazaar.db.schemas.common_schemas import as_utc, utcnow
from haatbazaar.db.schemas.haat_event_schemas import HaatEventCreate, HaatEventDoc, HaatEventStatus
from haatbazaar.db.schemas.notification_schemas import NotificationType
from haatbazaar.db.schemas.user_schemas import UserDoc
from haatbazaar.modules.haat_events.exceptions import (
    AlreadyRegisteredError, FarmerLocationMissingError, HaatEventNotFoundError,
    InvalidEventTransitionError, OutsideEventRadiusError, RegistrationClosedError,
)
from haatbazaar.modules.haat_events.repository import HaatEventRepository
from haatbazaar.modules.notifications.service import NotificationService
from haatbazaar.modules.users.repository import UserRepository
from haatbazaar.services.audit_service import audit_service
from haatbazaar.utils.geo import haversine_km

EVENT_TRANSITIONS: Dict[HaatEventStatus, FrozenSet[HaatEventStatus]] = {
    HaatEventStatus.UPCOMING: frozenset({HaatEventStatus.ACTIVE, HaatEventStatus.CANCELLED}),
    HaatEventStatus.ACTIVE: frozenset({HaatEventStatus.COMPLETED, HaatEventStatus.CANCELLED}),
    HaatEventStatus.COMPLETED: frozenset(),
    HaatEventStatus.CANCELLED: frozenset(),
}


class HaatEventService:

    def __init__(
        self,
        event_repo: HaatEventRepository = Depends(),
        user_repo: UserRepository = Depends(),
        notifier: NotificationService = Depends(),
    ):
        self.event_repo = event_repo
        self.user_repo = user_repo
        self.notifier = notifier

    async def get_event(self, event_id: str) -> HaatEventDoc:
        event = await self.event_repo.get_by_id(event_id)
        if not event:
            raise HaatEventNotFoundError(event_id)
        return event

    async def list_events(self, status: Optional[HaatEventStatus] = None) -> List[HaatEventDoc]:
        return await self.event_repo.list_events(status)

    async def create_event(self, admin: UserDoc, data: HaatEventCreate) -> HaatEventDoc:
        log = logger.bind(user_id=admin.id, event_name=data.name)
        event = await self.event_repo.insert({
            "name": data.name.strip(),
            "description": data.description,
            "location": data.location.model_dump(),
            "event_date": data.event_date,
            "registration_deadline": data.registration_deadline,
            "created_by": admin.id,
            "status": HaatEventStatus.UPCOMING.value,
            "farmer_registrations": [],
        })
        log.success(f"Haat event created: {event.id}")

        farmers = await self.user_repo.list_approved_farmers()
        sent = await self.notifier.notify_many(
            [f.id for f in farmers],
            NotificationType.NEW_EVENT,
            "New Haat Event",
            f'A new haat event "{event.name}" is scheduled for {as_utc(event.event_date):%Y-%m-%d}. Register now!',
            sender_id=admin.id,
            related={"event_id": event.id},
        )
        log.info(f"New event announced to {sent} farmer(s).")
        await audit_service.log_event(actor_id=admin.id, action="haat_event_create", entity_type="haat_event", entity_id=event.id)
        return event

    async def register_farmer(self, farmer: UserDoc, event_id: str) -> HaatEventDoc:
        """Registers a farmer who is within the event radius before the deadline."""
        log = logger.bind(event_id=event_id, farmer_id=farmer.id)
        event = await self.get_event(event_id)
        if event.status != HaatEventStatus.UPCOMING:
            raise RegistrationClosedError(event_id, f"Registration is closed for {event.status.value} events")
        if event.registration_deadline and utcnow() > as_utc(event.registration_deadline):
            raise RegistrationClosedError(event_id)
        if event.is_registered(farmer.id):
            raise AlreadyRegisteredError(event_id, farmer.id)
        if farmer.location is None:
            raise FarmerLocationMissingError(farmer.id)

        distance = haversine_km(
            farmer.location.latitude, farmer.location.longitude,
            event.location.latitude, event.location.longitude,
        )
        if distance > event.location.radius_km:
            log.info(f"Registration refused: {distance:.2f} km from event.")
            raise OutsideEventRadiusError(distance, event.location.radius_km)

        updated = await self.event_repo.add_registration(event_id, farmer.id)
        if not updated:
            raise AlreadyRegisteredError(event_id, farmer.id)
        log.success("Farmer registered for haat event.")

        await self.notifier.notify(
            event.created_by,
            NotificationType.FARMER_REQUEST,
            "Farmer Registration",
            f'{farmer.name} registered for "{event.name}".',
            sender_id=farmer.id,
            related={"event_id": event.id, "farmer_id": farmer.id},
        )
        return updated

    async def update_status(self, admin: UserDoc, event_id: str, status: HaatEventStatus) -> HaatEventDoc:
        event = await self.get_event(event_id)
        if status not in EVENT_TRANSITIONS[event.status]:
            raise InvalidEventTransitionError(event.status.value, status.value)
        updated = await self.event_repo.set_status(event_id, status, expected=event.status)
        if not updated:
            # Status moved underneath us; report against the fresh state
            current = await self.get_event(event_id)
            raise InvalidEventTransitionError(current.status.value, status.value)
        logger.bind(event_id=event_id, user_id=admin.id).success(f"Haat event {event.status.value} -> {status.value}")

        farmer_ids = [r.farmer for r in updated.farmer_registrations]
        if status == HaatEventStatus.ACTIVE:
            await self.notifier.notify_many(
                farmer_ids, NotificationType.EVENT_STARTED, "Haat Event Started",
                f'"{updated.name}" has started.', sender_id=admin.id, related={"event_id": updated.id},
            )
        elif status == HaatEventStatus.COMPLETED:
            await self.notifier.notify_many(
                farmer_ids, NotificationType.EVENT_ENDED, "Haat Event Ended",
                f'"{updated.name}" has ended. Thank you for participating!', sender_id=admin.id,
                related={"event_id": updated.id},
            )
        await audit_service.log_event(
            actor_id=admin.id, action="haat_event_status", entity_type="haat_event", entity_id=event_id,
            details={"from": event.status.value, "to": status.value},
        )
        return updated
