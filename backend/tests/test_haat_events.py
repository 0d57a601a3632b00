# tests/test_haat_events.py
from datetime import timedelta

import pytest
from pydantic import ValidationError

from haatbazaar.db.schemas.common_schemas import utcnow
from haatbazaar.db.schemas.haat_event_schemas import HaatEventCreate, HaatEventStatus
from haatbazaar.db.schemas.notification_schemas import NotificationType
from haatbazaar.db.schemas.user_schemas import UserRole
from haatbazaar.modules.haat_events.exceptions import (
    AlreadyRegisteredError, FarmerLocationMissingError, InvalidEventTransitionError,
    OutsideEventRadiusError, RegistrationClosedError,
)
from haatbazaar.modules.haat_events.service import EVENT_TRANSITIONS, HaatEventService

from tests.factories import hours_from_now, make_user

EVENT_SITE = {"latitude": 27.7172, "longitude": 85.3240}


@pytest.fixture
def event_service(event_repo, user_repo, notifier) -> HaatEventService:
    return HaatEventService(event_repo, user_repo, notifier)


async def _event(service, user_repo, radius_km=5, deadline_hours=24):
    admin = await make_user(user_repo, UserRole.ADMIN)
    event = await service.create_event(admin, HaatEventCreate(
        name="Asan Haat",
        location={**EVENT_SITE, "radius_km": radius_km},
        event_date=hours_from_now(72),
        registration_deadline=hours_from_now(deadline_hours) if deadline_hours is not None else None,
    ))
    return event, admin


def test_deadline_after_event_is_invalid():
    with pytest.raises(ValidationError):
        HaatEventCreate(name="x", location=EVENT_SITE, event_date=hours_from_now(1), registration_deadline=hours_from_now(2))


def test_terminal_states_have_no_exits():
    assert EVENT_TRANSITIONS[HaatEventStatus.COMPLETED] == frozenset()
    assert EVENT_TRANSITIONS[HaatEventStatus.CANCELLED] == frozenset()


async def test_creation_announces_to_approved_farmers(event_service, user_repo, db):
    approved = await make_user(user_repo, UserRole.FARMER)
    await make_user(user_repo, UserRole.FARMER, approved=False)
    await make_user(user_repo)

    event, _ = await _event(event_service, user_repo)
    announcements = [d for d in db.notifications.docs if d["type"] == NotificationType.NEW_EVENT.value]
    assert [d["recipient"] for d in announcements] == [approved.id]
    assert announcements[0]["related_data"]["event_id"] == event.id


async def test_registration_within_radius(event_service, user_repo, db):
    event, admin = await _event(event_service, user_repo, radius_km=5)
    nearby = await make_user(user_repo, UserRole.FARMER, location={"latitude": 27.70, "longitude": 85.33})

    updated = await event_service.register_farmer(nearby, event.id)
    assert updated.is_registered(nearby.id)
    assert db.notifications.docs[-1]["recipient"] == admin.id
    assert db.notifications.docs[-1]["type"] == NotificationType.FARMER_REQUEST.value

    with pytest.raises(AlreadyRegisteredError):
        await event_service.register_farmer(nearby, event.id)


async def test_registration_outside_radius_reports_distance(event_service, user_repo):
    event, _ = await _event(event_service, user_repo, radius_km=5)
    far = await make_user(user_repo, UserRole.FARMER, location={"latitude": 27.6710, "longitude": 85.4298})

    with pytest.raises(OutsideEventRadiusError) as exc:
        await event_service.register_farmer(far, event.id)
    assert exc.value.distance_km > 5
    assert "km" in str(exc.value)


async def test_registration_needs_location_and_open_window(event_service, user_repo, event_repo):
    event, admin = await _event(event_service, user_repo)
    homeless = await make_user(user_repo, UserRole.FARMER)
    with pytest.raises(FarmerLocationMissingError):
        await event_service.register_farmer(homeless, event.id)

    late = await make_user(user_repo, UserRole.FARMER, location=EVENT_SITE)
    await event_repo.update_by_id(event.id, {"$set": {"registration_deadline": utcnow() - timedelta(minutes=1)}})
    with pytest.raises(RegistrationClosedError):
        await event_service.register_farmer(late, event.id)

    active, _ = await _event(event_service, user_repo, deadline_hours=None)
    await event_service.update_status(admin, active.id, HaatEventStatus.ACTIVE)
    with pytest.raises(RegistrationClosedError):
        await event_service.register_farmer(late, active.id)


async def test_status_lifecycle_notifies_registered_farmers(event_service, user_repo, db):
    event, admin = await _event(event_service, user_repo)
    farmer = await make_user(user_repo, UserRole.FARMER, location=EVENT_SITE)
    await event_service.register_farmer(farmer, event.id)

    await event_service.update_status(admin, event.id, HaatEventStatus.ACTIVE)
    done = await event_service.update_status(admin, event.id, HaatEventStatus.COMPLETED)
    assert done.status == HaatEventStatus.COMPLETED

    farmer_types = [d["type"] for d in db.notifications.docs if d["recipient"] == farmer.id]
    assert NotificationType.EVENT_STARTED.value in farmer_types
    assert NotificationType.EVENT_ENDED.value in farmer_types

    with pytest.raises(InvalidEventTransitionError):
        await event_service.update_status(admin, event.id, HaatEventStatus.ACTIVE)


async def test_upcoming_cannot_jump_to_completed(event_service, user_repo):
    event, admin = await _event(event_service, user_repo)

    with pytest.raises(InvalidEventTransitionError):
        await event_service.update_status(admin, event.id, HaatEventStatus.COMPLETED)
    listed = await event_service.list_events(HaatEventStatus.UPCOMING)
    assert [e.id for e in listed] == [event.id]
