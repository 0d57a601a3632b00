# haatbazaar/modules/haat_events/exceptions.py
from haatbazaar.core.exceptions import NotFoundError, StateConflictError, ValidationFailedError


class HaatEventError(Exception):
    """Base exception for haat event errors."""
    pass


class HaatEventNotFoundError(HaatEventError, NotFoundError):
    def __init__(self, event_id: str):
        super().__init__("Haat event not found")
        self.event_id = event_id


class AlreadyRegisteredError(HaatEventError, StateConflictError):
    def __init__(self, event_id: str, farmer_id: str):
        super().__init__("Already registered for this event")
        self.event_id = event_id
        self.farmer_id = farmer_id


class RegistrationClosedError(HaatEventError, StateConflictError):
    def __init__(self, event_id: str, reason: str = "Registration deadline has passed"):
        super().__init__(reason)
        self.event_id = event_id


class FarmerLocationMissingError(HaatEventError, ValidationFailedError):
    def __init__(self, farmer_id: str):
        super().__init__("Farmer location is not set; update your location before registering")
        self.farmer_id = farmer_id


class OutsideEventRadiusError(HaatEventError, ValidationFailedError):
    def __init__(self, distance_km: float, radius_km: float):
        super().__init__(f"You are {distance_km:.2f} km away; registration is limited to {radius_km:g} km of the event")
        self.distance_km = distance_km
        self.radius_km = radius_km


class InvalidEventTransitionError(HaatEventError, StateConflictError):
    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot change event status from '{current}' to '{target}'")
        self.current = current
        self.target = target
