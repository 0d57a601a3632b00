# haatbazaar/db/schemas/haat_event_schemas.py
from datetime import datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field, model_validator
from .common_schemas import MongoDocument, PyObjectId, RequestModel, GeoPoint, utcnow


class HaatEventStatus(str, Enum):
    UPCOMING = "upcoming"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class EventLocation(GeoPoint):
    address: Optional[str] = Field(None, max_length=300)
    radius_km: float = Field(5.0, gt=0, le=500)


class FarmerRegistration(BaseModel):
    farmer: PyObjectId
    registered_at: datetime = Field(default_factory=utcnow)


class HaatEventDoc(MongoDocument):
    name: str
    description: Optional[str] = None
    location: EventLocation
    event_date: datetime
    registration_deadline: Optional[datetime] = None
    created_by: PyObjectId
    status: HaatEventStatus = HaatEventStatus.UPCOMING
    farmer_registrations: List[FarmerRegistration] = Field(default_factory=list)

    def is_registered(self, farmer_id: str) -> bool:
        return any(r.farmer == farmer_id for r in self.farmer_registrations)


class HaatEventCreate(RequestModel):
    name: str = Field(..., min_length=1, max_length=150)
    description: Optional[str] = Field(None, max_length=1000)
    location: EventLocation
    event_date: datetime
    registration_deadline: Optional[datetime] = None

    @model_validator(mode="after")
    def deadline_before_event(self) -> "HaatEventCreate":
        if self.registration_deadline and self.registration_deadline > self.event_date:
            raise ValueError("Registration deadline must not be after the event date.")
        return self


class HaatEventStatusUpdate(RequestModel):
    status: HaatEventStatus
