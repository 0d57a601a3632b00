# haatbazaar/db/schemas/location_schemas.py
from datetime import datetime
from typing import Optional
from pydantic import Field
from .common_schemas import MongoDocument, PyObjectId, GeoPoint, utcnow


class LocationDoc(MongoDocument):
    user: PyObjectId
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    timestamp: datetime = Field(default_factory=utcnow)
    is_active: bool = True


class LocationUpdate(GeoPoint):
    accuracy: Optional[float] = Field(None, ge=0)
