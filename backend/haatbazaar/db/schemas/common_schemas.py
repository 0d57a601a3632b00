# haatbazaar/db/schemas/common_schemas.py
from datetime import datetime, timezone
from typing import Annotated, Any, Dict
from bson import ObjectId
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treats naive datetimes read back from Mongo as UTC."""
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _validate_object_id(value: Any) -> str:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, str) and ObjectId.is_valid(value):
        return value
    raise ValueError("Invalid ObjectId")


# ObjectId stored in Mongo, exposed as its 24-char hex string
PyObjectId = Annotated[str, BeforeValidator(_validate_object_id)]


class MongoDocument(BaseModel):
    """Base for documents read back from a collection."""
    id: PyObjectId = Field(..., alias="_id")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(populate_by_name=True)

    def to_api(self, **kwargs) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, **kwargs)


class RequestModel(BaseModel):
    """Request bodies accept camelCase (mobile client) or snake_case keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GeoPoint(RequestModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class MsgDetail(BaseModel):
    message: str = Field(..., description="A detail message for responses.")
