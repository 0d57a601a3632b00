# haatbazaar/db/schemas/notification_schemas.py
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field, field_validator
from .common_schemas import MongoDocument, PyObjectId, RequestModel, utcnow


class NotificationType(str, Enum):
    FARMER_REQUEST = "farmer_request"
    NEW_EVENT = "new_event"
    EVENT_STARTED = "event_started"
    EVENT_ENDED = "event_ended"
    NEGOTIATION = "negotiation"
    NEGOTIATION_ACCEPTED = "negotiation_accepted"
    ORDER_PLACED = "order_placed"
    DELIVERY_REQUEST = "delivery_request"
    DELIVERY_ACCEPTED = "delivery_accepted"
    DELIVERY_REJECTED = "delivery_rejected"
    ORDER_STATUS = "order_status"
    EVENT_UPCOMING = "event_upcoming"
    EVENT_STARTING_SOON = "event_starting_soon"
    GROUP_SALE_INVITE = "group_sale_invite"
    PAYMENT_RECEIVED = "payment_received"
    PRODUCT_STATUS = "product_status"


# Types that are also pushed to the recipient's device
PUSH_NOTIFICATION_TYPES = frozenset({
    NotificationType.DELIVERY_REQUEST,
    NotificationType.ORDER_PLACED,
    NotificationType.NEW_EVENT,
})


class RelatedData(BaseModel):
    event_id: Optional[str] = None
    order_id: Optional[str] = None
    negotiation_id: Optional[str] = None
    farmer_id: Optional[str] = None
    product_id: Optional[str] = None
    group_sale_id: Optional[str] = None


class NotificationDoc(MongoDocument):
    recipient: PyObjectId
    sender: Optional[PyObjectId] = None
    type: NotificationType
    title: str
    message: str
    related_data: RelatedData = Field(default_factory=RelatedData)
    is_read: bool = False
    read_at: Optional[datetime] = None


# --- Outbox ---
class OutboxChannel(str, Enum):
    REALTIME = "realtime"
    PUSH = "push"


class OutboxStatus(str, Enum):
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    DELIVERED = "delivered"
    FAILED = "failed"


class OutboxEntryDoc(MongoDocument):
    notification_id: PyObjectId
    recipient: PyObjectId
    channel: OutboxChannel
    payload: Dict[str, Any] = Field(default_factory=dict)
    status: OutboxStatus = OutboxStatus.PENDING
    attempts: int = 0
    next_attempt_at: datetime = Field(default_factory=utcnow)
    lease_until: Optional[datetime] = None
    last_error: Optional[str] = None
    delivered_at: Optional[datetime] = None


# --- Request Models ---
EXPO_TOKEN_PREFIX = "ExponentPushToken["


def is_expo_push_token(token: Optional[str]) -> bool:
    return bool(token) and token.startswith(EXPO_TOKEN_PREFIX) and token.endswith("]")


class PushTokenRegister(RequestModel):
    token: str

    @field_validator("token")
    @classmethod
    def expo_format(cls, v: str) -> str:
        v = v.strip()
        if not is_expo_push_token(v):
            raise ValueError("Invalid Expo push token")
        return v
