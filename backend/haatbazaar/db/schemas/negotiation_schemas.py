# haatbazaar/db/schemas/negotiation_schemas.py
from datetime import datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field
from .common_schemas import MongoDocument, PyObjectId, RequestModel, utcnow


class NegotiationStatus(str, Enum):
    ACTIVE = "active"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"


class NegotiationAction(str, Enum):
    COUNTER = "counter"
    ACCEPT = "accept"
    REJECT = "reject"


class Offer(BaseModel):
    offered_by: PyObjectId
    price: float = Field(..., gt=0)
    quantity: float = Field(..., gt=0)
    message: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)


class NegotiationDoc(MongoDocument):
    """Offer ledger between one buyer and the farmer of one product."""
    product: PyObjectId
    buyer: PyObjectId
    farmer: PyObjectId
    offers: List[Offer] = Field(default_factory=list)
    status: NegotiationStatus = NegotiationStatus.ACTIVE
    final_price: Optional[float] = None
    final_quantity: Optional[float] = None
    accepted_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @property
    def latest_offer(self) -> Optional[Offer]:
        return self.offers[-1] if self.offers else None

    def involves(self, user_id: str) -> bool:
        return user_id in (self.buyer, self.farmer)


class NegotiationCreate(RequestModel):
    product_id: PyObjectId
    price: float = Field(..., gt=0)
    quantity: float = Field(..., gt=0)
    message: Optional[str] = Field(None, max_length=500)


class NegotiationRespond(RequestModel):
    action: NegotiationAction
    price: Optional[float] = Field(None, gt=0)
    quantity: Optional[float] = Field(None, gt=0)
    message: Optional[str] = Field(None, max_length=500)
