# haatbazaar/db/schemas/group_sale_schemas.py
from datetime import datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field
from .common_schemas import MongoDocument, PyObjectId, RequestModel, utcnow


class GroupSaleStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Participant(BaseModel):
    buyer: PyObjectId
    quantity: float = Field(..., gt=0)
    joined_at: datetime = Field(default_factory=utcnow)


class GroupSaleDoc(MongoDocument):
    product: PyObjectId
    farmer: PyObjectId
    haat_event: Optional[PyObjectId] = None
    required_quantity: float = Field(..., gt=0)
    price_per_unit: float = Field(..., ge=0)
    deadline: datetime
    participants: List[Participant] = Field(default_factory=list)
    total_quantity_sold: float = 0
    status: GroupSaleStatus = GroupSaleStatus.OPEN

    @property
    def committed_quantity(self) -> float:
        return sum(p.quantity for p in self.participants)

    @property
    def remaining_quantity(self) -> float:
        return max(self.required_quantity - self.committed_quantity, 0)

    def has_participant(self, buyer_id: str) -> bool:
        return any(p.buyer == buyer_id for p in self.participants)


class GroupSaleCreate(RequestModel):
    product_id: PyObjectId
    required_quantity: float = Field(..., gt=0)
    price_per_unit: float = Field(..., ge=0)
    deadline: datetime
    haat_event_id: Optional[PyObjectId] = None


class GroupSaleJoin(RequestModel):
    quantity: float = Field(..., gt=0)


class GroupSaleStatusUpdate(RequestModel):
    status: GroupSaleStatus
