# haatbazaar/db/schemas/order_schemas.py
from datetime import datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator
from .common_schemas import MongoDocument, PyObjectId, RequestModel, GeoPoint, utcnow


# --- Enums ---
class OrderStatus(str, Enum):
    PLACED = "placed"
    PACKING = "packing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class DeliveryOption(str, Enum):
    SELF_PICKUP = "self_pickup"
    REQUEST_DELIVERY = "request_delivery"


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    IN_TRANSIT = "in_transit"
    COMPLETED = "completed"


class PaymentMethod(str, Enum):
    CASH_ON_DELIVERY = "cash_on_delivery"
    ESEWA = "esewa"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


# --- Subdocument Models ---
class OrderItem(BaseModel):
    """A line item with the unit price captured when the order was placed."""
    product: PyObjectId
    title: Optional[str] = None
    quantity: float = Field(..., gt=0)
    unit_price: float = Field(..., ge=0)


class DeliveryLocation(GeoPoint):
    address: Optional[str] = Field(None, max_length=300)


class PaymentDetails(BaseModel):
    transaction_uuid: Optional[str] = None
    amount: Optional[float] = None
    provider_status: Optional[str] = None
    ref_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None


class StatusHistoryEntry(BaseModel):
    status: OrderStatus
    actor_id: str = "system"
    timestamp: datetime = Field(default_factory=utcnow)


# --- Main Document Model ---
class OrderDoc(MongoDocument):
    buyer: PyObjectId
    farmer: PyObjectId
    items: List[OrderItem]
    total_amount: float = Field(..., ge=0)
    status: OrderStatus = OrderStatus.PLACED
    delivery_option: DeliveryOption = DeliveryOption.SELF_PICKUP
    delivery_location: Optional[DeliveryLocation] = None
    delivery_status: DeliveryStatus = DeliveryStatus.PENDING
    delivery_responded_at: Optional[datetime] = None
    payment_method: PaymentMethod = PaymentMethod.CASH_ON_DELIVERY
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_details: PaymentDetails = Field(default_factory=PaymentDetails)
    inventory_deducted: bool = False
    inventory_attempt_id: Optional[str] = None
    status_history: List[StatusHistoryEntry] = Field(default_factory=list)


# --- Request Models ---
class OrderItemIn(RequestModel):
    product: PyObjectId
    quantity: float = Field(..., gt=0)


class OrderCreate(RequestModel):
    farmer_id: PyObjectId
    products: List[OrderItemIn] = Field(..., min_length=1)
    delivery_option: DeliveryOption = DeliveryOption.SELF_PICKUP
    payment_method: PaymentMethod = PaymentMethod.CASH_ON_DELIVERY
    delivery_location: Optional[DeliveryLocation] = None

    @model_validator(mode="after")
    def delivery_needs_location(self) -> "OrderCreate":
        if self.delivery_option == DeliveryOption.REQUEST_DELIVERY and self.delivery_location is None:
            raise ValueError("Delivery location (latitude/longitude) is required for delivery requests.")
        return self


class OrderStatusUpdate(RequestModel):
    # "accepted" is accepted on input and normalized to packing
    status: str

    @field_validator("status")
    @classmethod
    def known_status(cls, v: str) -> str:
        v = v.strip().lower()
        if v == "accepted":
            return OrderStatus.PACKING.value
        allowed = {OrderStatus.PACKING, OrderStatus.REJECTED, OrderStatus.SHIPPED,
                   OrderStatus.DELIVERED, OrderStatus.CANCELLED}
        if v not in {s.value for s in allowed}:
            raise ValueError("Invalid status")
        return v


class EsewaVerifyRequest(RequestModel):
    # base64 "data" query value eSewa appends to success_url
    data: Optional[str] = None
    transaction_uuid: Optional[str] = None


# --- Inventory Ledger ---
class LedgerKind(str, Enum):
    DEDUCTED = "deducted"
    RELEASED = "released"


class InventoryLedgerEntryDoc(MongoDocument):
    """Append-only record of stock taken for, or returned from, an order."""
    order_id: PyObjectId
    product_id: PyObjectId
    attempt_id: str
    quantity: float = Field(..., gt=0)
    kind: LedgerKind
