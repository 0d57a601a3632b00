# haatbazaar/db/schemas/__init__.py
# Make schemas easily importable
from .common_schemas import PyObjectId, MsgDetail, MongoDocument, GeoPoint, utcnow
from .user_schemas import UserRole, UserDoc, UserRegister, UserLogin
from .product_schemas import ProductStatus, ProductDoc, ProductCreate, ProductUpdate
from .order_schemas import (
    OrderStatus, DeliveryOption, DeliveryStatus, PaymentMethod, PaymentStatus,
    OrderItem, OrderDoc, OrderCreate, LedgerKind, InventoryLedgerEntryDoc,
)
from .negotiation_schemas import NegotiationStatus, NegotiationAction, Offer, NegotiationDoc
from .group_sale_schemas import GroupSaleStatus, Participant, GroupSaleDoc
from .haat_event_schemas import HaatEventStatus, HaatEventDoc
from .notification_schemas import NotificationType, NotificationDoc, OutboxEntryDoc
from .rating_schemas import RatingDoc
from .expense_schemas import ExpenseCategory, ExpenseProjectDoc, ExpenseDoc
from .location_schemas import LocationDoc
