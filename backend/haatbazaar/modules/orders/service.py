# haatbazaar/modules/orders/service.py
from typing import Any, Dict, List, Optional
from fastapi import Depends

from haatbazaar.core.config import settings
from haatbazaar.core.logging_setup import logger
from haatbazaar.db.schemas.common_schemas import utcnow
from haatbazaar.db.schemas.notification_schemas import NotificationType
from haatbazaar.db.schemas.order_schemas import (
    DeliveryOption, DeliveryStatus, OrderCreate, OrderDoc, OrderStatus, PaymentStatus,
)
from haatbazaar.db.schemas.product_schemas import ProductStatus
from haatbazaar.db.schemas.user_schemas import UserDoc, UserRole
from haatbazaar.modules.notifications.service import NotificationService
from haatbazaar.modules.orders.exceptions import (
    InsufficientQuantityError, InventoryAlreadyDeductedError, InvalidOrderTransitionError,
    OrderNotCancellableError, OrderNotFoundError, OrderPermissionError, OrderProductError,
)
from haatbazaar.modules.orders.inventory import InventoryManager
from haatbazaar.modules.orders.repository import OrderRepository
from haatbazaar.modules.orders.state import can_transition
from haatbazaar.modules.products.repository import ProductRepository
from haatbazaar.modules.users.exceptions import UserNotFoundError
from haatbazaar.modules.users.repository import UserRepository
from haatbazaar.services.audit_service import audit_service


def order_total(items: List[Dict[str, Any]], delivery_option: DeliveryOption, surcharge: Optional[float] = None) -> float:
    subtotal = sum(item["unit_price"] * item["quantity"] for item in items)
    if delivery_option == DeliveryOption.REQUEST_DELIVERY:
        subtotal += settings.DELIVERY_SURCHARGE if surcharge is None else surcharge
    return round(subtotal, 2)


class OrderService:
    """Order placement and the per-role status lifecycle."""

    def __init__(
        self,
        order_repo: OrderRepository = Depends(),
        product_repo: ProductRepository = Depends(),
        user_repo: UserRepository = Depends(),
        inventory: InventoryManager = Depends(),
        notifier: NotificationService = Depends(),
    ):
        self.order_repo = order_repo
        self.product_repo = product_repo
        self.user_repo = user_repo
        self.inventory = inventory
        self.notifier = notifier

    # --- Reads ---

    async def get_order(self, order_id: str, user: UserDoc) -> OrderDoc:
        order = await self.order_repo.get_by_id(order_id)
        if not order:
            raise OrderNotFoundError(order_id)
        if not user.is_admin and user.id not in (order.buyer, order.farmer):
            raise OrderPermissionError(order_id, "view")
        return order

    async def list_orders(self, user: UserDoc, role: Optional[str] = None) -> List[OrderDoc]:
        return await self.order_repo.list_for_user(user.id, role)

    # --- Placement ---

    async def create_order(self, buyer: UserDoc, data: OrderCreate) -> OrderDoc:
        log = logger.bind(buyer_id=buyer.id, farmer_id=data.farmer_id)
        log.info(f"Placing order for {len(data.products)} item(s).")
        farmer = await self.user_repo.get_by_id(data.farmer_id)
        if not farmer or farmer.role != UserRole.FARMER:
            raise UserNotFoundError(data.farmer_id)

        products = await self.product_repo.get_many([i.product for i in data.products])
        items: List[Dict[str, Any]] = []
        for line in data.products:
            product = products.get(line.product)
            if product is None:
                raise OrderProductError(line.product, f"Product {line.product} not found")
            if product.farmer != data.farmer_id:
                raise OrderProductError(line.product, f"Product {product.title} is not sold by this farmer")
            if product.status != ProductStatus.APPROVED:
                raise OrderProductError(line.product, f"Product {product.title} is not available")
            # Read-time check only; stock is taken when the order is delivered
            if product.quantity < line.quantity:
                raise InsufficientQuantityError(line.product, product.title)
            items.append({
                "product": product.id,
                "title": product.title,
                "quantity": line.quantity,
                "unit_price": product.price,
            })

        is_delivery = data.delivery_option == DeliveryOption.REQUEST_DELIVERY
        now = utcnow()
        order = await self.order_repo.insert({
            "buyer": buyer.id,
            "farmer": data.farmer_id,
            "items": items,
            "total_amount": order_total(items, data.delivery_option),
            "status": OrderStatus.PLACED.value,
            "delivery_option": data.delivery_option.value,
            "delivery_location": data.delivery_location.model_dump() if data.delivery_location else None,
            "delivery_status": (DeliveryStatus.PENDING if is_delivery else DeliveryStatus.COMPLETED).value,
            "payment_method": data.payment_method.value,
            "payment_status": PaymentStatus.PENDING.value,
            "payment_details": {},
            "inventory_deducted": False,
            "status_history": [{"status": OrderStatus.PLACED.value, "actor_id": buyer.id, "timestamp": now}],
        })
        log.success(f"Order {order.id} placed, total {order.total_amount:.2f}.")

        related = {"order_id": order.id}
        if is_delivery:
            await self.notifier.notify(
                order.farmer, NotificationType.DELIVERY_REQUEST, "New Delivery Request",
                f"{buyer.name} placed an order of Rs. {order.total_amount:.2f} and requested delivery.",
                sender_id=buyer.id, related=related,
            )
        else:
            await self.notifier.notify(
                order.farmer, NotificationType.ORDER_PLACED, "New Order",
                f"{buyer.name} placed an order of Rs. {order.total_amount:.2f} for self pickup.",
                sender_id=buyer.id, related=related,
            )
        await self.notifier.notify(
            buyer.id, NotificationType.ORDER_STATUS, "Order Placed",
            f"Your order of Rs. {order.total_amount:.2f} has been placed.",
            sender_id=order.farmer, related=related,
        )
        await audit_service.log_event(actor_id=buyer.id, action="order_create", entity_type="order", entity_id=order.id,
                                      details={"total_amount": order.total_amount})
        return order

    # --- Lifecycle ---

    async def _transition_failed(self, order_id: str, target: OrderStatus) -> Exception:
        current = await self.order_repo.get_by_id(order_id)
        if not current:
            return OrderNotFoundError(order_id)
        return InvalidOrderTransitionError(current.status.value, target.value)

    async def update_order_status(self, order_id: str, actor: UserDoc, new_status: str) -> OrderDoc:
        log = logger.bind(order_id=order_id, actor_id=actor.id, target=new_status)
        order = await self.order_repo.get_by_id(order_id)
        if not order:
            raise OrderNotFoundError(order_id)
        if order.farmer != actor.id and not actor.is_admin:
            raise OrderPermissionError(order_id, "update")

        try:
            target = OrderStatus("packing" if new_status == "accepted" else new_status)
        except ValueError:
            raise InvalidOrderTransitionError(order.status.value, new_status) from None
        if not can_transition(order.status, target):
            raise InvalidOrderTransitionError(order.status.value, target.value)

        is_delivery = order.delivery_option == DeliveryOption.REQUEST_DELIVERY
        now = utcnow()
        extra_set: Dict[str, Any] = {}
        if is_delivery and target in (OrderStatus.PACKING, OrderStatus.REJECTED):
            extra_set["delivery_status"] = (
                DeliveryStatus.ACCEPTED if target == OrderStatus.PACKING else DeliveryStatus.REJECTED
            ).value
            extra_set["delivery_responded_at"] = now
        elif is_delivery and target == OrderStatus.SHIPPED:
            extra_set["delivery_status"] = DeliveryStatus.IN_TRANSIT.value

        if target == OrderStatus.DELIVERED:
            updated = await self._deliver(order, actor)
        else:
            updated = await self.order_repo.apply_transition(order_id, order.status, target, actor.id, extra_set)
            if not updated:
                raise await self._transition_failed(order_id, target)
        log.success(f"Order status {order.status.value} -> {target.value}")

        await self._notify_buyer(updated, actor)
        await audit_service.log_event(
            actor_id=actor.id, action="order_status_update", entity_type="order", entity_id=order_id,
            details={"from": order.status.value, "to": target.value},
        )
        return updated

    async def _deliver(self, order: OrderDoc, actor: UserDoc) -> OrderDoc:
        """Deducts stock, then flips the order to delivered exactly once."""
        if order.inventory_deducted:
            raise InventoryAlreadyDeductedError(order.id)
        await self.inventory.release_abandoned(order.id)
        attempt_id, deducted = await self.inventory.deduct(order)
        updated = await self.order_repo.apply_transition(
            order.id, order.status, OrderStatus.DELIVERED, actor.id,
            extra_set={
                "inventory_deducted": True,
                "inventory_attempt_id": attempt_id,
                "delivery_status": DeliveryStatus.COMPLETED.value,
            },
            extra_filter={"inventory_deducted": False},
        )
        if updated:
            return updated
        await self.inventory.compensate(order.id, attempt_id, deducted)
        current = await self.order_repo.get_by_id(order.id)
        if current and current.inventory_deducted:
            raise InventoryAlreadyDeductedError(order.id)
        raise await self._transition_failed(order.id, OrderStatus.DELIVERED)

    async def _notify_buyer(self, order: OrderDoc, actor: UserDoc):
        is_delivery = order.delivery_option == DeliveryOption.REQUEST_DELIVERY
        related = {"order_id": order.id}
        status = order.status
        if status == OrderStatus.PACKING and is_delivery:
            kind, title, message = (NotificationType.DELIVERY_ACCEPTED, "Delivery Accepted",
                                    "The farmer accepted your delivery request and is packing your order.")
        elif status == OrderStatus.REJECTED and is_delivery:
            kind, title, message = (NotificationType.DELIVERY_REJECTED, "Delivery Rejected",
                                    "The farmer rejected your delivery request.")
        elif status == OrderStatus.PACKING:
            kind, title, message = NotificationType.ORDER_STATUS, "Order Packing", "Your order is being packed."
        elif status == OrderStatus.SHIPPED:
            message = "Your order is out for delivery." if is_delivery else "Your order is ready for pickup."
            kind, title = NotificationType.ORDER_STATUS, "Order Shipped"
        elif status == OrderStatus.DELIVERED:
            kind, title, message = NotificationType.ORDER_STATUS, "Order Delivered", "Your order has been delivered."
        else:
            kind, title = NotificationType.ORDER_STATUS, f"Order {status.value.capitalize()}"
            message = f"Your order has been {status.value}."
        await self.notifier.notify(order.buyer, kind, title, message, sender_id=actor.id, related=related)

    async def cancel_order(self, order_id: str, actor: UserDoc) -> OrderDoc:
        order = await self.order_repo.get_by_id(order_id)
        if not order:
            raise OrderNotFoundError(order_id)
        if order.buyer != actor.id and not actor.is_admin:
            raise OrderPermissionError(order_id, "cancel")
        if not can_transition(order.status, OrderStatus.CANCELLED, as_buyer=True):
            raise OrderNotCancellableError(order_id, order.status.value)

        updated = await self.order_repo.apply_transition(order_id, order.status, OrderStatus.CANCELLED, actor.id)
        if not updated:
            current = await self.order_repo.get_by_id(order_id)
            raise OrderNotCancellableError(order_id, current.status.value if current else "missing")
        logger.bind(order_id=order_id, actor_id=actor.id).success("Order cancelled.")

        await self.notifier.notify(
            order.farmer, NotificationType.ORDER_STATUS, "Order Cancelled",
            f"Order of Rs. {order.total_amount:.2f} was cancelled by the buyer.",
            sender_id=actor.id, related={"order_id": order.id},
        )
        await audit_service.log_event(actor_id=actor.id, action="order_cancel", entity_type="order", entity_id=order_id,
                                      details={"from": order.status.value})
        return updated
