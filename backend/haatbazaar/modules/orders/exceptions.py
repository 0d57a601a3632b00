# haatbazaar/modules/orders/exceptions.py
from haatbazaar.core.exceptions import NotFoundError, PermissionDeniedError, StateConflictError, ValidationFailedError


class OrderError(Exception):
    """Base exception for order lifecycle errors."""
    pass


class OrderNotFoundError(OrderError, NotFoundError):
    def __init__(self, order_id: str):
        super().__init__("Order not found")
        self.order_id = order_id


class OrderPermissionError(OrderError, PermissionDeniedError):
    def __init__(self, order_id: str, action: str = "access"):
        super().__init__(f"Not authorized to {action} this order")
        self.order_id = order_id
        self.action = action


class OrderProductError(OrderError, ValidationFailedError):
    """A line item references a product that cannot be ordered."""
    def __init__(self, product_id: str, reason: str):
        super().__init__(reason)
        self.product_id = product_id


class InsufficientQuantityError(OrderError, StateConflictError):
    def __init__(self, product_id: str, title: str = ""):
        super().__init__(f"Insufficient quantity for {title or product_id}")
        self.product_id = product_id


class InvalidOrderTransitionError(OrderError, StateConflictError):
    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot change order status from '{current}' to '{target}'")
        self.current = current
        self.target = target


class OrderNotCancellableError(OrderError, StateConflictError):
    def __init__(self, order_id: str, status: str):
        super().__init__(f"Cannot cancel an order that is {status}")
        self.order_id = order_id
        self.status = status


class InventoryAlreadyDeductedError(OrderError, StateConflictError):
    def __init__(self, order_id: str):
        super().__init__("Inventory for this order was already deducted")
        self.order_id = order_id
