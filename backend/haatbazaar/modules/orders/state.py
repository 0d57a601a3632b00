# haatbazaar/modules/orders/state.py
# Order status transitions allowed per acting role. Anything not listed is refused.
from typing import Dict, FrozenSet

from haatbazaar.db.schemas.order_schemas import OrderStatus

TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.DELIVERED, OrderStatus.REJECTED, OrderStatus.CANCELLED,
})

# Farmer (or admin acting for them) via the status endpoint
SELLER_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PLACED: frozenset({OrderStatus.PACKING, OrderStatus.REJECTED, OrderStatus.CANCELLED}),
    OrderStatus.PACKING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.REJECTED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

# Buyer (or admin acting for them) via the cancel endpoint
BUYER_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PLACED: frozenset({OrderStatus.CANCELLED}),
    OrderStatus.PACKING: frozenset({OrderStatus.CANCELLED}),
}


def can_transition(current: OrderStatus, target: OrderStatus, as_buyer: bool = False) -> bool:
    table = BUYER_TRANSITIONS if as_buyer else SELLER_TRANSITIONS
    return target in table.get(current, frozenset())


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATUSES
