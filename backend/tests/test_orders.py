# tests/test_orders.py
from datetime import timedelta

import pytest

from haatbazaar.core.exceptions import StateConflictError
from haatbazaar.db.schemas.common_schemas import utcnow
from haatbazaar.db.schemas.notification_schemas import NotificationType
from haatbazaar.db.schemas.order_schemas import (
    DeliveryOption, DeliveryStatus, LedgerKind, OrderCreate, OrderStatus,
)
from haatbazaar.db.schemas.product_schemas import ProductStatus
from haatbazaar.db.schemas.user_schemas import UserRole
from haatbazaar.modules.orders.exceptions import (
    InsufficientQuantityError, InventoryAlreadyDeductedError, InvalidOrderTransitionError,
    OrderNotCancellableError, OrderPermissionError, OrderProductError,
)
from haatbazaar.modules.orders.service import OrderService, order_total
from haatbazaar.modules.orders.state import can_transition, is_terminal

from tests.factories import make_product, make_user


@pytest.fixture
def order_service(order_repo, product_repo, user_repo, inventory, notifier) -> OrderService:
    return OrderService(order_repo, product_repo, user_repo, inventory, notifier)


async def _place(service, user_repo, product_repo, quantities=(2,), stock=10, delivery=False):
    farmer = await make_user(user_repo, UserRole.FARMER)
    buyer = await make_user(user_repo, UserRole.BUYER)
    products = [
        await make_product(product_repo, farmer, quantity=stock, price=40 + i * 10, title=f"Item {i}")
        for i in range(len(quantities))
    ]
    payload = {
        "farmerId": farmer.id,
        "products": [{"product": p.id, "quantity": q} for p, q in zip(products, quantities)],
    }
    if delivery:
        payload["deliveryOption"] = "request_delivery"
        payload["deliveryLocation"] = {"latitude": 27.7, "longitude": 85.3}
    order = await service.create_order(buyer, OrderCreate.model_validate(payload))
    return order, farmer, buyer, products


async def _advance_to_shipped(service, order, farmer):
    await service.update_order_status(order.id, farmer, "packing")
    return await service.update_order_status(order.id, farmer, "shipped")


# --- Transition table ---

class TestTransitionTable:
    def test_seller_forward_path(self):
        assert can_transition(OrderStatus.PLACED, OrderStatus.PACKING)
        assert can_transition(OrderStatus.PACKING, OrderStatus.SHIPPED)
        assert can_transition(OrderStatus.SHIPPED, OrderStatus.DELIVERED)

    def test_seller_cannot_skip_steps(self):
        assert not can_transition(OrderStatus.PLACED, OrderStatus.SHIPPED)
        assert not can_transition(OrderStatus.PLACED, OrderStatus.DELIVERED)
        assert not can_transition(OrderStatus.SHIPPED, OrderStatus.CANCELLED)

    def test_terminal_states_have_no_exits(self):
        for status in (OrderStatus.DELIVERED, OrderStatus.REJECTED, OrderStatus.CANCELLED):
            assert is_terminal(status)
            assert not any(can_transition(status, target) for target in OrderStatus)

    def test_buyer_may_only_cancel_before_shipping(self):
        assert can_transition(OrderStatus.PLACED, OrderStatus.CANCELLED, as_buyer=True)
        assert can_transition(OrderStatus.PACKING, OrderStatus.CANCELLED, as_buyer=True)
        assert not can_transition(OrderStatus.SHIPPED, OrderStatus.CANCELLED, as_buyer=True)
        assert not can_transition(OrderStatus.PLACED, OrderStatus.PACKING, as_buyer=True)


def test_order_total_adds_surcharge_only_for_delivery():
    items = [{"unit_price": 40.0, "quantity": 2}, {"unit_price": 12.5, "quantity": 3}]
    assert order_total(items, DeliveryOption.SELF_PICKUP) == 117.5
    assert order_total(items, DeliveryOption.REQUEST_DELIVERY, surcharge=50) == 167.5


# --- Placement ---

@pytest.mark.parametrize("delivery, expected_total", [(False, 250), (True, 300)])
async def test_placed_order_total(order_service, user_repo, product_repo, delivery, expected_total):
    farmer = await make_user(user_repo, UserRole.FARMER)
    buyer = await make_user(user_repo, UserRole.BUYER)
    pricier = await make_product(product_repo, farmer, price=100, title="Ghee")
    cheaper = await make_product(product_repo, farmer, price=50, title="Honey")
    payload = {
        "farmerId": farmer.id,
        "products": [{"product": pricier.id, "quantity": 2}, {"product": cheaper.id, "quantity": 1}],
    }
    if delivery:
        payload["deliveryOption"] = "request_delivery"
        payload["deliveryLocation"] = {"latitude": 27.7, "longitude": 85.3}

    order = await order_service.create_order(buyer, OrderCreate.model_validate(payload))
    assert order.total_amount == expected_total


async def test_create_order_snapshots_prices_and_notifies(order_service, user_repo, product_repo, db):
    order, farmer, buyer, products = await _place(order_service, user_repo, product_repo, quantities=(2, 1))

    assert order.status == OrderStatus.PLACED
    assert [i.unit_price for i in order.items] == [40, 50]
    assert order.total_amount == 130
    assert order.delivery_status == DeliveryStatus.COMPLETED
    assert order.inventory_deducted is False
    assert order.status_history[0].status == OrderStatus.PLACED

    # Price changes after placement do not touch the order
    await product_repo.update_by_id(products[0].id, {"$set": {"price": 999}})
    stored = await order_service.get_order(order.id, buyer)
    assert stored.items[0].unit_price == 40

    kinds = {(d["recipient"], d["type"]) for d in db.notifications.docs}
    assert (farmer.id, NotificationType.ORDER_PLACED.value) in kinds
    assert (buyer.id, NotificationType.ORDER_STATUS.value) in kinds


async def test_delivery_request_starts_pending_and_includes_surcharge(order_service, user_repo, product_repo, db):
    order, farmer, _, _ = await _place(order_service, user_repo, product_repo, quantities=(1,), delivery=True)

    assert order.delivery_status == DeliveryStatus.PENDING
    assert order.total_amount == 40 + 50
    assert any(d["recipient"] == farmer.id and d["type"] == NotificationType.DELIVERY_REQUEST.value
               for d in db.notifications.docs)


async def test_create_order_rejects_product_from_another_farmer(order_service, user_repo, product_repo):
    farmer = await make_user(user_repo, UserRole.FARMER)
    other = await make_user(user_repo, UserRole.FARMER)
    buyer = await make_user(user_repo)
    product = await make_product(product_repo, other)

    data = OrderCreate.model_validate({"farmerId": farmer.id, "products": [{"product": product.id, "quantity": 1}]})
    with pytest.raises(OrderProductError):
        await order_service.create_order(buyer, data)


async def test_create_order_rejects_unapproved_or_short_stock(order_service, user_repo, product_repo):
    farmer = await make_user(user_repo, UserRole.FARMER)
    buyer = await make_user(user_repo)
    pending = await make_product(product_repo, farmer, status=ProductStatus.PENDING.value, approved=False)
    scarce = await make_product(product_repo, farmer, quantity=1)

    with pytest.raises(OrderProductError):
        await order_service.create_order(buyer, OrderCreate.model_validate(
            {"farmerId": farmer.id, "products": [{"product": pending.id, "quantity": 1}]}))
    with pytest.raises(InsufficientQuantityError):
        await order_service.create_order(buyer, OrderCreate.model_validate(
            {"farmerId": farmer.id, "products": [{"product": scarce.id, "quantity": 5}]}))


# --- Lifecycle ---

async def test_stock_is_taken_only_on_delivery(order_service, user_repo, product_repo, ledger_repo):
    order, farmer, _, products = await _place(order_service, user_repo, product_repo, quantities=(3,))

    await _advance_to_shipped(order_service, order, farmer)
    assert (await product_repo.get_by_id(products[0].id)).quantity == 10

    delivered = await order_service.update_order_status(order.id, farmer, "delivered")
    assert delivered.status == OrderStatus.DELIVERED
    assert delivered.inventory_deducted is True
    assert (await product_repo.get_by_id(products[0].id)).quantity == 7
    assert [s.status for s in delivered.status_history] == [
        OrderStatus.PLACED, OrderStatus.PACKING, OrderStatus.SHIPPED, OrderStatus.DELIVERED,
    ]
    entries = await ledger_repo.entries_for_order(order.id)
    assert [(e.kind, e.quantity) for e in entries] == [(LedgerKind.DEDUCTED, 3)]


async def test_accepted_is_an_alias_for_packing(order_service, user_repo, product_repo):
    order, farmer, _, _ = await _place(order_service, user_repo, product_repo, delivery=True)

    updated = await order_service.update_order_status(order.id, farmer, "accepted")
    assert updated.status == OrderStatus.PACKING
    assert updated.delivery_status == DeliveryStatus.ACCEPTED
    assert updated.delivery_responded_at is not None


async def test_skipping_a_step_is_refused(order_service, user_repo, product_repo):
    order, farmer, _, _ = await _place(order_service, user_repo, product_repo)

    with pytest.raises(InvalidOrderTransitionError) as exc_info:
        await order_service.update_order_status(order.id, farmer, "delivered")
    assert isinstance(exc_info.value, StateConflictError)
    with pytest.raises(InvalidOrderTransitionError):
        await order_service.update_order_status(order.id, farmer, "teleported")


async def test_only_the_orders_farmer_may_update(order_service, user_repo, product_repo):
    order, _, buyer, _ = await _place(order_service, user_repo, product_repo)
    stranger = await make_user(user_repo, UserRole.FARMER)

    with pytest.raises(OrderPermissionError):
        await order_service.update_order_status(order.id, stranger, "packing")
    with pytest.raises(OrderPermissionError):
        await order_service.update_order_status(order.id, buyer, "packing")


async def test_delivery_with_short_stock_rolls_back_every_line(order_service, user_repo, product_repo, ledger_repo):
    order, farmer, _, products = await _place(order_service, user_repo, product_repo, quantities=(2, 4))
    await _advance_to_shipped(order_service, order, farmer)
    # Second line sells out elsewhere after the order was placed
    await product_repo.update_by_id(products[1].id, {"$set": {"quantity": 1}})

    with pytest.raises(InsufficientQuantityError):
        await order_service.update_order_status(order.id, farmer, "delivered")

    assert (await product_repo.get_by_id(products[0].id)).quantity == 10
    assert (await product_repo.get_by_id(products[1].id)).quantity == 1
    current = await order_service.get_order(order.id, farmer)
    assert current.status == OrderStatus.SHIPPED
    assert current.inventory_deducted is False
    assert await ledger_repo.outstanding_by_attempt(order.id) == {}


async def test_flag_already_set_blocks_a_second_deduction(order_service, user_repo, product_repo, order_repo):
    order, farmer, _, products = await _place(order_service, user_repo, product_repo, quantities=(2,))
    await _advance_to_shipped(order_service, order, farmer)
    await order_repo.update_by_id(order.id, {"$set": {"inventory_deducted": True}})

    with pytest.raises(InventoryAlreadyDeductedError):
        await order_service.update_order_status(order.id, farmer, "delivered")
    assert (await product_repo.get_by_id(products[0].id)).quantity == 10


async def test_abandoned_deduction_is_released_before_retrying(
    order_service, user_repo, product_repo, ledger_repo, inventory,
):
    order, farmer, _, products = await _place(order_service, user_repo, product_repo, quantities=(3,))
    await _advance_to_shipped(order_service, order, farmer)

    # A crashed attempt took stock and never flipped the order
    await product_repo.decrement_quantity(products[0].id, 3)
    await ledger_repo.insert({
        "order_id": order.id, "product_id": products[0].id, "attempt_id": "crashed",
        "quantity": 3, "kind": LedgerKind.DEDUCTED.value, "created_at": utcnow() - timedelta(minutes=10),
    })

    delivered = await order_service.update_order_status(order.id, farmer, "delivered")
    assert delivered.inventory_deducted is True
    # Taken exactly once overall
    assert (await product_repo.get_by_id(products[0].id)).quantity == 7
    assert await ledger_repo.outstanding_by_attempt(order.id) != {}
    assert "crashed" not in await ledger_repo.outstanding_by_attempt(order.id)


async def test_sweep_returns_stock_from_an_attempt_that_crashed_inside_the_grace_window(
    order_service, user_repo, product_repo, ledger_repo, inventory,
):
    order, farmer, _, products = await _place(order_service, user_repo, product_repo, quantities=(3,))
    await _advance_to_shipped(order_service, order, farmer)
    await product_repo.decrement_quantity(products[0].id, 3)
    await ledger_repo.insert({
        "order_id": order.id, "product_id": products[0].id, "attempt_id": "crashed",
        "quantity": 3, "kind": LedgerKind.DEDUCTED.value, "created_at": utcnow() - timedelta(seconds=30),
    })

    # The retry is too soon to treat the crashed attempt as abandoned
    delivered = await order_service.update_order_status(order.id, farmer, "delivered")
    assert delivered.inventory_attempt_id
    assert (await product_repo.get_by_id(products[0].id)).quantity == 4

    # Nothing is old enough yet
    assert await inventory.sweep_abandoned() == 0

    # Once the grace window has passed
    assert await inventory.sweep_abandoned(grace_seconds=0) == 1
    assert (await product_repo.get_by_id(products[0].id)).quantity == 7
    outstanding = await ledger_repo.outstanding_by_attempt(order.id)
    assert list(outstanding) == [delivered.inventory_attempt_id]

    # Repeated sweeps leave the winning deduction alone
    assert await inventory.sweep_abandoned(grace_seconds=0) == 0
    assert (await product_repo.get_by_id(products[0].id)).quantity == 7


async def test_sweep_skips_delivered_orders_without_a_recorded_attempt(
    user_repo, product_repo, order_repo, ledger_repo, inventory,
):
    farmer = await make_user(user_repo, UserRole.FARMER)
    product = await make_product(product_repo, farmer, quantity=5)
    order = await order_repo.insert({
        "buyer": farmer.id, "farmer": farmer.id, "items": [], "total_amount": 0,
        "status": OrderStatus.DELIVERED.value, "inventory_deducted": True,
    })
    await ledger_repo.record(order.id, product.id, "unknown", 2, LedgerKind.DEDUCTED)

    assert await inventory.sweep_abandoned(grace_seconds=0) == 0
    assert (await product_repo.get_by_id(product.id)).quantity == 5


async def test_recent_attempts_are_left_to_finish(user_repo, product_repo, ledger_repo, inventory):
    farmer = await make_user(user_repo, UserRole.FARMER)
    product = await make_product(product_repo, farmer, quantity=5)
    order_id = "64b7f0c2a1b2c3d4e5f60718"
    await ledger_repo.record(order_id, product.id, "in-flight", 2, LedgerKind.DEDUCTED)

    assert await inventory.release_abandoned(order_id, grace_seconds=60) == 0
    assert await inventory.release_abandoned(order_id, grace_seconds=0) == 1
    assert (await product_repo.get_by_id(product.id)).quantity == 7


# --- Cancellation ---

async def test_buyer_cancels_before_shipping(order_service, user_repo, product_repo, db):
    order, farmer, buyer, _ = await _place(order_service, user_repo, product_repo)

    cancelled = await order_service.cancel_order(order.id, buyer)
    assert cancelled.status == OrderStatus.CANCELLED
    assert any(d["recipient"] == farmer.id and d["title"] == "Order Cancelled" for d in db.notifications.docs)


async def test_shipped_order_cannot_be_cancelled(order_service, user_repo, product_repo):
    order, farmer, buyer, _ = await _place(order_service, user_repo, product_repo)
    await _advance_to_shipped(order_service, order, farmer)

    with pytest.raises(OrderNotCancellableError):
        await order_service.cancel_order(order.id, buyer)


async def test_other_buyers_cannot_cancel_or_view(order_service, user_repo, product_repo):
    order, _, _, _ = await _place(order_service, user_repo, product_repo)
    other = await make_user(user_repo)

    with pytest.raises(OrderPermissionError):
        await order_service.cancel_order(order.id, other)
    with pytest.raises(OrderPermissionError):
        await order_service.get_order(order.id, other)


async def test_list_orders_filters_by_party(order_service, user_repo, product_repo):
    order, farmer, buyer, _ = await _place(order_service, user_repo, product_repo)

    assert [o.id for o in await order_service.list_orders(buyer)] == [order.id]
    assert [o.id for o in await order_service.list_orders(farmer, "farmer")] == [order.id]
    assert await order_service.list_orders(farmer, "buyer") == []
