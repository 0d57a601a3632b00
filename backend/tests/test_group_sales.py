# tests/test_group_sales.py
import pytest

from haatbazaar.db.schemas.group_sale_schemas import GroupSaleCreate, GroupSaleStatus
from haatbazaar.db.schemas.user_schemas import UserRole
from haatbazaar.modules.group_sales.exceptions import (
    AlreadyJoinedError, CapacityExceededError, DeadlinePassedError, GroupSaleNotOpenError,
    GroupSalePermissionError, InvalidDeadlineError, InvalidGroupSaleTransitionError,
)
from haatbazaar.modules.group_sales.service import GroupSaleService

from tests.factories import hours_from_now, make_product, make_user


@pytest.fixture
def sale_service(sale_repo, product_repo, event_repo, notifier) -> GroupSaleService:
    return GroupSaleService(sale_repo, product_repo, event_repo, notifier)


async def _sale(service, user_repo, product_repo, required=10):
    farmer = await make_user(user_repo, UserRole.FARMER)
    product = await make_product(product_repo, farmer, quantity=100)
    sale = await service.create_group_sale(farmer, GroupSaleCreate(
        product_id=product.id, required_quantity=required, price_per_unit=30, deadline=hours_from_now(48),
    ))
    return sale, farmer


async def test_create_requires_owner_and_future_deadline(sale_service, user_repo, product_repo):
    farmer = await make_user(user_repo, UserRole.FARMER)
    other = await make_user(user_repo, UserRole.FARMER)
    product = await make_product(product_repo, farmer)

    with pytest.raises(GroupSalePermissionError):
        await sale_service.create_group_sale(other, GroupSaleCreate(
            product_id=product.id, required_quantity=5, price_per_unit=10, deadline=hours_from_now(1)))
    with pytest.raises(InvalidDeadlineError):
        await sale_service.create_group_sale(farmer, GroupSaleCreate(
            product_id=product.id, required_quantity=5, price_per_unit=10, deadline=hours_from_now(-1)))


async def test_joins_accumulate_and_close_at_capacity(sale_service, user_repo, product_repo, db):
    sale, farmer = await _sale(sale_service, user_repo, product_repo, required=10)
    first, second = await make_user(user_repo), await make_user(user_repo)

    after_first = await sale_service.join_group_sale(first, sale.id, 6)
    assert after_first.status == GroupSaleStatus.OPEN
    assert after_first.total_quantity_sold == 6

    after_second = await sale_service.join_group_sale(second, sale.id, 4)
    assert after_second.status == GroupSaleStatus.CLOSED
    assert after_second.total_quantity_sold == after_second.committed_quantity == 10
    assert sum(1 for d in db.notifications.docs if d["recipient"] == farmer.id) == 2


async def test_join_beyond_remaining_is_refused(sale_service, sale_repo, user_repo, product_repo):
    sale, _ = await _sale(sale_service, user_repo, product_repo, required=100)
    buyer_a, buyer_b = await make_user(user_repo), await make_user(user_repo)

    after_a = await sale_service.join_group_sale(buyer_a, sale.id, 60)
    assert after_a.total_quantity_sold == 60
    assert after_a.status == GroupSaleStatus.OPEN

    with pytest.raises(CapacityExceededError) as exc_info:
        await sale_service.join_group_sale(buyer_b, sale.id, 50)
    assert "40" in str(exc_info.value)
    unchanged = await sale_repo.get_by_id(sale.id)
    assert unchanged.total_quantity_sold == 60
    assert unchanged.status == GroupSaleStatus.OPEN
    assert [p.buyer for p in unchanged.participants] == [buyer_a.id]

    closed = await sale_service.join_group_sale(buyer_b, sale.id, 40)
    assert closed.total_quantity_sold == 100
    assert closed.status == GroupSaleStatus.CLOSED
    assert [p.buyer for p in closed.participants] == [buyer_a.id, buyer_b.id]


async def test_buyer_joins_once(sale_service, user_repo, product_repo):
    sale, _ = await _sale(sale_service, user_repo, product_repo)
    buyer = await make_user(user_repo)
    await sale_service.join_group_sale(buyer, sale.id, 1)

    with pytest.raises(AlreadyJoinedError):
        await sale_service.join_group_sale(buyer, sale.id, 1)


async def test_deadline_and_status_guard_joins(sale_service, sale_repo, user_repo, product_repo):
    sale, farmer = await _sale(sale_service, user_repo, product_repo)
    await sale_repo.update_by_id(sale.id, {"$set": {"deadline": hours_from_now(-1)}})
    with pytest.raises(DeadlinePassedError):
        await sale_service.join_group_sale(await make_user(user_repo), sale.id, 1)

    await sale_service.update_status(farmer, sale.id, GroupSaleStatus.CANCELLED)
    with pytest.raises(GroupSaleNotOpenError):
        await sale_service.join_group_sale(await make_user(user_repo), sale.id, 1)


async def test_concurrent_join_is_retried_against_fresh_totals(sale_service, sale_repo, user_repo, product_repo):
    sale, _ = await _sale(sale_service, user_repo, product_repo, required=10)
    racer, buyer = await make_user(user_repo), await make_user(user_repo)

    original = sale_repo.get_by_id
    raced = {"done": False}

    async def read_then_race(sale_id):
        snapshot = await original(sale_id)
        if not raced["done"]:
            raced["done"] = True
            await sale_repo.add_participant(
                sale_id, {"buyer": racer.id, "quantity": 8}, expected_total=0, new_total=8,
                new_status=GroupSaleStatus.OPEN,
            )
        return snapshot

    sale_repo.get_by_id = read_then_race
    # The stale read saw 10 free units; the retry sees only 2
    with pytest.raises(CapacityExceededError):
        await sale_service.join_group_sale(buyer, sale.id, 5)
    sale_repo.get_by_id = original
    assert (await sale_repo.get_by_id(sale.id)).total_quantity_sold == 8


async def test_status_transitions_follow_the_table(sale_service, user_repo, product_repo):
    sale, farmer = await _sale(sale_service, user_repo, product_repo, required=2)
    await sale_service.join_group_sale(await make_user(user_repo), sale.id, 2)

    with pytest.raises(InvalidGroupSaleTransitionError):
        await sale_service.update_status(farmer, sale.id, GroupSaleStatus.OPEN)
    completed = await sale_service.update_status(farmer, sale.id, GroupSaleStatus.COMPLETED)
    assert completed.status == GroupSaleStatus.COMPLETED
    with pytest.raises(InvalidGroupSaleTransitionError):
        await sale_service.update_status(farmer, sale.id, GroupSaleStatus.CANCELLED)
