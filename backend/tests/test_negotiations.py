# tests/test_negotiations.py
from datetime import timedelta

import pytest

from haatbazaar.db.schemas.common_schemas import utcnow
from haatbazaar.db.schemas.negotiation_schemas import NegotiationCreate, NegotiationRespond, NegotiationStatus
from haatbazaar.db.schemas.notification_schemas import NotificationType
from haatbazaar.db.schemas.user_schemas import UserRole
from haatbazaar.modules.negotiations.exceptions import (
    CounterOfferIncompleteError, NegotiationClosedError, NegotiationPermissionError, SelfNegotiationError,
)
from haatbazaar.modules.negotiations.service import NegotiationService, is_expired

from tests.factories import make_product, make_user


@pytest.fixture
def negotiation_service(negotiation_repo, product_repo, notifier) -> NegotiationService:
    return NegotiationService(negotiation_repo, product_repo, notifier)


async def _open(service, user_repo, product_repo, price=80, quantity=5):
    farmer = await make_user(user_repo, UserRole.FARMER)
    buyer = await make_user(user_repo)
    product = await make_product(product_repo, farmer, price=100)
    negotiation = await service.create_negotiation(
        buyer, NegotiationCreate(product_id=product.id, price=price, quantity=quantity),
    )
    return negotiation, farmer, buyer, product


async def test_first_offer_opens_an_active_negotiation(negotiation_service, user_repo, product_repo, db):
    negotiation, farmer, buyer, product = await _open(negotiation_service, user_repo, product_repo)

    assert negotiation.status == NegotiationStatus.ACTIVE
    assert negotiation.farmer == farmer.id
    assert negotiation.product == product.id
    assert len(negotiation.offers) == 1
    assert negotiation.offers[0].offered_by == buyer.id
    assert negotiation.expires_at is not None
    assert any(d["recipient"] == farmer.id and d["type"] == NotificationType.NEGOTIATION.value
               for d in db.notifications.docs)


async def test_repeat_offer_extends_the_same_negotiation(negotiation_service, user_repo, product_repo, db):
    negotiation, _, buyer, product = await _open(negotiation_service, user_repo, product_repo)

    again = await negotiation_service.create_negotiation(
        buyer, NegotiationCreate(product_id=product.id, price=85, quantity=5),
    )
    assert again.id == negotiation.id
    assert [o.price for o in again.offers] == [80, 85]
    assert len(db.negotiations.docs) == 1


async def test_unique_index_race_falls_back_to_appending(negotiation_service, negotiation_repo, user_repo, product_repo, db):
    db.negotiations.add_unique_index("product", "buyer", partial={"status": "active"})
    negotiation, _, buyer, product = await _open(negotiation_service, user_repo, product_repo)

    # The other request's insert lands between our lookup and insert
    calls = {"n": 0}
    original = negotiation_repo.find_active

    async def stale_then_real(product_id, buyer_id):
        calls["n"] += 1
        return None if calls["n"] == 1 else await original(product_id, buyer_id)

    negotiation_repo.find_active = stale_then_real
    result = await negotiation_service.create_negotiation(
        buyer, NegotiationCreate(product_id=product.id, price=90, quantity=5),
    )
    assert result.id == negotiation.id
    assert len(result.offers) == 2


async def test_farmer_cannot_negotiate_on_own_product(negotiation_service, user_repo, product_repo):
    farmer = await make_user(user_repo, UserRole.FARMER)
    product = await make_product(product_repo, farmer)
    with pytest.raises(SelfNegotiationError):
        await negotiation_service.create_negotiation(farmer, NegotiationCreate(product_id=product.id, price=1, quantity=1))


async def test_accept_records_final_terms_from_latest_offer(negotiation_service, user_repo, product_repo, db):
    negotiation, farmer, buyer, _ = await _open(negotiation_service, user_repo, product_repo, price=75, quantity=4)

    accepted = await negotiation_service.respond_to_negotiation(
        negotiation.id, farmer, NegotiationRespond(action="accept"),
    )
    assert accepted.status == NegotiationStatus.ACCEPTED
    assert (accepted.final_price, accepted.final_quantity) == (75, 4)
    assert accepted.accepted_at is not None
    assert any(d["recipient"] == buyer.id and d["type"] == NotificationType.NEGOTIATION_ACCEPTED.value
               for d in db.notifications.docs)


async def test_counter_requires_price_and_quantity(negotiation_service, user_repo, product_repo):
    negotiation, farmer, _, _ = await _open(negotiation_service, user_repo, product_repo)

    with pytest.raises(CounterOfferIncompleteError):
        await negotiation_service.respond_to_negotiation(negotiation.id, farmer, NegotiationRespond(action="counter", price=90))

    countered = await negotiation_service.respond_to_negotiation(
        negotiation.id, farmer, NegotiationRespond(action="counter", price=90, quantity=5),
    )
    assert countered.status == NegotiationStatus.ACTIVE
    assert countered.latest_offer.offered_by == farmer.id


async def test_closed_negotiation_accepts_no_further_responses(negotiation_service, user_repo, product_repo):
    negotiation, farmer, _, _ = await _open(negotiation_service, user_repo, product_repo)
    await negotiation_service.respond_to_negotiation(negotiation.id, farmer, NegotiationRespond(action="reject"))

    with pytest.raises(NegotiationClosedError):
        await negotiation_service.respond_to_negotiation(negotiation.id, farmer, NegotiationRespond(action="accept"))


async def test_only_the_farmer_responds(negotiation_service, user_repo, product_repo):
    negotiation, _, buyer, _ = await _open(negotiation_service, user_repo, product_repo)
    with pytest.raises(NegotiationPermissionError):
        await negotiation_service.respond_to_negotiation(negotiation.id, buyer, NegotiationRespond(action="accept"))


async def test_expired_negotiation_cannot_be_answered(negotiation_service, negotiation_repo, user_repo, product_repo):
    negotiation, farmer, _, _ = await _open(negotiation_service, user_repo, product_repo)
    await negotiation_repo.update_by_id(negotiation.id, {"$set": {"expires_at": utcnow() - timedelta(minutes=1)}})

    with pytest.raises(NegotiationClosedError):
        await negotiation_service.respond_to_negotiation(negotiation.id, farmer, NegotiationRespond(action="accept"))
    assert (await negotiation_repo.get_by_id(negotiation.id)).status == NegotiationStatus.EXPIRED


async def test_sweep_expires_only_stale_negotiations(negotiation_service, negotiation_repo, user_repo, product_repo):
    stale, _, _, _ = await _open(negotiation_service, user_repo, product_repo)
    fresh, _, _, _ = await _open(negotiation_service, user_repo, product_repo)
    await negotiation_repo.update_by_id(stale.id, {"$set": {"expires_at": utcnow() - timedelta(hours=1)}})

    assert await negotiation_service.expire_stale_negotiations() == 1
    assert (await negotiation_repo.get_by_id(stale.id)).status == NegotiationStatus.EXPIRED
    fresh_now = await negotiation_repo.get_by_id(fresh.id)
    assert fresh_now.status == NegotiationStatus.ACTIVE
    assert not is_expired(fresh_now)
