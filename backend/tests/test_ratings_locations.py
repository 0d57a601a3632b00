# tests/test_ratings_locations.py
import pytest
from pydantic import ValidationError

from haatbazaar.db.schemas.location_schemas import LocationUpdate
from haatbazaar.db.schemas.rating_schemas import RatingCreate
from haatbazaar.db.schemas.user_schemas import UserRole
from haatbazaar.modules.locations.exceptions import ActiveLocationNotFoundError
from haatbazaar.modules.locations.repository import LocationRepository
from haatbazaar.modules.locations.service import LocationService
from haatbazaar.modules.ratings.exceptions import (
    InvalidRatingTargetError, RatingNotAllowedError, RatingTargetNotFoundError,
)
from haatbazaar.modules.ratings.repository import RatingRepository
from haatbazaar.modules.ratings.service import RatingService

from tests.factories import make_user


@pytest.fixture
def rating_service(db, user_repo) -> RatingService:
    return RatingService(RatingRepository(db), user_repo)


@pytest.fixture
def location_service(db, user_repo) -> LocationService:
    return LocationService(LocationRepository(db), user_repo)


def test_scores_come_in_half_steps():
    assert RatingCreate(target_id="a" * 24, score=4.5).score == 4.5
    for bad in (0, 4.3, 5.5):
        with pytest.raises(ValidationError):
            RatingCreate(target_id="a" * 24, score=bad)


async def test_rating_is_one_per_buyer_and_farmer(rating_service, user_repo, db):
    farmer = await make_user(user_repo, UserRole.FARMER)
    first, second = await make_user(user_repo), await make_user(user_repo)

    created = await rating_service.rate(first, RatingCreate(target_id=farmer.id, score=4, comment="Fresh"))
    assert created["created"] and created["count"] == 1

    updated = await rating_service.rate(first, RatingCreate(target_id=farmer.id, score=2))
    assert not updated["created"]
    assert updated["rating"].id == created["rating"].id
    assert updated["average"] == 2 and updated["count"] == 1

    await rating_service.rate(second, RatingCreate(target_id=farmer.id, score=5))
    summary = await rating_service.ratings_for_user(farmer.id)
    assert summary["average"] == 3.5 and summary["count"] == 2
    assert len(db.ratings.docs) == 2


async def test_rating_guards(rating_service, user_repo):
    farmer = await make_user(user_repo, UserRole.FARMER)
    buyer = await make_user(user_repo)
    other_buyer = await make_user(user_repo)

    with pytest.raises(RatingNotAllowedError):
        await rating_service.rate(farmer, RatingCreate(target_id=buyer.id, score=3))
    with pytest.raises(InvalidRatingTargetError):
        await rating_service.rate(buyer, RatingCreate(target_id=buyer.id, score=3))
    with pytest.raises(InvalidRatingTargetError):
        await rating_service.rate(buyer, RatingCreate(target_id=other_buyer.id, score=3))
    with pytest.raises(RatingTargetNotFoundError):
        await rating_service.rate(buyer, RatingCreate(target_id="b" * 24, score=3))

    empty = await rating_service.ratings_for_user(farmer.id)
    assert empty == {"ratings": [], "average": None, "count": 0}


async def test_user_search_excludes_the_caller(rating_service, user_repo):
    me = await make_user(user_repo, name="Sita Sharma")
    await make_user(user_repo, UserRole.FARMER, name="Sita Thapa")
    await make_user(user_repo, UserRole.ADMIN, name="Sita Admin")
    await make_user(user_repo, name="Ram")

    found = await rating_service.search_rateable_users(me, "sita")
    assert [u.name for u in found] == ["Sita Thapa"]
    farmers_only = await rating_service.search_rateable_users(me, "", roles=[UserRole.FARMER])
    assert [u.name for u in farmers_only] == ["Sita Thapa"]


# --- Locations ---

async def test_update_keeps_one_active_location(location_service, user_repo):
    user = await make_user(user_repo, UserRole.FARMER)

    with pytest.raises(ActiveLocationNotFoundError):
        await location_service.get_active_location(user.id)

    await location_service.update_location(user, LocationUpdate(latitude=27.70, longitude=85.32))
    latest = await location_service.update_location(user, LocationUpdate(latitude=27.71, longitude=85.33, accuracy=8))

    active = await location_service.get_active_location(user.id)
    assert active.id == latest.id and active.accuracy == 8
    history = await location_service.history(user, limit=10)
    assert len(history) == 2
    assert sum(1 for loc in history if loc.is_active) == 1
    assert (await user_repo.get_by_id(user.id)).location.latitude == 27.71


async def test_nearby_farmers_sorted_by_distance(location_service, user_repo):
    far = await make_user(user_repo, UserRole.FARMER, name="Far")
    near = await make_user(user_repo, UserRole.FARMER, name="Near")
    buyer = await make_user(user_repo)
    await location_service.update_location(far, LocationUpdate(latitude=27.74, longitude=85.32))
    await location_service.update_location(near, LocationUpdate(latitude=27.718, longitude=85.324))
    await location_service.update_location(buyer, LocationUpdate(latitude=27.7172, longitude=85.3240))

    nearby = await location_service.farmers_nearby(27.7172, 85.3240, radius_km=5)
    assert [row["user"]["name"] for row in nearby] == ["Near", "Far"]
    assert nearby[0]["distance"] < nearby[1]["distance"] <= 5
    assert "hashed_password" not in nearby[0]["user"]

    assert await location_service.farmers_nearby(27.7172, 85.3240, radius_km=0.5) == nearby[:1]
