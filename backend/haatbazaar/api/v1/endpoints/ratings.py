# haatbazaar/api/v1/endpoints/ratings.py
from typing import Annotated, List, Optional
from fastapi import APIRouter, Depends, Path, Query, Response, status

from haatbazaar.core.security import CurrentUser
from haatbazaar.db.schemas.rating_schemas import RatingCreate
from haatbazaar.db.schemas.user_schemas import UserRole
from haatbazaar.modules.ratings.service import RatingService

router = APIRouter()

RatingServiceDep = Annotated[RatingService, Depends()]


@router.post("", status_code=status.HTTP_201_CREATED, summary="Rate a farmer")
async def create_rating(data: RatingCreate, current_user: CurrentUser, service: RatingServiceDep, response: Response):
    result = await service.rate(current_user, data)
    if not result["created"]:
        response.status_code = status.HTTP_200_OK
    return {
        "message": "Rating created" if result["created"] else "Rating updated",
        "rating": result["rating"].to_api(),
        "average": result["average"],
        "count": result["count"],
    }


@router.get("/users/search", summary="Find users to rate")
async def search_rateable_users(
    current_user: CurrentUser,
    service: RatingServiceDep,
    q: Annotated[str, Query(max_length=100)] = "",
    role: Annotated[Optional[str], Query(description="Comma separated roles")] = None,
    limit: Annotated[int, Query(ge=1)] = 10,
):
    roles: Optional[List[UserRole]] = None
    if role:
        roles = [UserRole(r.strip()) for r in role.split(",") if r.strip() in {x.value for x in UserRole}]
    users = await service.search_rateable_users(current_user, q, roles, limit)
    return {"users": [u.public() for u in users]}


@router.get("/{user_id}", summary="Ratings received by a user")
async def ratings_for_user(user_id: Annotated[str, Path(description="User ID")], service: RatingServiceDep):
    result = await service.ratings_for_user(user_id)
    return {**result, "ratings": [r.to_api() for r in result["ratings"]]}
