# haatbazaar/modules/ratings/service.py
from typing import Any, Dict, List, Optional
from fastapi import Depends

from haatbazaar.core.logging_setup import logger
from haatbazaar.db.schemas.rating_schemas import RatingCreate
from haatbazaar.db.schemas.user_schemas import UserDoc, UserRole
from haatbazaar.modules.ratings.exceptions import InvalidRatingTargetError, RatingNotAllowedError, RatingTargetNotFoundError
from haatbazaar.modules.ratings.repository import RatingRepository
from haatbazaar.modules.users.repository import UserRepository

MAX_SEARCH_LIMIT = 30


class RatingService:

    def __init__(self, rating_repo: RatingRepository = Depends(), user_repo: UserRepository = Depends()):
        self.rating_repo = rating_repo
        self.user_repo = user_repo

    async def rate(self, rater: UserDoc, data: RatingCreate) -> Dict[str, Any]:
        if rater.role != UserRole.BUYER:
            raise RatingNotAllowedError()
        if data.target_id == rater.id:
            raise InvalidRatingTargetError("Cannot rate yourself")
        target = await self.user_repo.get_by_id(data.target_id)
        if not target:
            raise RatingTargetNotFoundError(data.target_id)
        if target.role != UserRole.FARMER:
            raise InvalidRatingTargetError("Only farmers can be rated")

        rating, created = await self.rating_repo.upsert(rater.id, target.id, data.score, data.comment)
        average, count = await self.rating_repo.summary(target.id)
        logger.bind(rater=rater.id, target=target.id).info(f"Rating {'created' if created else 'updated'}: {data.score}")
        return {"rating": rating, "created": created, "average": average, "count": count}

    async def ratings_for_user(self, user_id: str) -> Dict[str, Any]:
        ratings = await self.rating_repo.list_for_target(user_id)
        average, count = await self.rating_repo.summary(user_id)
        return {"ratings": ratings, "average": average, "count": count}

    async def search_rateable_users(
        self,
        user: UserDoc,
        text: str = "",
        roles: Optional[List[UserRole]] = None,
        limit: int = 10,
    ) -> List[UserDoc]:
        limit = min(max(limit, 1), MAX_SEARCH_LIMIT)
        return await self.user_repo.search(text, roles or [UserRole.BUYER, UserRole.FARMER], exclude_id=user.id, limit=limit)
