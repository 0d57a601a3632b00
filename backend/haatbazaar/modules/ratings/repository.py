# haatbazaar/modules/ratings/repository.py
from typing import List, Optional, Tuple

from pymongo import ReturnDocument

from haatbazaar.core.exceptions import RepositoryError
from haatbazaar.core.logging_setup import logger
from haatbazaar.db.repository import MongoRepository
from haatbazaar.db.schemas.common_schemas import utcnow
from haatbazaar.db.schemas.rating_schemas import RatingDoc


class RatingRepository(MongoRepository[RatingDoc]):
    collection_name = "ratings"
    document_model = RatingDoc

    async def upsert(self, rater_id: str, target_id: str, score: float, comment: Optional[str]) -> Tuple[RatingDoc, bool]:
        """Creates or replaces the rater's rating of target. Returns (rating, created)."""
        log = logger.bind(collection=self.collection_name, rater=rater_id, target=target_id)
        now = utcnow()
        try:
            doc = await self._collection.find_one_and_update(
                {"rater": rater_id, "target": target_id},
                {
                    "$set": {"score": score, "comment": comment, "updated_at": now},
                    "$setOnInsert": {"rater": rater_id, "target": target_id, "created_at": now},
                },
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except Exception as e:
            log.exception("Database error upserting rating.")
            raise RepositoryError(f"Error saving rating: {e}") from e
        rating = await self._map_doc(doc)
        if rating is None:
            raise RepositoryError("Saved rating failed validation.")
        return rating, rating.created_at == rating.updated_at

    async def list_for_target(self, target_id: str) -> List[RatingDoc]:
        return await self.find_many({"target": target_id}, sort=[("created_at", -1)])

    async def summary(self, target_id: str) -> Tuple[Optional[float], int]:
        """Average score and count for a user. Average is None without ratings."""
        ratings = await self.find_many({"target": target_id})
        if not ratings:
            return None, 0
        return round(sum(r.score for r in ratings) / len(ratings), 2), len(ratings)
