# haatbazaar/db/schemas/rating_schemas.py
from typing import Optional
from pydantic import Field, field_validator
from .common_schemas import MongoDocument, PyObjectId, RequestModel


class RatingDoc(MongoDocument):
    rater: PyObjectId
    target: PyObjectId
    score: float
    comment: Optional[str] = None


class RatingCreate(RequestModel):
    target_id: PyObjectId
    score: float = Field(..., ge=0.5, le=5)
    comment: Optional[str] = Field(None, max_length=500)

    @field_validator("score")
    @classmethod
    def half_steps(cls, v: float) -> float:
        if (v * 2) != int(v * 2):
            raise ValueError("Score must be in steps of 0.5")
        return v
