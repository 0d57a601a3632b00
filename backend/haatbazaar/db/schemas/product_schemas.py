# haatbazaar/db/schemas/product_schemas.py
from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field
from .common_schemas import MongoDocument, PyObjectId, RequestModel, utcnow


class ProductStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ImageMetadata(BaseModel):
    upload_date: datetime = Field(default_factory=utcnow)
    photo_date: Optional[datetime] = None
    is_validated: bool = False


class ProductDoc(MongoDocument):
    farmer: PyObjectId
    title: str
    description: Optional[str] = None
    category: str
    quantity: float = Field(..., ge=0)
    unit: str = "kg"
    price: float = Field(..., ge=0)
    freshness: Optional[int] = Field(None, ge=0, description="Days since harvest")
    image_url: Optional[str] = None
    image_metadata: ImageMetadata = Field(default_factory=ImageMetadata)
    haat_event: Optional[PyObjectId] = None
    status: ProductStatus = ProductStatus.PENDING
    approved: bool = False


class ProductCreate(RequestModel):
    title: str = Field(..., min_length=1, max_length=150)
    description: Optional[str] = Field(None, max_length=2000)
    category: str = Field(..., min_length=1, max_length=60)
    quantity: float = Field(..., ge=0)
    unit: str = Field("kg", max_length=20)
    price: float = Field(..., ge=0)
    freshness: Optional[int] = Field(None, ge=0)
    image_url: Optional[str] = None
    photo_taken_at: Optional[datetime] = None
    haat_event_id: Optional[PyObjectId] = None


class ProductUpdate(RequestModel):
    title: Optional[str] = Field(None, min_length=1, max_length=150)
    description: Optional[str] = Field(None, max_length=2000)
    category: Optional[str] = Field(None, min_length=1, max_length=60)
    quantity: Optional[float] = Field(None, ge=0)
    unit: Optional[str] = Field(None, max_length=20)
    price: Optional[float] = Field(None, ge=0)
    freshness: Optional[int] = Field(None, ge=0)
    image_url: Optional[str] = None
    haat_event_id: Optional[PyObjectId] = None


class ProductStatusUpdate(RequestModel):
    status: ProductStatus
