# haatbazaar/db/schemas/expense_schemas.py
from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import Field
from .common_schemas import MongoDocument, PyObjectId, RequestModel, utcnow


class ExpenseCategory(str, Enum):
    SEEDS = "seeds"
    FERTILIZER = "fertilizer"
    PESTICIDE = "pesticide"
    PESTICIDES = "pesticides"
    IRRIGATION = "irrigation"
    LABOR = "labor"
    EQUIPMENT = "equipment"
    WATER = "water"
    LAND_RENT = "land_rent"
    TRANSPORTATION = "transportation"
    OTHER = "other"


class ExpenseProjectDoc(MongoDocument):
    farmer: PyObjectId
    name: str = Field(..., max_length=120)
    description: Optional[str] = Field(None, max_length=500)


class ExpenseDoc(MongoDocument):
    farmer: PyObjectId
    project: Optional[PyObjectId] = None
    category: ExpenseCategory = ExpenseCategory.OTHER
    title: Optional[str] = None
    description: Optional[str] = None
    amount: float = Field(..., ge=0)
    quantity: Optional[float] = None
    unit: Optional[str] = None
    date: datetime = Field(default_factory=utcnow)
    related_product: Optional[PyObjectId] = None
    notes: Optional[str] = None


class ExpenseProjectCreate(RequestModel):
    name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = Field(None, max_length=500)


class ExpenseProjectUpdate(RequestModel):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    description: Optional[str] = Field(None, max_length=500)


class ExpenseCreate(RequestModel):
    project_id: Optional[PyObjectId] = None
    category: ExpenseCategory = ExpenseCategory.OTHER
    title: Optional[str] = Field(None, max_length=150)
    description: Optional[str] = Field(None, max_length=500)
    amount: float = Field(..., ge=0)
    quantity: Optional[float] = Field(None, ge=0)
    unit: Optional[str] = Field(None, max_length=20)
    date: Optional[datetime] = None
    related_product: Optional[PyObjectId] = None
    notes: Optional[str] = Field(None, max_length=1000)


class ExpenseUpdate(RequestModel):
    project_id: Optional[PyObjectId] = None
    category: Optional[ExpenseCategory] = None
    title: Optional[str] = Field(None, max_length=150)
    description: Optional[str] = Field(None, max_length=500)
    amount: Optional[float] = Field(None, ge=0)
    quantity: Optional[float] = Field(None, ge=0)
    unit: Optional[str] = Field(None, max_length=20)
    date: Optional[datetime] = None
    related_product: Optional[PyObjectId] = None
    notes: Optional[str] = Field(None, max_length=1000)
