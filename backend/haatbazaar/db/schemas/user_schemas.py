# haatbazaar/db/schemas/user_schemas.py
# User records for authentication, role checks and profile data

from enum import Enum
from typing import Optional
from pydantic import Field, field_validator, model_validator
from .common_schemas import MongoDocument, RequestModel, GeoPoint


class UserRole(str, Enum):
    BUYER = "buyer"
    FARMER = "farmer"
    ADMIN = "admin"


class UserDoc(MongoDocument):
    """Internal representation of a user, including the password hash."""
    name: str
    phone: str
    hashed_password: str
    role: UserRole = UserRole.BUYER
    address: Optional[str] = None
    profile_pic: Optional[str] = None
    approved: bool = True
    location: Optional[GeoPoint] = None
    expo_push_token: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def public(self) -> dict:
        return self.to_api(exclude={"hashed_password", "expo_push_token"})


class UserRegister(RequestModel):
    name: str = Field(..., min_length=1, max_length=100)
    phone: str = Field(..., min_length=7, max_length=20)
    password: str = Field(..., min_length=6, max_length=128)
    role: UserRole = UserRole.BUYER
    address: Optional[str] = Field(None, max_length=300)
    profile_pic: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)

    @field_validator("phone")
    @classmethod
    def phone_digits(cls, v: str) -> str:
        v = v.strip()
        if not v.lstrip("+").isdigit():
            raise ValueError("Phone number must contain digits only.")
        return v

    @model_validator(mode="after")
    def farmer_needs_address(self) -> "UserRegister":
        if self.role == UserRole.FARMER and not (self.address and self.address.strip()):
            raise ValueError("Address is required for farmers.")
        return self


class UserLogin(RequestModel):
    phone: str
    password: str
