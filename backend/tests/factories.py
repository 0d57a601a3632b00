# tests/factories.py
# Seed helpers; plain coroutines called from async tests.
from datetime import timedelta
from typing import Any, Dict, Optional

from haatbazaar.db.schemas.common_schemas import utcnow
from haatbazaar.db.schemas.product_schemas import ProductDoc, ProductStatus
from haatbazaar.db.schemas.user_schemas import UserDoc, UserRole
from haatbazaar.modules.products.repository import ProductRepository
from haatbazaar.modules.users.repository import UserRepository

_phone_counter = iter(range(9800000000, 9899999999))


async def make_user(
    user_repo: UserRepository,
    role: UserRole = UserRole.BUYER,
    name: Optional[str] = None,
    **fields: Any,
) -> UserDoc:
    data: Dict[str, Any] = {
        "name": name or f"{role.value.title()} User",
        "phone": str(next(_phone_counter)),
        "hashed_password": "not-a-real-hash",
        "role": role.value,
        "approved": True,
    }
    data.update(fields)
    return await user_repo.insert(data)


async def make_product(
    product_repo: ProductRepository,
    farmer: UserDoc,
    quantity: float = 10,
    price: float = 100,
    title: str = "Tomatoes",
    **fields: Any,
) -> ProductDoc:
    data: Dict[str, Any] = {
        "farmer": farmer.id,
        "title": title,
        "category": "vegetables",
        "quantity": quantity,
        "unit": "kg",
        "price": price,
        "status": ProductStatus.APPROVED.value,
        "approved": True,
        "image_metadata": {"upload_date": utcnow(), "photo_date": None, "is_validated": False},
    }
    data.update(fields)
    return await product_repo.insert(data)


def hours_from_now(hours: float):
    return utcnow() + timedelta(hours=hours)
