# haatbazaar/modules/products/repository.py
import re
from typing import Any, Dict, List, Optional, Tuple
from pymongo import ReturnDocument

from haatbazaar.core.exceptions import RepositoryError
from haatbazaar.core.logging_setup import logger
from haatbazaar.db.repository import MongoRepository, to_object_id
from haatbazaar.db.schemas.common_schemas import utcnow
from haatbazaar.db.schemas.product_schemas import ProductDoc, ProductStatus

APPROVED_FILTER = {"approved": True, "status": ProductStatus.APPROVED.value}


class ProductRepository(MongoRepository[ProductDoc]):
    """Repository for product listings and stock quantities."""
    collection_name = "products"
    document_model = ProductDoc

    async def list_approved(
        self,
        category: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        search: Optional[str] = None,
        haat_event_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[ProductDoc], int]:
        query: Dict[str, Any] = dict(APPROVED_FILTER)
        if category: query["category"] = category
        price: Dict[str, float] = {}
        if min_price is not None: price["$gte"] = min_price
        if max_price is not None: price["$lte"] = max_price
        if price: query["price"] = price
        if search: query["title"] = {"$regex": re.escape(search), "$options": "i"}
        if haat_event_id: query["haat_event"] = haat_event_id
        items = await self.find_many(query, sort=[("created_at", -1)], skip=skip, limit=limit)
        return items, await self.count(query)

    async def list_all_approved(self, search: Optional[str] = None, in_stock_only: bool = False) -> List[ProductDoc]:
        query: Dict[str, Any] = dict(APPROVED_FILTER)
        if search: query["title"] = {"$regex": re.escape(search), "$options": "i"}
        if in_stock_only: query["quantity"] = {"$gt": 0}
        return await self.find_many(query, sort=[("created_at", -1)])

    async def list_by_farmer(self, farmer_id: str) -> List[ProductDoc]:
        return await self.find_many({"farmer": farmer_id}, sort=[("created_at", -1)])

    async def list_pending(self) -> List[ProductDoc]:
        return await self.find_many({"status": ProductStatus.PENDING.value}, sort=[("created_at", 1)])

    async def get_many(self, product_ids: List[str]) -> Dict[str, ProductDoc]:
        oids = [oid for oid in (to_object_id(pid) for pid in product_ids) if oid is not None]
        products = await self.find_many({"_id": {"$in": oids}})
        return {p.id: p for p in products}

    async def decrement_quantity(self, product_id: str, quantity: float) -> Optional[ProductDoc]:
        """Takes `quantity` off stock only if enough remains. Returns None when it does not."""
        log = logger.bind(collection="products", product_id=product_id, quantity=quantity)
        oid = to_object_id(product_id)
        if oid is None:
            return None
        try:
            doc = await self._collection.find_one_and_update(
                {"_id": oid, "quantity": {"$gte": quantity}},
                {"$inc": {"quantity": -quantity}, "$set": {"updated_at": utcnow()}},
                return_document=ReturnDocument.AFTER,
            )
            return await self._map_doc(doc)
        except Exception as e:
            log.exception("Database error decrementing product quantity.")
            raise RepositoryError(f"Error decrementing product quantity: {e}") from e

    async def increment_quantity(self, product_id: str, quantity: float) -> Optional[ProductDoc]:
        return await self.update_by_id(product_id, {"$inc": {"quantity": quantity}})
