# haatbazaar/modules/products/service.py
import math
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
from fastapi import Depends

from haatbazaar.core.config import settings
from haatbazaar.core.logging_setup import logger
from haatbazaar.db.schemas.common_schemas import GeoPoint, as_utc, utcnow
from haatbazaar.db.schemas.group_sale_schemas import GroupSaleStatus
from haatbazaar.db.schemas.notification_schemas import NotificationType
from haatbazaar.db.schemas.product_schemas import ProductCreate, ProductDoc, ProductStatus, ProductUpdate
from haatbazaar.db.schemas.user_schemas import UserDoc, UserRole
from haatbazaar.modules.group_sales.repository import GroupSaleRepository
from haatbazaar.modules.haat_events.exceptions import HaatEventNotFoundError
from haatbazaar.modules.haat_events.repository import HaatEventRepository
from haatbazaar.modules.notifications.service import NotificationService
from haatbazaar.modules.products.exceptions import (
    BuyerLocationRequiredError, FarmerNotApprovedForListingError, InvalidProductStatusError,
    ProductNotFoundError, ProductPermissionError,
)
from haatbazaar.modules.products.repository import ProductRepository
from haatbazaar.modules.users.repository import UserRepository
from haatbazaar.services.audit_service import audit_service
from haatbazaar.utils.bulk import meets_threshold, to_kilograms
from haatbazaar.utils.geo import haversine_km


def photo_is_fresh(photo_date: Optional[datetime], upload_date: datetime, hours: int) -> bool:
    """A listing photo counts as fresh when it was taken within `hours` of the upload."""
    if photo_date is None:
        return False
    return abs(as_utc(upload_date) - as_utc(photo_date)) <= timedelta(hours=hours)


def _round2(value: Optional[float]) -> Optional[float]:
    return None if value is None else round(value, 2)


def _page_bounds(total: int, page: int, limit: int) -> Tuple[int, int, int]:
    total_pages = 1 if total == 0 else math.ceil(total / limit)
    start = (page - 1) * limit
    return start, start + limit, total_pages


class ProductService:
    """Product catalogue: listing, moderation, location-aware and bulk-buy discovery."""

    def __init__(
        self,
        product_repo: ProductRepository = Depends(),
        user_repo: UserRepository = Depends(),
        event_repo: HaatEventRepository = Depends(),
        group_sale_repo: GroupSaleRepository = Depends(),
        notifier: NotificationService = Depends(),
    ):
        self.product_repo = product_repo
        self.user_repo = user_repo
        self.event_repo = event_repo
        self.group_sale_repo = group_sale_repo
        self.notifier = notifier

    async def get_product(self, product_id: str) -> ProductDoc:
        product = await self.product_repo.get_by_id(product_id)
        if not product:
            raise ProductNotFoundError(product_id)
        return product

    async def _get_owned(self, user: UserDoc, product_id: str) -> ProductDoc:
        product = await self.get_product(product_id)
        if product.farmer != user.id and not user.is_admin:
            raise ProductPermissionError(product_id)
        return product

    async def create_product(self, user: UserDoc, data: ProductCreate) -> ProductDoc:
        log = logger.bind(user_id=user.id, title=data.title)
        if user.role == UserRole.FARMER and not user.approved:
            raise FarmerNotApprovedForListingError(user.id)
        if data.haat_event_id and not await self.event_repo.get_by_id(data.haat_event_id):
            raise HaatEventNotFoundError(data.haat_event_id)

        upload_date = utcnow()
        is_validated = photo_is_fresh(data.photo_taken_at, upload_date, settings.PRODUCT_AUTO_APPROVE_HOURS)
        status = ProductStatus.APPROVED if is_validated else ProductStatus.PENDING
        product = await self.product_repo.insert({
            "farmer": user.id,
            "title": data.title.strip(),
            "description": data.description,
            "category": data.category.strip(),
            "quantity": data.quantity,
            "unit": data.unit,
            "price": data.price,
            "freshness": data.freshness,
            "image_url": data.image_url,
            "image_metadata": {"upload_date": upload_date, "photo_date": data.photo_taken_at, "is_validated": is_validated},
            "haat_event": data.haat_event_id,
            "status": status.value,
            "approved": is_validated,
        })
        log.success(f"Product {product.id} created with status {status.value}.")
        return product

    async def list_products(
        self,
        category: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        search: Optional[str] = None,
        haat_event_id: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        items, total = await self.product_repo.list_approved(
            category=category, min_price=min_price, max_price=max_price, search=search,
            haat_event_id=haat_event_id, skip=(page - 1) * limit, limit=limit,
        )
        return {"products": items, "total": total, "page": page, "pages": max(math.ceil(total / limit), 1)}

    async def list_for_farmer(self, farmer_id: str) -> List[ProductDoc]:
        return await self.product_repo.list_by_farmer(farmer_id)

    async def update_product(self, user: UserDoc, product_id: str, data: ProductUpdate) -> ProductDoc:
        await self._get_owned(user, product_id)
        changes = data.model_dump(exclude_unset=True)
        if "haat_event_id" in changes:
            event_id = changes.pop("haat_event_id")
            if event_id and not await self.event_repo.get_by_id(event_id):
                raise HaatEventNotFoundError(event_id)
            changes["haat_event"] = event_id
        if not changes:
            return await self.get_product(product_id)
        updated = await self.product_repo.update_by_id(product_id, {"$set": changes})
        if not updated:
            raise ProductNotFoundError(product_id)
        logger.bind(product_id=product_id, user_id=user.id).info(f"Product updated: {sorted(changes)}")
        return updated

    async def delete_product(self, user: UserDoc, product_id: str):
        await self._get_owned(user, product_id)
        if not await self.product_repo.delete_by_id(product_id):
            raise ProductNotFoundError(product_id)
        logger.bind(product_id=product_id, user_id=user.id).info("Product deleted.")

    # --- Moderation ---

    async def list_pending(self) -> List[ProductDoc]:
        return await self.product_repo.list_pending()

    async def update_status(self, admin: UserDoc, product_id: str, status: ProductStatus) -> ProductDoc:
        if status == ProductStatus.PENDING:
            raise InvalidProductStatusError(status.value)
        updated = await self.product_repo.update_by_id(
            product_id, {"$set": {"status": status.value, "approved": status == ProductStatus.APPROVED}},
        )
        if not updated:
            raise ProductNotFoundError(product_id)
        await self.notifier.notify(
            updated.farmer,
            NotificationType.PRODUCT_STATUS,
            f"Product {status.value}",
            f'Your product "{updated.title}" has been {status.value} by admin.',
            sender_id=admin.id,
            related={"product_id": updated.id},
        )
        await audit_service.log_event(actor_id=admin.id, action=f"product_{status.value}", entity_type="product", entity_id=product_id)
        return updated

    # --- Discovery ---

    async def smart_products(
        self,
        user: UserDoc,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        """Approved products ordered by proximity: nearby haat events, then nearby farmers, then the rest."""
        if latitude is not None and longitude is not None:
            origin = GeoPoint(latitude=latitude, longitude=longitude)
        elif user.location is not None:
            origin = user.location
        else:
            raise BuyerLocationRequiredError()

        products = await self.product_repo.list_all_approved(search=search)
        events = await self.event_repo.get_many([p.haat_event for p in products if p.haat_event])
        farmers = {f.id: f for f in await self.user_repo.find_many({"role": UserRole.FARMER.value})}
        nearby = settings.NEARBY_DISTANCE_KM

        ranked = []
        for product in products:
            event = events.get(product.haat_event) if product.haat_event else None
            farmer = farmers.get(product.farmer)
            event_distance = (
                haversine_km(origin.latitude, origin.longitude, event.location.latitude, event.location.longitude)
                if event else None
            )
            farmer_distance = (
                haversine_km(origin.latitude, origin.longitude, farmer.location.latitude, farmer.location.longitude)
                if farmer and farmer.location else None
            )
            if event_distance is not None and event_distance <= nearby:
                priority = 1
            elif farmer_distance is not None and farmer_distance <= nearby:
                priority = 2
            else:
                priority = 3
            sort_distance = event_distance if event_distance is not None else farmer_distance
            ranked.append((priority, sort_distance if sort_distance is not None else math.inf, {
                **product.to_api(),
                "event_distance": _round2(event_distance),
                "farmer_distance": _round2(farmer_distance),
                "sort_priority": priority,
            }))
        ranked.sort(key=lambda item: (item[0], item[1]))
        start, end, _ = _page_bounds(len(ranked), page, limit)
        return {
            "total": len(ranked),
            "page": page,
            "limit": limit,
            "products": [item[2] for item in ranked[start:end]],
        }

    async def bulk_buy_products(
        self,
        threshold_kg: Optional[float] = None,
        inclusive: bool = False,
        page: int = 1,
        limit: int = 10,
    ) -> Dict[str, Any]:
        """High-stock listings plus open group sales, paginated together."""
        threshold = settings.BULK_BUY_THRESHOLD_KG if threshold_kg is None or threshold_kg < 0 else threshold_kg
        limit = min(max(limit, 1), 50)
        page = max(page, 1)

        entries: List[Dict[str, Any]] = []
        for product in await self.product_repo.list_all_approved(in_stock_only=True):
            quantity_kg = to_kilograms(product.quantity, product.unit)
            if not meets_threshold(quantity_kg, threshold, inclusive):
                continue
            entries.append({
                **product.to_api(),
                "quantity_in_kg": round(quantity_kg, 2),
                "bulk_buy_type": "high_quantity",
                "bulk_buy_reason": f"{round(quantity_kg, 2)}kg available",
            })

        sales = await self.group_sale_repo.list_sales(status=GroupSaleStatus.OPEN)
        sale_products = await self.product_repo.get_many([s.product for s in sales])
        for sale in sales:
            product = sale_products.get(sale.product)
            if product is None:
                continue
            committed, required = sale.total_quantity_sold, sale.required_quantity
            entries.append({
                **product.to_api(),
                "farmer": sale.farmer,
                "bulk_buy_type": "group_sale",
                "bulk_buy_reason": f"Group sale: {committed:g}/{required:g}kg committed",
                "group_sale_id": sale.id,
                "group_sale_deadline": sale.deadline.isoformat(),
                "group_sale_price": sale.price_per_unit,
                "original_price": product.price,
                "group_sale_required_quantity": required,
                "group_sale_sold_quantity": committed,
                "group_sale_remaining_quantity": round(max(required - committed, 0), 2),
            })

        total = len(entries)
        start, end, total_pages = _page_bounds(total, page, limit)
        return {
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": total_pages,
            "has_next_page": page < total_pages,
            "threshold_kg": threshold,
            "inclusive": inclusive,
            "products": entries[start:end],
        }
