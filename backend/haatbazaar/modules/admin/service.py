# haatbazaar/modules/admin/service.py
from typing import Any, Dict, List, Optional
from fastapi import Depends

from haatbazaar.core.logging_setup import logger
from haatbazaar.db.schemas.group_sale_schemas import GroupSaleStatus
from haatbazaar.db.schemas.haat_event_schemas import HaatEventStatus
from haatbazaar.db.schemas.negotiation_schemas import NegotiationDoc
from haatbazaar.db.schemas.order_schemas import OrderStatus
from haatbazaar.db.schemas.product_schemas import ProductStatus
from haatbazaar.db.schemas.user_schemas import UserDoc, UserRole
from haatbazaar.modules.admin.exceptions import CannotDeleteSelfError, NotAFarmerError
from haatbazaar.modules.group_sales.repository import GroupSaleRepository
from haatbazaar.modules.haat_events.repository import HaatEventRepository
from haatbazaar.modules.negotiations.repository import NegotiationRepository
from haatbazaar.modules.orders.repository import OrderRepository
from haatbazaar.modules.products.repository import ProductRepository
from haatbazaar.modules.users.exceptions import UserNotFoundError
from haatbazaar.modules.users.repository import UserRepository
from haatbazaar.services.audit_service import audit_service


class AdminService:
    """Farmer approval, user management, dashboards and moderation views."""

    def __init__(
        self,
        user_repo: UserRepository = Depends(),
        product_repo: ProductRepository = Depends(),
        order_repo: OrderRepository = Depends(),
        sale_repo: GroupSaleRepository = Depends(),
        event_repo: HaatEventRepository = Depends(),
        negotiation_repo: NegotiationRepository = Depends(),
    ):
        self.user_repo = user_repo
        self.product_repo = product_repo
        self.order_repo = order_repo
        self.sale_repo = sale_repo
        self.event_repo = event_repo
        self.negotiation_repo = negotiation_repo

    async def pending_farmers(self) -> List[UserDoc]:
        return await self.user_repo.list_users(role=UserRole.FARMER, approved=False, limit=0)

    async def set_farmer_approval(self, admin: UserDoc, user_id: str, approved: bool) -> UserDoc:
        user = await self.user_repo.get_by_id(user_id)
        if not user:
            raise UserNotFoundError(user_id)
        if user.role != UserRole.FARMER:
            raise NotAFarmerError(user_id)
        updated = await self.user_repo.update_by_id(user_id, {"$set": {"approved": approved}})
        if not updated:
            raise UserNotFoundError(user_id)
        action = "farmer_approve" if approved else "farmer_reject"
        logger.bind(admin_id=admin.id, user_id=user_id).success(f"{action} applied.")
        await audit_service.log_event(actor_id=admin.id, action=action, entity_type="user", entity_id=user_id)
        return updated

    async def list_users(self, role: Optional[UserRole] = None, approved: Optional[bool] = None) -> List[UserDoc]:
        return await self.user_repo.list_users(role=role, approved=approved, limit=0)

    async def delete_user(self, admin: UserDoc, user_id: str):
        if user_id == admin.id:
            raise CannotDeleteSelfError()
        if not await self.user_repo.delete_by_id(user_id):
            raise UserNotFoundError(user_id)
        logger.bind(admin_id=admin.id, user_id=user_id).warning("User deleted by admin.")
        await audit_service.log_event(actor_id=admin.id, action="user_delete", entity_type="user", entity_id=user_id)

    async def dashboard_stats(self) -> Dict[str, Any]:
        users, products, orders = self.user_repo, self.product_repo, self.order_repo
        farmer = UserRole.FARMER.value
        return {
            "users": {
                "total": await users.count({}),
                "farmers": {
                    "total": await users.count({"role": farmer}),
                    "approved": await users.count({"role": farmer, "approved": True}),
                    "pending": await users.count({"role": farmer, "approved": False}),
                },
                "buyers": await users.count({"role": UserRole.BUYER.value}),
            },
            "products": {
                "total": await products.count({}),
                "approved": await products.count({"approved": True}),
                "pending": await products.count({"status": ProductStatus.PENDING.value}),
                "rejected": await products.count({"status": ProductStatus.REJECTED.value}),
            },
            "orders": {
                "total": await orders.count({}),
                "completed": await orders.count({"status": OrderStatus.DELIVERED.value}),
                "pending": await orders.count({"status": OrderStatus.PLACED.value}),
            },
            "group_sales": {
                "total": await self.sale_repo.count({}),
                "active": await self.sale_repo.count({"status": GroupSaleStatus.OPEN.value}),
            },
            "haat_events": {
                "total": await self.event_repo.count({}),
                "upcoming": await self.event_repo.count({"status": HaatEventStatus.UPCOMING.value}),
                "active": await self.event_repo.count({"status": HaatEventStatus.ACTIVE.value}),
            },
        }

    async def revenue_report(self) -> Dict[str, Any]:
        """Delivered order revenue, grouped by farmer."""
        orders = await self.order_repo.list_delivered()
        farmers = {u.id: u for u in await self.user_repo.find_many({"role": UserRole.FARMER.value})}
        by_farmer: Dict[str, Dict[str, Any]] = {}
        for order in orders:
            row = by_farmer.setdefault(order.farmer, {
                "farmer_id": order.farmer,
                "name": farmers[order.farmer].name if order.farmer in farmers else None,
                "amount": 0.0,
                "orders": 0,
            })
            row["amount"] = round(row["amount"] + order.total_amount, 2)
            row["orders"] += 1
        return {
            "total_revenue": round(sum(o.total_amount for o in orders), 2),
            "by_farmer": sorted(by_farmer.values(), key=lambda r: r["amount"], reverse=True),
            "total_orders": len(orders),
        }

    async def active_negotiations(self) -> List[NegotiationDoc]:
        return await self.negotiation_repo.list_active()
