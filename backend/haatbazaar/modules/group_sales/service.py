# haatbazaar/modules/group_sales/service.py
from typing import Dict, FrozenSet, List, Optional
from fastapi import Depends

from haatbazaar.core.logging_setup import logger
from haatbazaar.db.schemas.common_schemas import as_utc, utcnow
from haatbazaar.db.schemas.group_sale_schemas import GroupSaleCreate, GroupSaleDoc, GroupSaleStatus
from haatbazaar.db.schemas.notification_schemas import NotificationType
from haatbazaar.db.schemas.user_schemas import UserDoc
from haatbazaar.modules.group_sales.exceptions import (
    AlreadyJoinedError, CapacityExceededError, DeadlinePassedError, GroupSaleNotFoundError,
    GroupSaleNotOpenError, GroupSalePermissionError, InvalidDeadlineError, InvalidGroupSaleTransitionError,
)
from haatbazaar.modules.group_sales.repository import GroupSaleRepository
from haatbazaar.modules.haat_events.exceptions import HaatEventNotFoundError
from haatbazaar.modules.haat_events.repository import HaatEventRepository
from haatbazaar.modules.notifications.service import NotificationService
from haatbazaar.modules.products.exceptions import ProductNotFoundError
from haatbazaar.modules.products.repository import ProductRepository
from haatbazaar.services.audit_service import audit_service

GROUP_SALE_TRANSITIONS: Dict[GroupSaleStatus, FrozenSet[GroupSaleStatus]] = {
    GroupSaleStatus.OPEN: frozenset({GroupSaleStatus.CLOSED, GroupSaleStatus.CANCELLED}),
    GroupSaleStatus.CLOSED: frozenset({GroupSaleStatus.COMPLETED, GroupSaleStatus.CANCELLED, GroupSaleStatus.OPEN}),
    GroupSaleStatus.COMPLETED: frozenset(),
    GroupSaleStatus.CANCELLED: frozenset(),
}

# Guarded join retries when a concurrent join changed the committed total
MAX_JOIN_ATTEMPTS = 3


class GroupSaleService:
    """Capacity-bounded group buying on a farmer's product."""

    def __init__(
        self,
        sale_repo: GroupSaleRepository = Depends(),
        product_repo: ProductRepository = Depends(),
        event_repo: HaatEventRepository = Depends(),
        notifier: NotificationService = Depends(),
    ):
        self.sale_repo = sale_repo
        self.product_repo = product_repo
        self.event_repo = event_repo
        self.notifier = notifier

    async def get_group_sale(self, sale_id: str) -> GroupSaleDoc:
        sale = await self.sale_repo.get_by_id(sale_id)
        if not sale:
            raise GroupSaleNotFoundError(sale_id)
        return sale

    async def list_group_sales(
        self,
        status: Optional[GroupSaleStatus] = GroupSaleStatus.OPEN,
        haat_event_id: Optional[str] = None,
    ) -> List[GroupSaleDoc]:
        return await self.sale_repo.list_sales(status=status, haat_event_id=haat_event_id)

    async def create_group_sale(self, user: UserDoc, data: GroupSaleCreate) -> GroupSaleDoc:
        log = logger.bind(user_id=user.id, product_id=data.product_id)
        product = await self.product_repo.get_by_id(data.product_id)
        if not product:
            raise ProductNotFoundError(data.product_id)
        if product.farmer != user.id and not user.is_admin:
            raise GroupSalePermissionError(data.product_id)
        if as_utc(data.deadline) <= utcnow():
            raise InvalidDeadlineError()
        if data.haat_event_id and not await self.event_repo.get_by_id(data.haat_event_id):
            raise HaatEventNotFoundError(data.haat_event_id)

        sale = await self.sale_repo.insert({
            "product": product.id,
            "farmer": product.farmer,
            "haat_event": data.haat_event_id,
            "required_quantity": data.required_quantity,
            "price_per_unit": data.price_per_unit,
            "deadline": data.deadline,
            "participants": [],
            "total_quantity_sold": 0,
            "status": GroupSaleStatus.OPEN.value,
        })
        log.success(f"Group sale created: {sale.id}")
        return sale

    def _check_joinable(self, sale: GroupSaleDoc, buyer_id: str, quantity: float):
        if sale.status != GroupSaleStatus.OPEN:
            raise GroupSaleNotOpenError(sale.id, sale.status.value)
        if sale.has_participant(buyer_id):
            raise AlreadyJoinedError(sale.id, buyer_id)
        if utcnow() > as_utc(sale.deadline):
            raise DeadlinePassedError(sale.id)
        if sale.committed_quantity + quantity > sale.required_quantity:
            raise CapacityExceededError(sale.id, sale.remaining_quantity)

    async def join_group_sale(self, buyer: UserDoc, sale_id: str, quantity: float) -> GroupSaleDoc:
        log = logger.bind(group_sale_id=sale_id, buyer_id=buyer.id, quantity=quantity)
        for _ in range(MAX_JOIN_ATTEMPTS):
            sale = await self.get_group_sale(sale_id)
            self._check_joinable(sale, buyer.id, quantity)

            new_total = sale.committed_quantity + quantity
            new_status = GroupSaleStatus.CLOSED if new_total >= sale.required_quantity else GroupSaleStatus.OPEN
            updated = await self.sale_repo.add_participant(
                sale_id,
                {"buyer": buyer.id, "quantity": quantity, "joined_at": utcnow()},
                expected_total=sale.total_quantity_sold,
                new_total=new_total,
                new_status=new_status,
            )
            if updated:
                break
            log.debug("Group sale changed during join; re-reading.")
        else:
            raise GroupSaleNotOpenError(sale_id, "busy")

        log.success(f"Buyer joined group sale ({updated.total_quantity_sold:g}/{updated.required_quantity:g}).")
        if updated.status == GroupSaleStatus.CLOSED:
            log.info("Group sale reached its required quantity and closed.")
        await self.notifier.notify(
            updated.farmer,
            NotificationType.GROUP_SALE_INVITE,
            "New Group Sale Participant",
            f"{buyer.name} joined your group sale with {quantity:g} units "
            f"({updated.total_quantity_sold:g}/{updated.required_quantity:g} committed).",
            sender_id=buyer.id,
            related={"group_sale_id": updated.id, "product_id": updated.product},
        )
        return updated

    async def update_status(self, user: UserDoc, sale_id: str, status: GroupSaleStatus) -> GroupSaleDoc:
        sale = await self.get_group_sale(sale_id)
        if sale.farmer != user.id and not user.is_admin:
            raise GroupSalePermissionError(sale_id)
        if status not in GROUP_SALE_TRANSITIONS[sale.status]:
            raise InvalidGroupSaleTransitionError(sale.status.value, status.value)
        if status == GroupSaleStatus.OPEN and sale.committed_quantity >= sale.required_quantity:
            raise InvalidGroupSaleTransitionError(sale.status.value, status.value, "required quantity already reached")

        updated = await self.sale_repo.set_status(sale_id, status, expected=sale.status)
        if not updated:
            current = await self.get_group_sale(sale_id)
            raise InvalidGroupSaleTransitionError(current.status.value, status.value)
        logger.bind(group_sale_id=sale_id, user_id=user.id).success(f"Group sale {sale.status.value} -> {status.value}")
        await audit_service.log_event(
            actor_id=user.id, action="group_sale_status", entity_type="group_sale", entity_id=sale_id,
            details={"from": sale.status.value, "to": status.value},
        )
        return updated
