# haatbazaar/modules/negotiations/service.py
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from fastapi import Depends

from haatbazaar.core.config import settings
from haatbazaar.core.logging_setup import logger
from haatbazaar.db.repository import DuplicateRecordError
from haatbazaar.db.schemas.common_schemas import as_utc, utcnow
from haatbazaar.db.schemas.negotiation_schemas import (
    NegotiationAction, NegotiationCreate, NegotiationDoc, NegotiationRespond, NegotiationStatus,
)
from haatbazaar.db.schemas.notification_schemas import NotificationType
from haatbazaar.db.schemas.user_schemas import UserDoc
from haatbazaar.modules.negotiations.exceptions import (
    CounterOfferIncompleteError, NegotiationClosedError, NegotiationNotFoundError,
    NegotiationPermissionError, SelfNegotiationError,
)
from haatbazaar.modules.negotiations.repository import NegotiationRepository
from haatbazaar.modules.notifications.service import NotificationService
from haatbazaar.modules.products.exceptions import ProductNotFoundError
from haatbazaar.modules.products.repository import ProductRepository
from haatbazaar.services.audit_service import audit_service


def next_expiry(now: Optional[datetime] = None) -> datetime:
    return (now or utcnow()) + timedelta(hours=settings.NEGOTIATION_TTL_HOURS)


def is_expired(negotiation: NegotiationDoc, now: Optional[datetime] = None) -> bool:
    if negotiation.expires_at is None:
        return False
    return as_utc(negotiation.expires_at) <= (now or utcnow())


class NegotiationService:
    """Buyer/farmer offer exchange over a single product."""

    def __init__(
        self,
        negotiation_repo: NegotiationRepository = Depends(),
        product_repo: ProductRepository = Depends(),
        notifier: NotificationService = Depends(),
    ):
        self.negotiation_repo = negotiation_repo
        self.product_repo = product_repo
        self.notifier = notifier

    async def get_negotiation(self, negotiation_id: str, user: UserDoc) -> NegotiationDoc:
        negotiation = await self.negotiation_repo.get_by_id(negotiation_id)
        if not negotiation:
            raise NegotiationNotFoundError(negotiation_id)
        if not user.is_admin and not negotiation.involves(user.id):
            raise NegotiationPermissionError(negotiation_id)
        return negotiation

    async def list_negotiations(
        self,
        user: UserDoc,
        status: Optional[NegotiationStatus] = None,
        product_id: Optional[str] = None,
    ) -> List[NegotiationDoc]:
        return await self.negotiation_repo.list_for_user(user.id, status=status, product_id=product_id)

    async def create_negotiation(self, buyer: UserDoc, data: NegotiationCreate) -> NegotiationDoc:
        """Places a buyer offer, opening a negotiation or extending the active one."""
        log = logger.bind(buyer_id=buyer.id, product_id=data.product_id)
        product = await self.product_repo.get_by_id(data.product_id)
        if not product:
            raise ProductNotFoundError(data.product_id)
        if product.farmer == buyer.id:
            raise SelfNegotiationError()

        now = utcnow()
        offer = {"offered_by": buyer.id, "price": data.price, "quantity": data.quantity,
                 "message": data.message, "timestamp": now}

        negotiation = await self._append_to_active(data.product_id, buyer.id, offer, now)
        if negotiation is None:
            try:
                negotiation = await self.negotiation_repo.insert({
                    "product": product.id,
                    "buyer": buyer.id,
                    "farmer": product.farmer,
                    "offers": [offer],
                    "status": NegotiationStatus.ACTIVE.value,
                    "expires_at": next_expiry(now),
                })
                log.success(f"Negotiation opened: {negotiation.id}")
            except DuplicateRecordError:
                # Another request opened it first; the unique index keeps one active ledger
                negotiation = await self._append_to_active(data.product_id, buyer.id, offer, now)
                if negotiation is None:
                    raise
        else:
            log.info(f"Offer appended to negotiation {negotiation.id} ({len(negotiation.offers)} offers).")

        await self.notifier.notify(
            negotiation.farmer, NotificationType.NEGOTIATION, "New Offer",
            f'{buyer.name} offered Rs. {data.price:g} for {data.quantity:g} {product.unit} of "{product.title}".',
            sender_id=buyer.id, related={"negotiation_id": negotiation.id, "product_id": product.id},
        )
        return negotiation

    async def _append_to_active(self, product_id: str, buyer_id: str, offer: Dict[str, Any], now: datetime) -> Optional[NegotiationDoc]:
        active = await self.negotiation_repo.find_active(product_id, buyer_id)
        if active is None:
            return None
        if is_expired(active, now):
            await self.negotiation_repo.close(active.id, {"status": NegotiationStatus.EXPIRED.value})
            return None
        return await self.negotiation_repo.append_offer(active.id, offer, next_expiry(now))

    async def respond_to_negotiation(self, negotiation_id: str, actor: UserDoc, data: NegotiationRespond) -> NegotiationDoc:
        log = logger.bind(negotiation_id=negotiation_id, actor_id=actor.id, action=data.action.value)
        negotiation = await self.negotiation_repo.get_by_id(negotiation_id)
        if not negotiation:
            raise NegotiationNotFoundError(negotiation_id)
        if negotiation.farmer != actor.id and not actor.is_admin:
            raise NegotiationPermissionError(negotiation_id)
        if negotiation.status != NegotiationStatus.ACTIVE:
            raise NegotiationClosedError(negotiation_id, negotiation.status.value)

        now = utcnow()
        if is_expired(negotiation, now):
            await self.negotiation_repo.close(negotiation_id, {"status": NegotiationStatus.EXPIRED.value})
            log.info("Negotiation expired before the response.")
            raise NegotiationClosedError(negotiation_id, NegotiationStatus.EXPIRED.value)

        related = {"negotiation_id": negotiation.id, "product_id": negotiation.product}
        if data.action == NegotiationAction.ACCEPT:
            latest = negotiation.latest_offer
            final_price = data.price if data.price is not None else (latest.price if latest else None)
            final_quantity = data.quantity if data.quantity is not None else (latest.quantity if latest else None)
            updated = await self.negotiation_repo.close(negotiation_id, {
                "status": NegotiationStatus.ACCEPTED.value,
                "final_price": final_price,
                "final_quantity": final_quantity,
                "accepted_at": now,
            })
            notification = (NotificationType.NEGOTIATION_ACCEPTED, "Offer Accepted",
                            f"Your offer was accepted at Rs. {final_price:g} for {final_quantity:g} units.")
        elif data.action == NegotiationAction.REJECT:
            updated = await self.negotiation_repo.close(negotiation_id, {"status": NegotiationStatus.REJECTED.value})
            notification = (NotificationType.NEGOTIATION, "Offer Rejected", "The farmer rejected your offer.")
        else:
            if data.price is None or data.quantity is None:
                raise CounterOfferIncompleteError()
            offer = {"offered_by": actor.id, "price": data.price, "quantity": data.quantity,
                     "message": data.message, "timestamp": now}
            updated = await self.negotiation_repo.append_offer(negotiation_id, offer, next_expiry(now))
            notification = (NotificationType.NEGOTIATION, "Counter Offer",
                            f"The farmer countered with Rs. {data.price:g} for {data.quantity:g} units.")

        if not updated:
            current = await self.negotiation_repo.get_by_id(negotiation_id)
            raise NegotiationClosedError(negotiation_id, current.status.value if current else "missing")
        log.success(f"Negotiation updated: status={updated.status.value}, offers={len(updated.offers)}")

        kind, title, message = notification
        await self.notifier.notify(updated.buyer, kind, title, message, sender_id=actor.id, related=related)
        if data.action != NegotiationAction.COUNTER:
            await audit_service.log_event(
                actor_id=actor.id, action=f"negotiation_{data.action.value}", entity_type="negotiation",
                entity_id=negotiation_id, details={"final_price": updated.final_price, "final_quantity": updated.final_quantity},
            )
        return updated

    async def expire_stale_negotiations(self, now: Optional[datetime] = None) -> int:
        count = await self.negotiation_repo.expire_stale(now)
        if count:
            logger.info(f"Expired {count} stale negotiation(s).")
        return count
