# haatbazaar/modules/payments/service.py
import time
from typing import Any, Dict, Optional, Tuple
from fastapi import Depends

from haatbazaar.core.config import settings
from haatbazaar.core.logging_setup import logger
from haatbazaar.db.schemas.common_schemas import utcnow
from haatbazaar.db.schemas.notification_schemas import NotificationType
from haatbazaar.db.schemas.order_schemas import OrderDoc, PaymentMethod, PaymentStatus
from haatbazaar.db.schemas.user_schemas import UserDoc
from haatbazaar.modules.notifications.service import NotificationService
from haatbazaar.modules.orders.exceptions import OrderNotFoundError
from haatbazaar.modules.orders.repository import OrderRepository
from haatbazaar.modules.payments.esewa import EsewaClient, build_form_payload, decode_callback, verify_callback
from haatbazaar.modules.payments.exceptions import (
    AlreadyPaidError, PaymentMethodMismatchError, PaymentPermissionError, TransactionMismatchError,
)
from haatbazaar.services.audit_service import audit_service

FAILED_PROVIDER_STATUSES = frozenset({"NOT_FOUND", "CANCELED"})

esewa_client = EsewaClient()


def get_esewa_client() -> EsewaClient:
    return esewa_client


def map_provider_status(provider_status: str) -> PaymentStatus:
    status = (provider_status or "").upper()
    if status == "COMPLETE":
        return PaymentStatus.PAID
    if status in FAILED_PROVIDER_STATUSES:
        return PaymentStatus.FAILED
    return PaymentStatus.PENDING


class PaymentService:
    """eSewa initiation and verification for orders paid online."""

    def __init__(
        self,
        order_repo: OrderRepository = Depends(),
        notifier: NotificationService = Depends(),
        client: EsewaClient = Depends(get_esewa_client),
    ):
        self.order_repo = order_repo
        self.notifier = notifier
        self.client = client

    async def _get_payable(self, order_id: str, actor: UserDoc) -> OrderDoc:
        order = await self.order_repo.get_by_id(order_id)
        if not order:
            raise OrderNotFoundError(order_id)
        if order.buyer != actor.id and not actor.is_admin:
            raise PaymentPermissionError(order_id)
        if order.payment_method != PaymentMethod.ESEWA:
            raise PaymentMethodMismatchError(order_id, order.payment_method.value)
        return order

    async def initiate_esewa_payment(self, order_id: str, actor: UserDoc) -> Dict[str, Any]:
        log = logger.bind(order_id=order_id, actor_id=actor.id)
        order = await self._get_payable(order_id, actor)
        if order.payment_status == PaymentStatus.PAID:
            raise AlreadyPaidError(order_id)

        transaction_uuid = f"{order.id}-{int(time.time() * 1000)}"
        form_data = build_form_payload(transaction_uuid, order.total_amount)
        updated = await self.order_repo.update_payment(order_id, {
            "payment_status": PaymentStatus.PENDING.value,
            "payment_details": {
                "transaction_uuid": transaction_uuid,
                "amount": order.total_amount,
                "provider_status": "INITIATED",
            },
        })
        if not updated:
            raise AlreadyPaidError(order_id)
        log.info(f"eSewa payment initiated: {transaction_uuid}")
        await audit_service.log_event(actor_id=actor.id, action="esewa_initiate", entity_type="order", entity_id=order_id,
                                      details={"transaction_uuid": transaction_uuid})
        return {"payment_url": settings.ESEWA_FORM_URL, "form_data": form_data, "order": updated}

    async def verify_esewa_payment(
        self,
        order_id: str,
        actor: UserDoc,
        callback_data: Optional[str] = None,
        transaction_uuid: Optional[str] = None,
    ) -> Tuple[OrderDoc, str]:
        """Returns the order and the provider status it was reconciled against."""
        log = logger.bind(order_id=order_id, actor_id=actor.id)
        order = await self._get_payable(order_id, actor)
        if order.payment_status == PaymentStatus.PAID:
            log.info("Order already paid; verification is a no-op.")
            return order, order.payment_details.provider_status or "COMPLETE"

        callback: Dict[str, Any] = {}
        if callback_data:
            callback = verify_callback(decode_callback(callback_data))

        resolved_uuid = callback.get("transaction_uuid") or transaction_uuid or order.payment_details.transaction_uuid
        if not resolved_uuid:
            raise TransactionMismatchError(order_id)
        if not str(resolved_uuid).startswith(f"{order.id}-"):
            raise TransactionMismatchError(order_id, str(resolved_uuid))

        amount = order.payment_details.amount or order.total_amount
        result = await self.client.check_status(resolved_uuid, amount)
        provider_status = str(result.get("status") or "").upper()
        new_status = map_provider_status(provider_status)
        now = utcnow()
        fields: Dict[str, Any] = {
            "payment_status": new_status.value,
            "payment_details.transaction_uuid": resolved_uuid,
            "payment_details.amount": amount,
            "payment_details.provider_status": provider_status or None,
            "payment_details.verified_at": now,
        }
        if new_status == PaymentStatus.PAID:
            fields["payment_details.ref_id"] = result.get("ref_id") or callback.get("transaction_code")
            fields["payment_details.paid_at"] = now

        updated = await self.order_repo.update_payment(order_id, fields, only_unpaid=True)
        if not updated:
            # Paid by a concurrent verification; keep its record
            current = await self.order_repo.get_by_id(order_id)
            return current, provider_status

        log.success(f"eSewa verification: {provider_status or 'UNKNOWN'} -> {new_status.value}")
        if new_status == PaymentStatus.PAID:
            await self.notifier.notify(
                updated.farmer, NotificationType.PAYMENT_RECEIVED, "Payment Received",
                f"Payment of Rs. {amount:.2f} received via eSewa.",
                sender_id=updated.buyer, related={"order_id": updated.id},
            )
        await audit_service.log_event(
            actor_id=actor.id, action="esewa_verify", entity_type="order", entity_id=order_id,
            success=new_status != PaymentStatus.FAILED,
            details={"provider_status": provider_status, "transaction_uuid": resolved_uuid},
        )
        return updated, provider_status
