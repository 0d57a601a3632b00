# haatbazaar/modules/orders/inventory.py
# Stock deduction for delivered orders, recorded in an append-only ledger so a
# partially applied attempt can always be found and reversed.
import uuid
from datetime import timedelta
from typing import List, Optional, Tuple
from fastapi import Depends

from haatbazaar.core.config import settings
from haatbazaar.core.logging_setup import logger
from haatbazaar.db.schemas.common_schemas import as_utc, utcnow
from haatbazaar.db.schemas.order_schemas import LedgerKind, OrderDoc
from haatbazaar.modules.orders.exceptions import InsufficientQuantityError
from haatbazaar.modules.orders.repository import InventoryLedgerRepository, OrderRepository
from haatbazaar.modules.products.repository import ProductRepository

Deduction = Tuple[str, float]


class InventoryManager:

    def __init__(
        self,
        product_repo: ProductRepository = Depends(),
        ledger_repo: InventoryLedgerRepository = Depends(),
        order_repo: OrderRepository = Depends(),
    ):
        self.product_repo = product_repo
        self.ledger_repo = ledger_repo
        self.order_repo = order_repo

    async def release_abandoned(
        self,
        order_id: str,
        grace_seconds: Optional[int] = None,
        keep_attempt: Optional[str] = None,
    ) -> int:
        """Returns stock held by earlier attempts that never completed.

        Attempts younger than the grace window may still be running and are left alone,
        as is `keep_attempt`, the attempt whose deduction delivered the order.
        """
        grace = settings.INVENTORY_RECOVERY_GRACE_SECONDS if grace_seconds is None else grace_seconds
        cutoff = utcnow() - timedelta(seconds=grace)
        released = 0
        for attempt_id, attempt in (await self.ledger_repo.outstanding_by_attempt(order_id)).items():
            if attempt_id == keep_attempt or as_utc(attempt["started_at"]) > cutoff:
                continue
            logger.bind(order_id=order_id, attempt_id=attempt_id).warning("Releasing stock held by an abandoned deduction.")
            await self._release(order_id, attempt_id, list(attempt["products"].items()))
            released += 1
        return released

    async def sweep_abandoned(self, grace_seconds: Optional[int] = None, lookback_hours: Optional[int] = None) -> int:
        """Releases deductions from every attempt that lost or crashed, across recent orders.

        Covers the retry that started inside the grace window and delivered the order,
        after which `release_abandoned` is never called for that order again.
        """
        grace = settings.INVENTORY_RECOVERY_GRACE_SECONDS if grace_seconds is None else grace_seconds
        lookback = settings.INVENTORY_SWEEP_LOOKBACK_HOURS if lookback_hours is None else lookback_hours
        until = utcnow() - timedelta(seconds=grace)
        released = 0
        for order_id in await self.ledger_repo.orders_with_deductions(until - timedelta(hours=lookback), until):
            order = await self.order_repo.get_by_id(order_id)
            keep = None
            if order is not None and order.inventory_deducted:
                if not order.inventory_attempt_id:
                    logger.bind(order_id=order_id).warning("Delivered order has no winning attempt recorded; skipping.")
                    continue
                keep = order.inventory_attempt_id
            released += await self.release_abandoned(order_id, grace_seconds=grace, keep_attempt=keep)
        return released

    async def deduct(self, order: OrderDoc) -> Tuple[str, List[Deduction]]:
        """Takes every line item off stock or none of them.

        Returns the attempt id and what was deducted, for `compensate`.
        Raises InsufficientQuantityError after undoing a partial deduction.
        """
        attempt_id = uuid.uuid4().hex
        log = logger.bind(order_id=order.id, attempt_id=attempt_id)
        deducted: List[Deduction] = []
        for item in order.items:
            product = await self.product_repo.decrement_quantity(item.product, item.quantity)
            if product is None:
                log.warning(f"Insufficient stock for product {item.product}; rolling back {len(deducted)} item(s).")
                await self._release(order.id, attempt_id, deducted)
                raise InsufficientQuantityError(item.product, item.title or "")
            await self.ledger_repo.record(order.id, item.product, attempt_id, item.quantity, LedgerKind.DEDUCTED)
            deducted.append((item.product, item.quantity))
        log.info(f"Deducted stock for {len(deducted)} item(s).")
        return attempt_id, deducted

    async def compensate(self, order_id: str, attempt_id: str, deducted: List[Deduction]):
        logger.bind(order_id=order_id, attempt_id=attempt_id).info("Compensating stock deduction.")
        await self._release(order_id, attempt_id, deducted)

    async def _release(self, order_id: str, attempt_id: str, deducted: List[Deduction]):
        for product_id, quantity in deducted:
            await self.product_repo.increment_quantity(product_id, quantity)
            await self.ledger_repo.record(order_id, product_id, attempt_id, quantity, LedgerKind.RELEASED)
