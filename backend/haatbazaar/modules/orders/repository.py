# haatbazaar/modules/orders/repository.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from haatbazaar.db.repository import MongoRepository
from haatbazaar.db.schemas.common_schemas import utcnow
from haatbazaar.db.schemas.order_schemas import (
    InventoryLedgerEntryDoc, LedgerKind, OrderDoc, OrderStatus, PaymentStatus,
)


class OrderRepository(MongoRepository[OrderDoc]):
    """Repository for orders. Status writes are conditional on the status that was read."""
    collection_name = "orders"
    document_model = OrderDoc

    async def list_for_user(self, user_id: str, role: Optional[str] = None) -> List[OrderDoc]:
        if role == "buyer":
            query: Dict[str, Any] = {"buyer": user_id}
        elif role == "farmer":
            query = {"farmer": user_id}
        else:
            query = {"$or": [{"buyer": user_id}, {"farmer": user_id}]}
        return await self.find_many(query, sort=[("created_at", -1)])

    async def apply_transition(
        self,
        order_id: str,
        expected: OrderStatus,
        target: OrderStatus,
        actor_id: str,
        extra_set: Optional[Dict[str, Any]] = None,
        extra_filter: Optional[Dict[str, Any]] = None,
    ) -> Optional[OrderDoc]:
        """Moves the order from `expected` to `target` and appends a history entry.
        Returns None when the order is no longer in `expected` (or `extra_filter` fails)."""
        return await self.update_by_id(
            order_id,
            {
                "$set": {"status": target.value, **(extra_set or {})},
                "$push": {"status_history": {"status": target.value, "actor_id": actor_id, "timestamp": utcnow()}},
            },
            extra_filter={"status": expected.value, **(extra_filter or {})},
        )

    async def update_payment(
        self,
        order_id: str,
        fields: Dict[str, Any],
        only_unpaid: bool = True,
    ) -> Optional[OrderDoc]:
        extra = {"payment_status": {"$ne": PaymentStatus.PAID.value}} if only_unpaid else None
        return await self.update_by_id(order_id, {"$set": fields}, extra_filter=extra)

    async def list_delivered(self) -> List[OrderDoc]:
        return await self.find_many({"status": OrderStatus.DELIVERED.value}, sort=[("created_at", -1)])


class InventoryLedgerRepository(MongoRepository[InventoryLedgerEntryDoc]):
    collection_name = "inventory_ledger"
    document_model = InventoryLedgerEntryDoc

    async def record(
        self, order_id: str, product_id: str, attempt_id: str, quantity: float, kind: LedgerKind,
    ) -> InventoryLedgerEntryDoc:
        return await self.insert({
            "order_id": order_id,
            "product_id": product_id,
            "attempt_id": attempt_id,
            "quantity": quantity,
            "kind": kind.value,
        })

    async def entries_for_order(self, order_id: str) -> List[InventoryLedgerEntryDoc]:
        return await self.find_many({"order_id": order_id}, sort=[("created_at", 1)])

    async def outstanding_by_attempt(self, order_id: str) -> Dict[str, Dict[str, Any]]:
        """Net deduction still held by each attempt: {attempt_id: {"started_at", "products": {id: qty}}}."""
        attempts: Dict[str, Dict[str, Any]] = {}
        for entry in await self.entries_for_order(order_id):
            attempt = attempts.setdefault(entry.attempt_id, {"started_at": entry.created_at, "products": {}})
            attempt["started_at"] = min(attempt["started_at"], entry.created_at)
            sign = 1 if entry.kind == LedgerKind.DEDUCTED else -1
            products = attempt["products"]
            products[entry.product_id] = products.get(entry.product_id, 0) + sign * entry.quantity
        for attempt in attempts.values():
            attempt["products"] = {pid: qty for pid, qty in attempt["products"].items() if qty > 1e-9}
        return {aid: a for aid, a in attempts.items() if a["products"]}

    async def orders_with_deductions(self, since: datetime, until: datetime) -> List[str]:
        """Ids of orders that had stock deducted inside the window, oldest first."""
        entries = await self.find_many(
            {"kind": LedgerKind.DEDUCTED.value, "created_at": {"$gte": since, "$lte": until}},
            sort=[("created_at", 1)],
        )
        return list(dict.fromkeys(e.order_id for e in entries))
