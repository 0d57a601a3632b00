# haatbazaar/modules/negotiations/repository.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from haatbazaar.db.repository import MongoRepository
from haatbazaar.db.schemas.common_schemas import utcnow
from haatbazaar.db.schemas.negotiation_schemas import NegotiationDoc, NegotiationStatus

ACTIVE = NegotiationStatus.ACTIVE.value


class NegotiationRepository(MongoRepository[NegotiationDoc]):
    """Offer ledgers. Every write is guarded on the negotiation still being active."""
    collection_name = "negotiations"
    document_model = NegotiationDoc

    async def find_active(self, product_id: str, buyer_id: str) -> Optional[NegotiationDoc]:
        return await self.find_one({"product": product_id, "buyer": buyer_id, "status": ACTIVE})

    async def list_for_user(
        self,
        user_id: str,
        status: Optional[NegotiationStatus] = None,
        product_id: Optional[str] = None,
    ) -> List[NegotiationDoc]:
        query: Dict[str, Any] = {"$or": [{"buyer": user_id}, {"farmer": user_id}]}
        if status: query["status"] = status.value
        if product_id: query["product"] = product_id
        return await self.find_many(query, sort=[("created_at", -1)])

    async def list_active(self) -> List[NegotiationDoc]:
        return await self.find_many({"status": ACTIVE}, sort=[("updated_at", -1)])

    async def append_offer(self, negotiation_id: str, offer: Dict[str, Any], expires_at: datetime) -> Optional[NegotiationDoc]:
        return await self.update_by_id(
            negotiation_id,
            {"$push": {"offers": offer}, "$set": {"expires_at": expires_at}},
            extra_filter={"status": ACTIVE},
        )

    async def close(self, negotiation_id: str, fields: Dict[str, Any]) -> Optional[NegotiationDoc]:
        return await self.update_by_id(negotiation_id, {"$set": fields}, extra_filter={"status": ACTIVE})

    async def expire_stale(self, now: Optional[datetime] = None) -> int:
        return await self.update_many(
            {"status": ACTIVE, "expires_at": {"$lte": now or utcnow()}},
            {"$set": {"status": NegotiationStatus.EXPIRED.value}},
        )
