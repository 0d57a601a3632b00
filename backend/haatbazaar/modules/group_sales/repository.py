# haatbazaar/modules/group_sales/repository.py
from typing import Any, Dict, List, Optional

from haatbazaar.db.repository import MongoRepository
from haatbazaar.db.schemas.group_sale_schemas import GroupSaleDoc, GroupSaleStatus


class GroupSaleRepository(MongoRepository[GroupSaleDoc]):
    collection_name = "group_sales"
    document_model = GroupSaleDoc

    async def list_sales(
        self,
        status: Optional[GroupSaleStatus] = GroupSaleStatus.OPEN,
        haat_event_id: Optional[str] = None,
    ) -> List[GroupSaleDoc]:
        query: Dict[str, Any] = {}
        if status: query["status"] = status.value
        if haat_event_id: query["haat_event"] = haat_event_id
        return await self.find_many(query, sort=[("deadline", 1), ("created_at", -1)])

    async def add_participant(
        self,
        sale_id: str,
        participant: Dict[str, Any],
        expected_total: float,
        new_total: float,
        new_status: GroupSaleStatus,
    ) -> Optional[GroupSaleDoc]:
        """Appends a participant if the sale is still open, unchanged since it was read,
        and the buyer has not joined. Returns None when any guard fails."""
        return await self.update_by_id(
            sale_id,
            {
                "$push": {"participants": participant},
                "$set": {"total_quantity_sold": new_total, "status": new_status.value},
            },
            extra_filter={
                "status": GroupSaleStatus.OPEN.value,
                "total_quantity_sold": expected_total,
                "participants.buyer": {"$ne": participant["buyer"]},
            },
        )

    async def set_status(self, sale_id: str, status: GroupSaleStatus, expected: GroupSaleStatus) -> Optional[GroupSaleDoc]:
        return await self.update_by_id(
            sale_id,
            {"$set": {"status": status.value}},
            extra_filter={"status": expected.value},
        )
