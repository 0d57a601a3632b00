# haatbazaar/modules/expenses/repository.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from haatbazaar.db.repository import MongoRepository, to_object_id
from haatbazaar.db.schemas.expense_schemas import ExpenseCategory, ExpenseDoc, ExpenseProjectDoc


def expense_filter(
    farmer_id: str,
    project_id: Optional[str] = None,
    category: Optional[ExpenseCategory] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    end_inclusive: bool = True,
) -> Dict[str, Any]:
    query: Dict[str, Any] = {"farmer": farmer_id}
    if project_id: query["project"] = project_id
    if category: query["category"] = category.value
    date_range: Dict[str, datetime] = {}
    if start: date_range["$gte"] = start
    if end: date_range["$lte" if end_inclusive else "$lt"] = end
    if date_range: query["date"] = date_range
    return query


class ExpenseProjectRepository(MongoRepository[ExpenseProjectDoc]):
    collection_name = "expense_projects"
    document_model = ExpenseProjectDoc

    async def list_for_farmer(self, farmer_id: str) -> List[ExpenseProjectDoc]:
        return await self.find_many({"farmer": farmer_id}, sort=[("created_at", -1)])

    async def get_owned(self, project_id: str, farmer_id: str) -> Optional[ExpenseProjectDoc]:
        oid = to_object_id(project_id)
        if oid is None:
            return None
        return await self.find_one({"_id": oid, "farmer": farmer_id})


class ExpenseRepository(MongoRepository[ExpenseDoc]):
    collection_name = "expenses"
    document_model = ExpenseDoc

    async def list_matching(self, query: Dict[str, Any]) -> List[ExpenseDoc]:
        return await self.find_many(query, sort=[("date", -1), ("created_at", -1)])

    async def get_owned(self, expense_id: str, farmer_id: str, project_id: Optional[str] = None) -> Optional[ExpenseDoc]:
        oid = to_object_id(expense_id)
        if oid is None:
            return None
        query: Dict[str, Any] = {"_id": oid, "farmer": farmer_id}
        if project_id: query["project"] = project_id
        return await self.find_one(query)

    async def delete_for_project(self, project_id: str, farmer_id: str) -> int:
        return await self.delete_many({"project": project_id, "farmer": farmer_id})
