# haatbazaar/modules/expenses/service.py
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from fastapi import Depends

from haatbazaar.core.logging_setup import logger
from haatbazaar.db.schemas.common_schemas import as_utc, utcnow
from haatbazaar.db.schemas.expense_schemas import (
    ExpenseCategory, ExpenseCreate, ExpenseDoc, ExpenseProjectCreate, ExpenseProjectDoc,
    ExpenseProjectUpdate, ExpenseUpdate,
)
from haatbazaar.db.schemas.user_schemas import UserDoc
from haatbazaar.modules.expenses.exceptions import (
    ExpenseNotFoundError, ExpenseProjectNotFoundError, InvalidExpenseFilterError,
)
from haatbazaar.modules.expenses.repository import ExpenseProjectRepository, ExpenseRepository, expense_filter


def build_report(expenses: List[ExpenseDoc]) -> Dict[str, Any]:
    """Category totals (largest first) and per-day totals (newest first) for a set of expenses."""
    by_category: Dict[str, Dict[str, float]] = defaultdict(lambda: {"total": 0.0, "count": 0})
    by_day: Dict[str, Dict[str, float]] = defaultdict(lambda: {"total": 0.0, "count": 0})
    for expense in expenses:
        category = by_category[expense.category.value]
        category["total"] += expense.amount
        category["count"] += 1
        day = by_day[as_utc(expense.date).strftime("%Y-%m-%d")]
        day["total"] += expense.amount
        day["count"] += 1
    return {
        "expenses": expenses,
        "category_totals": sorted(
            ({"category": k, "total": round(v["total"], 2), "count": v["count"]} for k, v in by_category.items()),
            key=lambda row: row["total"], reverse=True,
        ),
        "date_wise_breakdown": sorted(
            ({"date": k, "total": round(v["total"], 2), "count": v["count"]} for k, v in by_day.items()),
            key=lambda row: row["date"], reverse=True,
        ),
        "total_expense": round(sum(e.amount for e in expenses), 2),
    }


def month_bounds(month: int, year: int):
    if not 1 <= month <= 12:
        raise InvalidExpenseFilterError("Month must be between 1 and 12")
    start = datetime(year, month, 1, tzinfo=timezone.utc)
    end = datetime(year + (month == 12), month % 12 + 1, 1, tzinfo=timezone.utc)
    return start, end


class ExpenseService:
    """Farm expense projects and entries, always scoped to the requesting farmer."""

    def __init__(
        self,
        project_repo: ExpenseProjectRepository = Depends(),
        expense_repo: ExpenseRepository = Depends(),
    ):
        self.project_repo = project_repo
        self.expense_repo = expense_repo

    # --- Projects ---

    async def get_project(self, farmer: UserDoc, project_id: str) -> ExpenseProjectDoc:
        project = await self.project_repo.get_owned(project_id, farmer.id)
        if not project:
            raise ExpenseProjectNotFoundError(project_id)
        return project

    async def list_projects(self, farmer: UserDoc) -> List[Dict[str, Any]]:
        projects = await self.project_repo.list_for_farmer(farmer.id)
        expenses = await self.expense_repo.list_matching({"farmer": farmer.id, "project": {"$in": [p.id for p in projects]}})
        grouped: Dict[str, List[ExpenseDoc]] = defaultdict(list)
        for expense in expenses:
            grouped[expense.project].append(expense)
        summaries = []
        for project in projects:
            items = grouped.get(project.id, [])
            summaries.append({
                **project.to_api(),
                "total_expense": round(sum(e.amount for e in items), 2),
                "expense_count": len(items),
                "last_expense_date": max((as_utc(e.date) for e in items), default=None),
            })
        return summaries

    async def create_project(self, farmer: UserDoc, data: ExpenseProjectCreate) -> ExpenseProjectDoc:
        project = await self.project_repo.insert({
            "farmer": farmer.id, "name": data.name.strip(), "description": data.description,
        })
        logger.bind(farmer_id=farmer.id).info(f"Expense project created: {project.id}")
        return project

    async def update_project(self, farmer: UserDoc, project_id: str, data: ExpenseProjectUpdate) -> ExpenseProjectDoc:
        await self.get_project(farmer, project_id)
        changes = data.model_dump(exclude_unset=True)
        if not changes:
            return await self.get_project(farmer, project_id)
        updated = await self.project_repo.update_by_id(project_id, {"$set": changes}, extra_filter={"farmer": farmer.id})
        if not updated:
            raise ExpenseProjectNotFoundError(project_id)
        return updated

    async def delete_project(self, farmer: UserDoc, project_id: str) -> int:
        await self.get_project(farmer, project_id)
        removed = await self.expense_repo.delete_for_project(project_id, farmer.id)
        await self.project_repo.delete_by_id(project_id)
        logger.bind(farmer_id=farmer.id, project_id=project_id).info(f"Project deleted with {removed} expense(s).")
        return removed

    # --- Expenses ---

    async def expense_report(
        self,
        farmer: UserDoc,
        project_id: Optional[str] = None,
        category: Optional[ExpenseCategory] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        if start_date and end_date and start_date > end_date:
            raise InvalidExpenseFilterError("start_date must not be after end_date")
        query = expense_filter(farmer.id, project_id, category, start_date, end_date)
        return build_report(await self.expense_repo.list_matching(query))

    async def project_report(self, farmer: UserDoc, project_id: str, **filters) -> Dict[str, Any]:
        project = await self.get_project(farmer, project_id)
        return {"project": project, **await self.expense_report(farmer, project_id=project_id, **filters)}

    async def expense_stats(
        self,
        farmer: UserDoc,
        month: Optional[int] = None,
        year: Optional[int] = None,
        project_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        start = end = None
        if month and year:
            start, end = month_bounds(month, year)
        query = expense_filter(farmer.id, project_id, start=start, end=end, end_inclusive=False)
        report = build_report(await self.expense_repo.list_matching(query))
        stats = [
            {**row, "avg_amount": round(row["total"] / row["count"], 2)}
            for row in report["category_totals"]
        ]
        return {"stats": stats, "total_expense": report["total_expense"]}

    async def get_expense(self, farmer: UserDoc, expense_id: str, project_id: Optional[str] = None) -> ExpenseDoc:
        expense = await self.expense_repo.get_owned(expense_id, farmer.id, project_id)
        if not expense:
            raise ExpenseNotFoundError(expense_id)
        return expense

    async def create_expense(self, farmer: UserDoc, data: ExpenseCreate, project_id: Optional[str] = None) -> ExpenseDoc:
        project_id = project_id or data.project_id
        if project_id:
            await self.get_project(farmer, project_id)
        expense = await self.expense_repo.insert({
            "farmer": farmer.id,
            "project": project_id,
            "category": data.category.value,
            "title": data.title,
            "description": data.description,
            "amount": data.amount,
            "quantity": data.quantity,
            "unit": data.unit,
            "date": data.date or utcnow(),
            "related_product": data.related_product,
            "notes": data.notes,
        })
        logger.bind(farmer_id=farmer.id, project_id=project_id).info(f"Expense recorded: {expense.id} ({expense.amount:.2f})")
        return expense

    async def update_expense(
        self, farmer: UserDoc, expense_id: str, data: ExpenseUpdate, project_id: Optional[str] = None,
    ) -> ExpenseDoc:
        await self.get_expense(farmer, expense_id, project_id)
        changes = data.model_dump(exclude_unset=True)
        if "project_id" in changes:
            new_project = changes.pop("project_id")
            if new_project:
                await self.get_project(farmer, new_project)
            changes["project"] = new_project
        if "category" in changes and changes["category"] is not None:
            changes["category"] = ExpenseCategory(changes["category"]).value
        if not changes:
            return await self.get_expense(farmer, expense_id, project_id)
        updated = await self.expense_repo.update_by_id(expense_id, {"$set": changes}, extra_filter={"farmer": farmer.id})
        if not updated:
            raise ExpenseNotFoundError(expense_id)
        return updated

    async def delete_expense(self, farmer: UserDoc, expense_id: str, project_id: Optional[str] = None):
        await self.get_expense(farmer, expense_id, project_id)
        await self.expense_repo.delete_by_id(expense_id)
