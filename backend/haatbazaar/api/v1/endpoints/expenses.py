# haatbazaar/api/v1/endpoints/expenses.py
from datetime import datetime
from typing import Annotated, Any, Dict, Optional
from fastapi import APIRouter, Depends, Path, Query, status

from haatbazaar.core.security import require_role
from haatbazaar.db.schemas.expense_schemas import (
    ExpenseCategory, ExpenseCreate, ExpenseProjectCreate, ExpenseProjectUpdate, ExpenseUpdate,
)
from haatbazaar.db.schemas.user_schemas import UserDoc
from haatbazaar.modules.expenses.service import ExpenseService

router = APIRouter()

ExpenseServiceDep = Annotated[ExpenseService, Depends()]
FarmerUser = Annotated[UserDoc, Depends(require_role(["farmer"]))]
ProjectId = Annotated[str, Path(description="Expense project ID")]
ExpenseId = Annotated[str, Path(description="Expense ID")]
CategoryFilter = Annotated[Optional[ExpenseCategory], Query()]
StartDate = Annotated[Optional[datetime], Query(alias="startDate")]
EndDate = Annotated[Optional[datetime], Query(alias="endDate")]


def _report_body(report: Dict[str, Any]) -> Dict[str, Any]:
    body = {**report, "expenses": [e.to_api() for e in report["expenses"]]}
    if "project" in report:
        body["project"] = report["project"].to_api()
    return body


# --- Projects ---

@router.get("/projects", summary="My expense projects with totals")
async def list_projects(farmer: FarmerUser, service: ExpenseServiceDep):
    return {"projects": await service.list_projects(farmer)}


@router.post("/projects", status_code=status.HTTP_201_CREATED, summary="Create an expense project")
async def create_project(data: ExpenseProjectCreate, farmer: FarmerUser, service: ExpenseServiceDep):
    project = await service.create_project(farmer, data)
    return {"message": "Project created", "project": project.to_api()}


@router.get("/projects/{project_id}", summary="Project with its expense report")
async def get_project(
    project_id: ProjectId, farmer: FarmerUser, service: ExpenseServiceDep,
    category: CategoryFilter = None, start_date: StartDate = None, end_date: EndDate = None,
):
    report = await service.project_report(farmer, project_id, category=category, start_date=start_date, end_date=end_date)
    return _report_body(report)


@router.put("/projects/{project_id}", summary="Update an expense project")
async def update_project(project_id: ProjectId, data: ExpenseProjectUpdate, farmer: FarmerUser, service: ExpenseServiceDep):
    project = await service.update_project(farmer, project_id, data)
    return {"message": "Project updated", "project": project.to_api()}


@router.delete("/projects/{project_id}", summary="Delete a project and its expenses")
async def delete_project(project_id: ProjectId, farmer: FarmerUser, service: ExpenseServiceDep):
    removed = await service.delete_project(farmer, project_id)
    return {"message": "Project deleted", "deleted_expenses": removed}


@router.get("/projects/{project_id}/expenses", summary="Expenses of a project")
async def list_project_expenses(
    project_id: ProjectId, farmer: FarmerUser, service: ExpenseServiceDep,
    category: CategoryFilter = None, start_date: StartDate = None, end_date: EndDate = None,
):
    report = await service.project_report(farmer, project_id, category=category, start_date=start_date, end_date=end_date)
    return _report_body(report)


@router.post("/projects/{project_id}/expenses", status_code=status.HTTP_201_CREATED, summary="Add an expense to a project")
async def create_project_expense(project_id: ProjectId, data: ExpenseCreate, farmer: FarmerUser, service: ExpenseServiceDep):
    expense = await service.create_expense(farmer, data, project_id=project_id)
    return {"message": "Expense added", "expense": expense.to_api()}


@router.put("/projects/{project_id}/expenses/{expense_id}", summary="Update a project expense")
async def update_project_expense(
    project_id: ProjectId, expense_id: ExpenseId, data: ExpenseUpdate, farmer: FarmerUser, service: ExpenseServiceDep,
):
    expense = await service.update_expense(farmer, expense_id, data, project_id=project_id)
    return {"message": "Expense updated", "expense": expense.to_api()}


@router.delete("/projects/{project_id}/expenses/{expense_id}", summary="Delete a project expense")
async def delete_project_expense(project_id: ProjectId, expense_id: ExpenseId, farmer: FarmerUser, service: ExpenseServiceDep):
    await service.delete_expense(farmer, expense_id, project_id=project_id)
    return {"message": "Expense deleted"}


# --- Expenses ---

@router.get("", summary="Expense report")
async def expense_report(
    farmer: FarmerUser, service: ExpenseServiceDep,
    project_id: Annotated[Optional[str], Query(alias="projectId")] = None,
    category: CategoryFilter = None, start_date: StartDate = None, end_date: EndDate = None,
):
    report = await service.expense_report(farmer, project_id=project_id, category=category,
                                          start_date=start_date, end_date=end_date)
    return _report_body(report)


@router.post("", status_code=status.HTTP_201_CREATED, summary="Record an expense")
async def create_expense(data: ExpenseCreate, farmer: FarmerUser, service: ExpenseServiceDep):
    expense = await service.create_expense(farmer, data)
    return {"message": "Expense added", "expense": expense.to_api()}


@router.get("/stats", summary="Per-category expense statistics")
async def expense_stats(
    farmer: FarmerUser, service: ExpenseServiceDep,
    month: Annotated[Optional[int], Query(ge=1, le=12)] = None,
    year: Annotated[Optional[int], Query(ge=1970, le=9999)] = None,
    project_id: Annotated[Optional[str], Query(alias="projectId")] = None,
):
    return await service.expense_stats(farmer, month=month, year=year, project_id=project_id)


@router.get("/{expense_id}", summary="Get an expense")
async def get_expense(expense_id: ExpenseId, farmer: FarmerUser, service: ExpenseServiceDep):
    expense = await service.get_expense(farmer, expense_id)
    return {"expense": expense.to_api()}


@router.put("/{expense_id}", summary="Update an expense")
async def update_expense(expense_id: ExpenseId, data: ExpenseUpdate, farmer: FarmerUser, service: ExpenseServiceDep):
    expense = await service.update_expense(farmer, expense_id, data)
    return {"message": "Expense updated", "expense": expense.to_api()}


@router.delete("/{expense_id}", summary="Delete an expense")
async def delete_expense(expense_id: ExpenseId, farmer: FarmerUser, service: ExpenseServiceDep):
    await service.delete_expense(farmer, expense_id)
    return {"message": "Expense deleted"}
