# haatbazaar/api/v1/endpoints/admin.py
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Path, Query

from haatbazaar.core.security import require_role
from haatbazaar.db.schemas.user_schemas import UserDoc, UserRole
from haatbazaar.modules.admin.service import AdminService

router = APIRouter()

AdminServiceDep = Annotated[AdminService, Depends()]
AdminUser = Annotated[UserDoc, Depends(require_role(["admin"]))]
UserId = Annotated[str, Path(description="User ID")]


@router.get("/farmers/pending", summary="Farmers awaiting approval")
async def pending_farmers(admin: AdminUser, service: AdminServiceDep):
    farmers = await service.pending_farmers()
    return {"farmers": [f.public() for f in farmers]}


@router.put("/farmers/{user_id}/approve", summary="Approve a farmer")
async def approve_farmer(user_id: UserId, admin: AdminUser, service: AdminServiceDep):
    farmer = await service.set_farmer_approval(admin, user_id, True)
    return {"message": "Farmer approved successfully", "farmer": farmer.public()}


@router.put("/farmers/{user_id}/reject", summary="Reject a farmer")
async def reject_farmer(user_id: UserId, admin: AdminUser, service: AdminServiceDep):
    farmer = await service.set_farmer_approval(admin, user_id, False)
    return {"message": "Farmer rejected", "farmer": farmer.public()}


@router.get("/users", summary="List users")
async def list_users(
    admin: AdminUser,
    service: AdminServiceDep,
    role: Annotated[Optional[UserRole], Query()] = None,
    approved: Annotated[Optional[bool], Query()] = None,
):
    users = await service.list_users(role=role, approved=approved)
    return {"users": [u.public() for u in users]}


@router.delete("/users/{user_id}", summary="Delete a user")
async def delete_user(user_id: UserId, admin: AdminUser, service: AdminServiceDep):
    await service.delete_user(admin, user_id)
    return {"message": "User deleted successfully"}


@router.get("/dashboard/stats", summary="Marketplace counters")
async def dashboard_stats(admin: AdminUser, service: AdminServiceDep):
    return await service.dashboard_stats()


@router.get("/reports/revenue", summary="Delivered order revenue by farmer")
async def revenue_report(admin: AdminUser, service: AdminServiceDep):
    return await service.revenue_report()


@router.get("/negotiations/pending", summary="Negotiations still open")
async def active_negotiations(admin: AdminUser, service: AdminServiceDep):
    negotiations = await service.active_negotiations()
    return {"negotiations": [n.to_api() for n in negotiations]}
