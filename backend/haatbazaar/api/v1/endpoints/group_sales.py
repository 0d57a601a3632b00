# haatbazaar/api/v1/endpoints/group_sales.py
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Path, Query, status

from haatbazaar.core.security import CurrentUser, require_role
from haatbazaar.db.schemas.group_sale_schemas import GroupSaleCreate, GroupSaleJoin, GroupSaleStatus, GroupSaleStatusUpdate
from haatbazaar.db.schemas.user_schemas import UserDoc
from haatbazaar.modules.group_sales.service import GroupSaleService

router = APIRouter()

GroupSaleServiceDep = Annotated[GroupSaleService, Depends()]
SellerUser = Annotated[UserDoc, Depends(require_role(["farmer", "admin"]))]
BuyerUser = Annotated[UserDoc, Depends(require_role(["buyer"]))]
SaleId = Annotated[str, Path(description="Group sale ID")]


@router.post("", status_code=status.HTTP_201_CREATED, summary="Open a group sale")
async def create_group_sale(data: GroupSaleCreate, seller: SellerUser, service: GroupSaleServiceDep):
    sale = await service.create_group_sale(seller, data)
    return {"message": "Group sale created", "group_sale": sale.to_api()}


@router.get("", summary="List group sales")
async def list_group_sales(
    current_user: CurrentUser,
    service: GroupSaleServiceDep,
    status: Annotated[Optional[GroupSaleStatus], Query()] = GroupSaleStatus.OPEN,
    haat_event: Annotated[Optional[str], Query(alias="haatEvent", description="Haat event ID")] = None,
):
    sales = await service.list_group_sales(status=status, haat_event_id=haat_event)
    return {"group_sales": [s.to_api() for s in sales]}


@router.get("/{sale_id}", summary="Get a group sale")
async def get_group_sale(sale_id: SaleId, current_user: CurrentUser, service: GroupSaleServiceDep):
    sale = await service.get_group_sale(sale_id)
    return {"group_sale": sale.to_api()}


@router.post("/{sale_id}/join", summary="Join a group sale")
async def join_group_sale(sale_id: SaleId, data: GroupSaleJoin, buyer: BuyerUser, service: GroupSaleServiceDep):
    sale = await service.join_group_sale(buyer, sale_id, data.quantity)
    return {"message": "Joined group sale", "group_sale": sale.to_api()}


@router.put("/{sale_id}/status", summary="Change group sale status")
async def update_group_sale_status(
    sale_id: SaleId, data: GroupSaleStatusUpdate, seller: SellerUser, service: GroupSaleServiceDep,
):
    sale = await service.update_status(seller, sale_id, data.status)
    return {"message": "Group sale status updated", "group_sale": sale.to_api()}
