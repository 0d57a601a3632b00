# haatbazaar/api/v1/endpoints/negotiations.py
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Path, Query, status

from haatbazaar.core.security import CurrentUser, require_role
from haatbazaar.db.schemas.negotiation_schemas import NegotiationCreate, NegotiationRespond, NegotiationStatus
from haatbazaar.db.schemas.user_schemas import UserDoc
from haatbazaar.modules.negotiations.service import NegotiationService

router = APIRouter()

NegotiationServiceDep = Annotated[NegotiationService, Depends()]
BuyerUser = Annotated[UserDoc, Depends(require_role(["buyer"]))]
NegotiationId = Annotated[str, Path(description="Negotiation ID")]


@router.post("", status_code=status.HTTP_201_CREATED, summary="Place an offer on a product")
async def create_negotiation(data: NegotiationCreate, buyer: BuyerUser, service: NegotiationServiceDep):
    negotiation = await service.create_negotiation(buyer, data)
    return {"message": "Offer placed successfully", "negotiation": negotiation.to_api()}


@router.get("", summary="List my negotiations")
async def list_negotiations(
    current_user: CurrentUser,
    service: NegotiationServiceDep,
    status: Annotated[Optional[NegotiationStatus], Query()] = None,
    product: Annotated[Optional[str], Query(description="Product ID")] = None,
):
    negotiations = await service.list_negotiations(current_user, status=status, product_id=product)
    return {"negotiations": [n.to_api() for n in negotiations]}


@router.get("/{negotiation_id}", summary="Get a negotiation")
async def get_negotiation(negotiation_id: NegotiationId, current_user: CurrentUser, service: NegotiationServiceDep):
    negotiation = await service.get_negotiation(negotiation_id, current_user)
    return {"negotiation": negotiation.to_api()}


@router.put("/{negotiation_id}/respond", summary="Farmer counters, accepts or rejects")
async def respond_to_negotiation(
    negotiation_id: NegotiationId, data: NegotiationRespond, current_user: CurrentUser, service: NegotiationServiceDep,
):
    negotiation = await service.respond_to_negotiation(negotiation_id, current_user, data)
    return {"message": "Negotiation updated", "negotiation": negotiation.to_api()}
