# haatbazaar/api/v1/endpoints/orders.py
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Path, Query, Request, status
from fastapi.responses import HTMLResponse

from haatbazaar.core.logging_setup import logger
from haatbazaar.core.security import CurrentUser, require_role
from haatbazaar.db.schemas.order_schemas import EsewaVerifyRequest, OrderCreate, OrderStatusUpdate
from haatbazaar.db.schemas.user_schemas import UserDoc
from haatbazaar.modules.orders.service import OrderService
from haatbazaar.modules.payments.esewa import render_checkout_form
from haatbazaar.modules.payments.service import PaymentService

router = APIRouter()

OrderServiceDep = Annotated[OrderService, Depends()]
PaymentServiceDep = Annotated[PaymentService, Depends()]
BuyerUser = Annotated[UserDoc, Depends(require_role(["buyer", "admin"]))]
OrderId = Annotated[str, Path(description="Order ID")]


@router.post("", status_code=status.HTTP_201_CREATED, summary="Place an order")
async def create_order(data: OrderCreate, buyer: BuyerUser, order_service: OrderServiceDep):
    order = await order_service.create_order(buyer, data)
    return {"message": "Order placed successfully", "order": order.to_api()}


@router.get("", summary="List my orders")
async def list_orders(
    current_user: CurrentUser,
    order_service: OrderServiceDep,
    role: Annotated[Optional[str], Query(pattern="^(buyer|farmer)$", description="Only orders where I am this party")] = None,
):
    orders = await order_service.list_orders(current_user, role)
    return {"orders": [o.to_api() for o in orders]}


# Registered before /{order_id} so "esewa" is not taken as an id
@router.get("/esewa/checkout", response_class=HTMLResponse, summary="Auto-submitting eSewa checkout form")
async def esewa_checkout(request: Request):
    return HTMLResponse(render_checkout_form(request.query_params))


@router.get("/{order_id}", summary="Get an order")
async def get_order(order_id: OrderId, current_user: CurrentUser, order_service: OrderServiceDep):
    order = await order_service.get_order(order_id, current_user)
    return {"order": order.to_api()}


@router.put("/{order_id}/status", summary="Farmer updates order status")
async def update_order_status(
    order_id: OrderId, data: OrderStatusUpdate, current_user: CurrentUser, order_service: OrderServiceDep,
):
    order = await order_service.update_order_status(order_id, current_user, data.status)
    return {"message": "Order status updated", "order": order.to_api()}


@router.delete("/{order_id}", summary="Buyer cancels an order")
async def cancel_order(order_id: OrderId, current_user: CurrentUser, order_service: OrderServiceDep):
    order = await order_service.cancel_order(order_id, current_user)
    return {"message": "Order cancelled", "order": order.to_api()}


@router.post("/{order_id}/esewa/initiate", summary="Start an eSewa payment")
async def initiate_esewa(order_id: OrderId, current_user: CurrentUser, payment_service: PaymentServiceDep):
    result = await payment_service.initiate_esewa_payment(order_id, current_user)
    return {
        "message": "eSewa payment initiated",
        "payment_url": result["payment_url"],
        "form_data": result["form_data"],
        "order": result["order"].to_api(),
    }


@router.post("/{order_id}/esewa/verify", summary="Verify an eSewa payment")
async def verify_esewa(
    order_id: OrderId, current_user: CurrentUser, payment_service: PaymentServiceDep,
    data: Optional[EsewaVerifyRequest] = None,
):
    data = data or EsewaVerifyRequest()
    order, provider_status = await payment_service.verify_esewa_payment(
        order_id, current_user, callback_data=data.data, transaction_uuid=data.transaction_uuid,
    )
    logger.bind(order_id=order_id).info(f"Verification result: {order.payment_status.value}")
    return {
        "message": f"Payment {order.payment_status.value}",
        "provider_status": provider_status,
        "order": order.to_api(),
    }
