# haatbazaar/api/v1/endpoints/products.py
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Path, Query, status

from haatbazaar.core.security import CurrentUser, require_role
from haatbazaar.db.schemas.product_schemas import ProductCreate, ProductStatusUpdate, ProductUpdate
from haatbazaar.db.schemas.user_schemas import UserDoc
from haatbazaar.modules.products.service import ProductService

router = APIRouter()

ProductServiceDep = Annotated[ProductService, Depends()]
SellerUser = Annotated[UserDoc, Depends(require_role(["farmer", "admin"]))]
AdminUser = Annotated[UserDoc, Depends(require_role(["admin"]))]
ProductId = Annotated[str, Path(description="Product ID")]


@router.get("", summary="List approved products")
async def list_products(
    service: ProductServiceDep,
    category: Optional[str] = None,
    min_price: Annotated[Optional[float], Query(alias="minPrice", ge=0)] = None,
    max_price: Annotated[Optional[float], Query(alias="maxPrice", ge=0)] = None,
    q: Annotated[Optional[str], Query(max_length=100)] = None,
    haat_event_id: Annotated[Optional[str], Query(alias="haatEventId")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 12,
):
    result = await service.list_products(
        category=category, min_price=min_price, max_price=max_price, search=q,
        haat_event_id=haat_event_id, page=page, limit=limit,
    )
    return {**result, "products": [p.to_api() for p in result["products"]]}


@router.get("/smart", summary="Approved products ordered by proximity")
async def smart_products(
    current_user: CurrentUser,
    service: ProductServiceDep,
    latitude: Annotated[Optional[float], Query(ge=-90, le=90)] = None,
    longitude: Annotated[Optional[float], Query(ge=-180, le=180)] = None,
    q: Annotated[Optional[str], Query(max_length=100)] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
):
    return await service.smart_products(current_user, latitude, longitude, search=q, page=page, limit=limit)


@router.get("/bulk-buy", summary="High-stock products and open group sales")
async def bulk_buy_products(
    service: ProductServiceDep,
    min_kg: Annotated[Optional[float], Query(alias="minKg")] = None,
    inclusive: bool = False,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1)] = 10,
):
    return {"success": True, **await service.bulk_buy_products(min_kg, inclusive, page, limit)}


@router.get("/mine", summary="Products listed by the current farmer")
async def my_products(seller: SellerUser, service: ProductServiceDep):
    products = await service.list_for_farmer(seller.id)
    return {"products": [p.to_api() for p in products]}


@router.get("/pending", summary="Products awaiting moderation")
async def pending_products(admin: AdminUser, service: ProductServiceDep):
    products = await service.list_pending()
    return {"products": [p.to_api() for p in products]}


@router.post("", status_code=status.HTTP_201_CREATED, summary="List a product")
async def create_product(data: ProductCreate, seller: SellerUser, service: ProductServiceDep):
    product = await service.create_product(seller, data)
    message = "Product created and auto-approved" if product.approved else "Product created and pending approval"
    return {"message": message, "product": product.to_api()}


@router.get("/{product_id}", summary="Get a product")
async def get_product(product_id: ProductId, service: ProductServiceDep):
    product = await service.get_product(product_id)
    return {"product": product.to_api()}


@router.put("/{product_id}", summary="Update a product")
async def update_product(product_id: ProductId, data: ProductUpdate, seller: SellerUser, service: ProductServiceDep):
    product = await service.update_product(seller, product_id, data)
    return {"message": "Product updated", "product": product.to_api()}


@router.delete("/{product_id}", summary="Delete a product")
async def delete_product(product_id: ProductId, seller: SellerUser, service: ProductServiceDep):
    await service.delete_product(seller, product_id)
    return {"message": "Product deleted"}


@router.put("/{product_id}/status", summary="Approve or reject a product")
async def update_product_status(
    product_id: ProductId, data: ProductStatusUpdate, admin: AdminUser, service: ProductServiceDep,
):
    product = await service.update_status(admin, product_id, data.status)
    return {"message": f"Product {product.status.value}", "product": product.to_api()}
