# haatbazaar/api/v1/api.py

from fastapi import APIRouter

from haatbazaar.api.v1.endpoints import (
    admin, auth, expenses, group_sales, haat_events, locations, negotiations, notifications,
    orders, products, ratings, system,
)

api_router = APIRouter()

api_router.include_router(system.router, tags=["System"])
api_router.include_router(auth.router, prefix="/auth", tags=["Auth"])
api_router.include_router(products.router, prefix="/products", tags=["Products"])
api_router.include_router(orders.router, prefix="/orders", tags=["Orders"])
api_router.include_router(negotiations.router, prefix="/negotiations", tags=["Negotiations"])
api_router.include_router(group_sales.router, prefix="/group-sales", tags=["Group Sales"])
api_router.include_router(haat_events.router, prefix="/haat-events", tags=["Haat Events"])
api_router.include_router(ratings.router, prefix="/ratings", tags=["Ratings"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
api_router.include_router(expenses.router, prefix="/expenses", tags=["Expenses"])
api_router.include_router(locations.router, prefix="/location", tags=["Location"])
api_router.include_router(admin.router, prefix="/admin", tags=["Admin"])
