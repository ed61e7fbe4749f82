from fastapi import APIRouter

from app.api.v1.endpoints import (
    # Pincode checks + serviceable area admin
    delivery,
    # Cart quotes + vendor shipping config
    shipping,
)

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(delivery.router)
api_router.include_router(shipping.router)
