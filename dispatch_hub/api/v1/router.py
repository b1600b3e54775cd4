from fastapi import APIRouter

from dispatch_hub.api.v1.endpoints.health import router as health_router
from dispatch_hub.api.v1.endpoints.companies import router as companies_router
from dispatch_hub.api.v1.endpoints.delivery import router as delivery_router


router = APIRouter(prefix="/v1")
router.include_router(health_router, tags=["health"])
router.include_router(companies_router, tags=["delivery-companies"])
router.include_router(delivery_router, tags=["delivery"])
