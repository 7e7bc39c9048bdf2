from fastapi import APIRouter

from fournil.app.api.v1.endpoints.health import router as health_router
from fournil.app.api.v1.endpoints.stock import router as stock_router
from fournil.app.api.v1.endpoints.availability import router as availability_router
from fournil.app.api.v1.endpoints.reservations import router as reservations_router
from fournil.app.api.v1.endpoints.deliveries import router as deliveries_router
from fournil.app.api.v1.endpoints.inventory_operations import router as inventory_operations_router
from fournil.app.api.v1.endpoints.orders import router as orders_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(stock_router, tags=["stock"])
router.include_router(availability_router, tags=["availability"])
router.include_router(reservations_router, tags=["reservations"])
router.include_router(deliveries_router, tags=["deliveries"])
router.include_router(inventory_operations_router, tags=["inventory_operations"])
router.include_router(orders_router, tags=["orders"])
