from fastapi import APIRouter

from .endpoints import health, orders, reports

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(reports.router)
router.include_router(orders.router)
