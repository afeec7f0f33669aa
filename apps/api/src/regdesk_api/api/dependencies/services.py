"""Accessors for the services the application lifespan places on ``app.state``."""

from fastapi import HTTPException, Request, status

from regdesk_api.core.kv import KeyValueStore
from regdesk_api.services.orders import OrderAdminPatchService, OrderRepository
from regdesk_api.services.reports import ScheduledReportService


def _state_attr(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{name} is not initialised",
        )
    return value


def get_kv_store(request: Request) -> KeyValueStore:
    return _state_attr(request, "kv_store")


def get_report_service(request: Request) -> ScheduledReportService:
    return _state_attr(request, "report_service")


def get_order_repository(request: Request) -> OrderRepository:
    return _state_attr(request, "order_repository")


def get_order_patch_service(request: Request) -> OrderAdminPatchService:
    return _state_attr(request, "order_patch_service")
