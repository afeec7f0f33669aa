"""Order integrity and admin correction endpoints."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from loguru import logger
from pydantic import BaseModel, Field

from regdesk_api.api.dependencies.security import require_admin_api_key
from regdesk_api.api.dependencies.services import get_order_patch_service, get_order_repository
from regdesk_api.services.orders import (
    OrderAdminPatchService,
    OrderNotFoundError,
    OrderPatchValidationError,
    OrderRepository,
    verify_order_hash,
)

router = APIRouter(
    prefix="/orders",
    tags=["orders"],
    dependencies=[Depends(require_admin_api_key)],
)


class OrderIntegrityResponse(BaseModel):
    model_config = {"populate_by_name": True}

    order_id: str = Field(alias="orderId")
    ok: bool
    expected: str | None = None
    actual: str | None = None
    reason: str | None = None


class CourtPatchRequest(BaseModel):
    model_config = {"populate_by_name": True}

    court_name: str = Field(default="", alias="courtName", max_length=200)
    court_no: str = Field(default="", alias="courtNo", max_length=50)
    overwrite: bool = False
    patched_by: str = Field(default="", alias="patchedBy", max_length=200)


class CourtPatchResponse(BaseModel):
    model_config = {"populate_by_name": True}

    ok: bool
    order_id: str = Field(alias="orderId")
    previous_hash: str | None = Field(default=None, alias="previousHash")
    hash: str
    verification: Dict[str, Any]
    order: Dict[str, Any]


class PatchAuditResponse(BaseModel):
    entries: list[Dict[str, Any]]


@router.get("/admin/patches", response_model=PatchAuditResponse, summary="Recent admin order corrections")
async def list_order_patches(
    limit: int = Query(20, ge=1, le=100),
    service: OrderAdminPatchService = Depends(get_order_patch_service),
) -> PatchAuditResponse:
    return PatchAuditResponse(entries=await service.recent_patches(limit))


@router.get("/{order_id}/integrity", response_model=OrderIntegrityResponse, summary="Verify an order hash")
async def verify_order_integrity(
    order_id: str,
    repository: OrderRepository = Depends(get_order_repository),
) -> OrderIntegrityResponse:
    try:
        order = await repository.get(order_id)
    except OrderNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Order not found") from exc

    verification = verify_order_hash(order)
    if not verification.ok:
        logger.warning(
            "Order hash verification failed",
            order_id=order_id,
            reason=verification.reason,
            expected=verification.expected,
            actual=verification.actual,
        )
    return OrderIntegrityResponse(
        order_id=order_id,
        ok=verification.ok,
        expected=verification.expected,
        actual=verification.actual,
        reason=verification.reason,
    )


@router.post(
    "/{order_id}/admin/court-patch",
    response_model=CourtPatchResponse,
    summary="Correct court name/number and re-seal the order",
)
async def patch_order_court(
    order_id: str,
    payload: CourtPatchRequest,
    service: OrderAdminPatchService = Depends(get_order_patch_service),
    x_request_id: str | None = Header(default=None, alias="X-Request-ID"),
) -> CourtPatchResponse:
    try:
        result = await service.patch_court(
            order_id,
            court_name=payload.court_name,
            court_no=payload.court_no,
            overwrite=payload.overwrite,
            patched_by=payload.patched_by,
            request_id=x_request_id,
        )
    except OrderNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Order not found") from exc
    except OrderPatchValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": exc.code, "message": str(exc)},
        ) from exc

    return CourtPatchResponse(
        ok=True,
        order_id=order_id,
        previous_hash=result.previous_hash,
        hash=str(result.order["hash"]),
        verification=result.verification.as_dict(),
        order=result.order,
    )
