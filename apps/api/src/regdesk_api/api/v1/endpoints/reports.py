"""Scheduled chair report endpoints (cron trigger, dry run, heartbeat)."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, Query, status
from loguru import logger
from pydantic import BaseModel, Field

from regdesk_api.api.dependencies.security import require_admin_api_key, require_report_token
from regdesk_api.api.dependencies.services import get_report_service
from regdesk_api.core.clock import isoformat_utc, utcnow
from regdesk_api.observability.reports import get_report_scheduler_store
from regdesk_api.services.reports import (
    ReportSchedulerConfigurationError,
    ScheduledReportService,
    SchedulerMode,
)

router = APIRouter(prefix="/reports/scheduled", tags=["Reports"])


class ScheduledRunRequest(BaseModel):
    mode: SchedulerMode = SchedulerMode.NORMAL
    now: datetime | None = Field(default=None, description="Override the evaluation instant (UTC)")


class ItemLogPayload(BaseModel):
    model_config = {"populate_by_name": True}

    id: str
    label: str
    kind: str
    freq: str
    period_id: str = Field(alias="periodId")
    ok: bool
    skipped: bool
    skip_reason: str = Field(alias="skipReason")
    count: int
    to: list[str]
    bcc: list[str]
    error: str
    window_start_utc: str | None = Field(default=None, alias="windowStartUTC")
    window_end_utc: str | None = Field(default=None, alias="windowEndUTC")
    window_label: str = Field(alias="windowLabel")


class ScheduledRunResponse(BaseModel):
    model_config = {"populate_by_name": True}

    request_id: str = Field(alias="requestId")
    ok: bool
    mode: SchedulerMode
    sent: int
    skipped: int
    errors: int
    items_log: list[ItemLogPayload] = Field(alias="itemsLog")


class PreviewResponse(BaseModel):
    now: str
    items: list[Dict[str, Any]]


class HeartbeatResponse(BaseModel):
    heartbeat: Dict[str, Any] | None
    scheduler: Dict[str, Any]


@router.post(
    "/run",
    response_model=ScheduledRunResponse,
    dependencies=[Depends(require_report_token)],
    summary="Run one scheduled chair report pass",
)
async def run_scheduled_reports(
    payload: ScheduledRunRequest | None = None,
    service: ScheduledReportService = Depends(get_report_service),
) -> ScheduledRunResponse:
    payload = payload or ScheduledRunRequest()
    request_id = uuid4().hex
    try:
        result = await service.run(now=payload.now, mode=payload.mode)
    except ReportSchedulerConfigurationError as exc:
        logger.error("Scheduled report run misconfigured", request_id=request_id, error=str(exc))
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc

    return ScheduledRunResponse(
        request_id=request_id,
        ok=True,
        mode=payload.mode,
        sent=result.sent,
        skipped=result.skipped,
        errors=result.errors,
        items_log=[ItemLogPayload.model_validate(entry.as_dict()) for entry in result.items_log],
    )


@router.get(
    "/preview",
    response_model=PreviewResponse,
    dependencies=[Depends(require_admin_api_key)],
    summary="Dry run: what the next pass would deliver",
)
async def preview_scheduled_reports(
    now: datetime | None = Query(default=None),
    service: ScheduledReportService = Depends(get_report_service),
) -> PreviewResponse:
    instant = now or utcnow()
    previews = await service.preview(now=instant)
    return PreviewResponse(now=isoformat_utc(instant), items=[preview.as_dict() for preview in previews])


@router.get(
    "/heartbeat",
    response_model=HeartbeatResponse,
    dependencies=[Depends(require_admin_api_key)],
    summary="Last recorded scheduled report run",
)
async def scheduled_reports_heartbeat(
    service: ScheduledReportService = Depends(get_report_service),
) -> HeartbeatResponse:
    return HeartbeatResponse(
        heartbeat=await service.heartbeat.latest(),
        scheduler=get_report_scheduler_store().snapshot().as_dict(),
    )
