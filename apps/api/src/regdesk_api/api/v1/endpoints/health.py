from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from regdesk_api.api.dependencies.services import get_kv_store
from regdesk_api.core.kv import KeyValueStore
from regdesk_api.core.settings import settings
from regdesk_api.observability.reports import get_report_scheduler_store


router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "starting", "disabled", "error", "degraded"]
    detail: str | None = Field(default=None, description="Human readable status detail")
    last_error_at: str | None = Field(default=None, description="ISO timestamp of most recent error")
    last_success_at: str | None = Field(default=None, description="ISO timestamp of most recent success")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(
    request: Request,
    store: KeyValueStore = Depends(get_kv_store),
) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}
    status: Literal["ready", "degraded", "error"] = "ready"

    try:
        reachable = await store.ping()
    except Exception as exc:
        reachable = False
        detail = f"Key-value store unreachable ({exc})"
    else:
        detail = None if reachable else "Key-value store did not answer ping"
    if reachable:
        components["kv_store"] = ComponentStatus(status="ready")
    else:
        components["kv_store"] = ComponentStatus(status="error", detail=detail)
        status = "error"

    report_service = getattr(request.app.state, "report_service", None)
    if report_service is not None and not report_service.scheduler.has_sender:
        components["report_delivery"] = ComponentStatus(
            status="degraded",
            detail="No email backend configured; scheduled reports cannot be sent",
        )
        status = "degraded" if status != "error" else status
    else:
        components["report_delivery"] = ComponentStatus(status="ready")

    worker = getattr(request.app.state, "report_scheduler_worker", None)
    if settings.report_scheduler_enabled and worker is not None:
        running = bool(getattr(worker, "is_running", False))
        worker_status: Literal["ready", "starting", "disabled", "error"] = "ready" if running else "starting"
        detail = None if running else "Report scheduler worker not running"
        snapshot = get_report_scheduler_store().snapshot()
        if snapshot.consecutive_failed_runs > 0:
            worker_status = "error"
            detail = snapshot.last_error or "Last report run recorded errors"
            status = "error"
        elif not running:
            status = "degraded" if status != "error" else status
        components["report_scheduler"] = ComponentStatus(
            status=worker_status,
            detail=detail,
            last_error_at=snapshot.last_error_at.isoformat() if snapshot.last_error_at else None,
            last_success_at=snapshot.last_completed_at.isoformat() if snapshot.last_completed_at else None,
        )
    else:
        components["report_scheduler"] = ComponentStatus(
            status="disabled",
            detail="Report scheduler worker disabled via settings (external cron trigger expected)",
        )

    return ReadinessPayload(status=status, components=components)
