"""Wiring for the scheduled report job shared by HTTP, CLI and the worker."""

from __future__ import annotations

from datetime import datetime

from loguru import logger

from regdesk_api.core.kv import KeyValueStore
from regdesk_api.core.settings import Settings, settings
from regdesk_api.services.notifications.backend import EmailBackend, SMTPEmailBackend
from regdesk_api.services.orders.repository import OrderCache, OrderRepository

from .catalog import KeyValueReportCatalog
from .cursors import ReportCursorStore
from .heartbeat import RunHeartbeat
from .retry import DeliveryRetrier
from .scheduler import ItemPreview, ReportScheduler, SchedulerMode, SchedulerRunResult
from .sender import ChairReportSender


class ScheduledReportService:
    """Runs the scheduler and records the outcome in the heartbeat key."""

    def __init__(self, scheduler: ReportScheduler, heartbeat: RunHeartbeat) -> None:
        self.scheduler = scheduler
        self.heartbeat = heartbeat

    async def run(
        self,
        *,
        now: datetime | None = None,
        mode: SchedulerMode = SchedulerMode.NORMAL,
    ) -> SchedulerRunResult:
        mode = SchedulerMode(mode)
        try:
            result = await self.scheduler.run(now, mode=mode)
        except Exception as exc:
            await self.heartbeat.record(ok=False, mode=mode.value, reason="exception", message=str(exc))
            raise
        await self.heartbeat.record(
            ok=result.errors == 0,
            mode=mode.value,
            sent=result.sent,
            skipped=result.skipped,
            errors=result.errors,
        )
        return result

    async def preview(self, *, now: datetime | None = None) -> list[ItemPreview]:
        return await self.scheduler.preview(now)


def build_email_backend(config: Settings = settings) -> EmailBackend | None:
    if not config.smtp_host or not config.smtp_sender_email:
        logger.warning("SMTP is not configured; scheduled reports cannot be delivered")
        return None
    return SMTPEmailBackend(
        host=config.smtp_host,
        port=config.smtp_port,
        username=config.smtp_username,
        password=config.smtp_password,
        use_tls=config.smtp_use_tls,
        sender_email=config.smtp_sender_email,
    )


def build_scheduled_report_service(
    store: KeyValueStore,
    *,
    email_backend: EmailBackend | None,
    order_cache: OrderCache | None = None,
    config: Settings = settings,
    retrier: DeliveryRetrier | None = None,
) -> ScheduledReportService:
    """Assemble the scheduler from settings; without an email backend it has no sender."""

    catalog = KeyValueReportCatalog(store, namespace=config.report_cursor_namespace)
    sender = None
    if email_backend is not None:
        sender = ChairReportSender(
            catalog=catalog,
            orders=OrderRepository(store, cache=order_cache),
            email_backend=email_backend,
            bcc=config.reports_bcc,
        )
    scheduler = ReportScheduler(
        catalog=catalog,
        cursors=ReportCursorStore(store, namespace=config.report_cursor_namespace),
        sender=sender,
        retrier=retrier or DeliveryRetrier(config.report_retry_delays_seconds or (0.0,)),
        lease_ttl_seconds=config.report_lease_ttl_seconds,
        run_deadline_seconds=config.report_run_deadline_seconds,
        reject_unknown_frequency=config.report_reject_unknown_frequency,
        order_cache=order_cache,
    )
    return ScheduledReportService(scheduler, RunHeartbeat(store, key=config.report_heartbeat_key))


__all__ = [
    "ScheduledReportService",
    "build_email_backend",
    "build_scheduled_report_service",
]
