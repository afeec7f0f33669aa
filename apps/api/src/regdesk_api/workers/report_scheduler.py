"""Interval worker that triggers the scheduled report pass in-process."""

from __future__ import annotations

import asyncio

from loguru import logger

from regdesk_api.core.settings import settings
from regdesk_api.services.reports.scheduler import SchedulerRunResult
from regdesk_api.services.reports.service import ScheduledReportService


class ReportSchedulerWorker:
    """Runs a normal-mode report pass every ``interval_seconds``."""

    def __init__(
        self,
        service: ScheduledReportService,
        *,
        interval_seconds: int | None = None,
    ) -> None:
        self._service = service
        self.interval_seconds = interval_seconds or settings.report_scheduler_interval_seconds
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self.is_running: bool = False
        self._logger = logger.bind(worker="report_scheduler")

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop())
        self.is_running = True
        self._logger.info("Report scheduler worker started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if not self._task:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        self.is_running = False
        self._logger.info("Report scheduler worker stopped")

    async def run_once(self) -> SchedulerRunResult:
        return await self._service.run()

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                result = await self.run_once()
                self._logger.info(
                    "Report scheduler iteration",
                    sent=result.sent,
                    skipped=result.skipped,
                    errors=result.errors,
                )
            except Exception as exc:
                self._logger.exception("Report scheduler iteration failed", error=str(exc))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue


__all__ = ["ReportSchedulerWorker"]
