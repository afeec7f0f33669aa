"""Background workers supporting async processing."""

from .report_scheduler import ReportSchedulerWorker

__all__ = ["ReportSchedulerWorker"]
