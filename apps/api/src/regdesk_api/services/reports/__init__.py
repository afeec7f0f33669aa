"""Scheduled chair report delivery."""

from .catalog import ItemConfig, KeyValueReportCatalog, ReportCatalog, ReportItem
from .cursors import CursorRegressionError, ReportCursorStore, ReportLease
from .heartbeat import RunHeartbeat
from .retry import (
    DeliveryOutcome,
    DeliveryRetrier,
    PermanentDeliveryError,
    ReportDeliveryError,
)
from .scheduler import (
    ItemLogEntry,
    ItemPreview,
    ReportScheduler,
    ReportSchedulerConfigurationError,
    SchedulerMode,
    SchedulerRunResult,
)
from .sender import ChairReportSender, ReportDeliveryRequest, ReportSender, SendResult
from .service import ScheduledReportService, build_email_backend, build_scheduled_report_service

__all__ = [
    "ChairReportSender",
    "CursorRegressionError",
    "DeliveryOutcome",
    "DeliveryRetrier",
    "ItemConfig",
    "ItemLogEntry",
    "ItemPreview",
    "KeyValueReportCatalog",
    "PermanentDeliveryError",
    "ReportCatalog",
    "ReportCursorStore",
    "ReportDeliveryError",
    "ReportDeliveryRequest",
    "ReportItem",
    "ReportLease",
    "ReportScheduler",
    "ReportSchedulerConfigurationError",
    "ReportSender",
    "RunHeartbeat",
    "ScheduledReportService",
    "SchedulerMode",
    "SchedulerRunResult",
    "SendResult",
    "build_email_backend",
    "build_scheduled_report_service",
]
