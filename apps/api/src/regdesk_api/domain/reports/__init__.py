"""Pure scheduling rules for chair report delivery."""

from .frequency import DEFAULT_FREQUENCY, ReportFrequency, UnknownFrequencyError, normalize_frequency
from .models import ReportCursor, ReportWindow
from .windows import (
    NOT_DUE_REASON,
    WindowDecision,
    compute_biweekly_window,
    compute_daily_window,
    compute_monthly_window,
    compute_period_id,
    compute_weekly_window,
    compute_window,
    to_report_window,
)

__all__ = [
    "DEFAULT_FREQUENCY",
    "NOT_DUE_REASON",
    "ReportCursor",
    "ReportFrequency",
    "ReportWindow",
    "UnknownFrequencyError",
    "WindowDecision",
    "compute_biweekly_window",
    "compute_daily_window",
    "compute_monthly_window",
    "compute_period_id",
    "compute_weekly_window",
    "compute_window",
    "normalize_frequency",
    "to_report_window",
]
