"""Calendar window selection per report frequency.

Every function here is pure: callers pass ``now`` and the persisted cursor and
receive a :class:`WindowDecision`. All arithmetic happens in UTC epoch
milliseconds and every window is half-open ``[start, end)``. A decision with
``skip=False`` always satisfies ``end_ms > start_ms``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from regdesk_api.core.clock import ensure_utc, from_epoch_ms, parse_iso_datetime, to_epoch_ms

from .frequency import ReportFrequency
from .models import ReportCursor, ReportWindow

DAY_MS = 24 * 60 * 60 * 1000
NOT_DUE_REASON = "Not due yet"
FREQUENCY_NONE_REASON = "Frequency set to 'none'"


@dataclass(slots=True, frozen=True)
class WindowDecision:
    skip: bool
    reason: str = ""
    start_ms: int | None = None
    end_ms: int | None = None
    label: str = ""

    @classmethod
    def not_due(cls, reason: str = NOT_DUE_REASON) -> "WindowDecision":
        return cls(skip=True, reason=reason)

    @classmethod
    def due(cls, start_ms: int, end_ms: int, label: str) -> "WindowDecision":
        if end_ms <= start_ms:
            return cls.not_due()
        return cls(skip=False, start_ms=start_ms, end_ms=end_ms, label=label)

    def as_dict(self) -> dict[str, object]:
        if self.skip:
            return {"skip": True, "reason": self.reason}
        return {"skip": False, "startMs": self.start_ms, "endMs": self.end_ms, "label": self.label}


def _month_start_ms(year: int, month: int) -> int:
    return to_epoch_ms(datetime(year, month, 1, tzinfo=timezone.utc))


def _day_start_ms(now: datetime) -> int:
    return to_epoch_ms(datetime(now.year, now.month, now.day, tzinfo=timezone.utc))


def start_of_month_ms(now: datetime) -> int:
    now = ensure_utc(now)
    return _month_start_ms(now.year, now.month)


def start_of_next_month_ms(now: datetime) -> int:
    now = ensure_utc(now)
    if now.month == 12:
        return _month_start_ms(now.year + 1, 1)
    return _month_start_ms(now.year, now.month + 1)


def start_of_previous_month_ms(now: datetime) -> int:
    now = ensure_utc(now)
    if now.month == 1:
        return _month_start_ms(now.year - 1, 12)
    return _month_start_ms(now.year, now.month - 1)


def start_of_iso_week_ms(now: datetime) -> int:
    now = ensure_utc(now)
    return _day_start_ms(now) - now.weekday() * DAY_MS


def compute_daily_window(
    now: datetime,
    last_window_end_ms: int | None = None,
    last_sent_at: str | None = None,
) -> WindowDecision:
    """Yesterday's window, continuing from the cursor when it is usable.

    The "already sent today" check compares ``last_sent_at``'s UTC calendar day
    and does not trust the cursor, which may point at today or the future.
    """

    now = ensure_utc(now)
    today_start = _day_start_ms(now)
    yesterday_start = today_start - DAY_MS

    last_sent = parse_iso_datetime(last_sent_at)
    if last_sent is not None and last_sent.date() == now.date():
        return WindowDecision.not_due()

    start_ms = last_window_end_ms if last_window_end_ms is not None else yesterday_start
    if start_ms >= today_start:
        start_ms = yesterday_start

    return WindowDecision.due(start_ms, today_start, "Daily (yesterday)")


def compute_weekly_window(now: datetime, last_window_end_ms: int | None = None) -> WindowDecision:
    this_week_start = start_of_iso_week_ms(now)
    previous_week_start = this_week_start - 7 * DAY_MS
    start_ms = last_window_end_ms if last_window_end_ms is not None else previous_week_start
    return WindowDecision.due(start_ms, this_week_start, "Weekly (previous ISO week)")


def compute_biweekly_window(now: datetime, last_window_end_ms: int | None = None) -> WindowDecision:
    """Calendar halves: the 1st-15th, then the 16th to month end.

    A half is only reported once it has closed, so the first half becomes due
    on the 16th and the second half on the 1st of the following month.

    With a cursor, the halves are those of the month the cursor falls in: a
    pass on the 1st delivers the previous month's second half, and a long gap
    is caught up one half per pass.
    """

    now_ms = to_epoch_ms(now)

    if last_window_end_ms is None:
        month_start = start_of_month_ms(now)
        midpoint = month_start + 15 * DAY_MS
        if now_ms < midpoint:
            return WindowDecision.not_due()
        return WindowDecision.due(month_start, midpoint, "Biweekly (1st-15th)")

    anchor = from_epoch_ms(last_window_end_ms)
    month_start = start_of_month_ms(anchor)
    midpoint = month_start + 15 * DAY_MS

    if last_window_end_ms < midpoint:
        if now_ms < midpoint:
            return WindowDecision.not_due()
        label = "Biweekly (1st-15th)" if last_window_end_ms == month_start else "Biweekly (1st-15th, catch-up)"
        return WindowDecision.due(last_window_end_ms, midpoint, label)

    next_month_start = start_of_next_month_ms(anchor)
    if now_ms < next_month_start:
        return WindowDecision.not_due()
    return WindowDecision.due(last_window_end_ms, next_month_start, "Biweekly (16th-end)")


def compute_monthly_window(now: datetime, last_window_end_ms: int | None = None) -> WindowDecision:
    this_month_start = start_of_month_ms(now)
    previous_month_start = start_of_previous_month_ms(now)
    start_ms = last_window_end_ms if last_window_end_ms is not None else previous_month_start
    return WindowDecision.due(start_ms, this_month_start, "Monthly (previous calendar month)")


def compute_window(
    frequency: ReportFrequency,
    now: datetime,
    cursor: ReportCursor | None = None,
) -> WindowDecision:
    last_window_end_ms = cursor.last_window_end_ms if cursor else None
    last_sent_at = cursor.last_sent_at if cursor else None

    if frequency is ReportFrequency.NONE:
        return WindowDecision.not_due(FREQUENCY_NONE_REASON)
    if frequency is ReportFrequency.DAILY:
        return compute_daily_window(now, last_window_end_ms, last_sent_at)
    if frequency is ReportFrequency.WEEKLY:
        return compute_weekly_window(now, last_window_end_ms)
    if frequency is ReportFrequency.BIWEEKLY:
        return compute_biweekly_window(now, last_window_end_ms)
    return compute_monthly_window(now, last_window_end_ms)


def compute_period_id(frequency: ReportFrequency, start_ms: int | None, end_ms: int | None) -> str:
    """Human-stable bucket id for logs; never used for control flow."""

    if not start_ms or not end_ms:
        return ""
    start = from_epoch_ms(start_ms)

    if frequency is ReportFrequency.DAILY:
        return start.strftime("%Y-%m-%d")
    if frequency is ReportFrequency.WEEKLY:
        iso_year, iso_week, _ = start.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    if frequency is ReportFrequency.BIWEEKLY:
        half = "1" if start.day <= 15 else "2"
        return f"{start:%Y-%m}-{half}"
    if frequency is ReportFrequency.MONTHLY:
        return start.strftime("%Y-%m")
    return ""


def to_report_window(frequency: ReportFrequency, decision: WindowDecision) -> ReportWindow | None:
    if decision.skip or decision.start_ms is None or decision.end_ms is None:
        return None
    return ReportWindow(
        start_ms=decision.start_ms,
        end_ms=decision.end_ms,
        label=decision.label,
        period_id=compute_period_id(frequency, decision.start_ms, decision.end_ms),
    )


__all__ = [
    "DAY_MS",
    "FREQUENCY_NONE_REASON",
    "NOT_DUE_REASON",
    "WindowDecision",
    "compute_biweekly_window",
    "compute_daily_window",
    "compute_monthly_window",
    "compute_period_id",
    "compute_weekly_window",
    "compute_window",
    "start_of_iso_week_ms",
    "start_of_month_ms",
    "start_of_next_month_ms",
    "start_of_previous_month_ms",
    "to_report_window",
]
