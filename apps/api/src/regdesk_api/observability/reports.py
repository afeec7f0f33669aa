"""Observability store for scheduled report runs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Dict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ReportSchedulerSnapshot:
    """Serializable snapshot of report scheduler activity."""

    totals: Dict[str, int]
    timings: Dict[str, float]
    last_started_at: datetime | None
    last_completed_at: datetime | None
    last_mode: str | None
    last_run: Dict[str, int] | None
    last_error_at: datetime | None
    last_error: str | None
    consecutive_failed_runs: int

    def as_dict(self) -> Dict[str, object]:
        return {
            "totals": self.totals,
            "timings": self.timings,
            "last_started_at": self.last_started_at.isoformat() if self.last_started_at else None,
            "last_completed_at": self.last_completed_at.isoformat() if self.last_completed_at else None,
            "last_mode": self.last_mode,
            "last_run": self.last_run,
            "last_error_at": self.last_error_at.isoformat() if self.last_error_at else None,
            "last_error": self.last_error,
            "consecutive_failed_runs": self.consecutive_failed_runs,
        }


class ReportSchedulerObservabilityStore:
    """Tracks report scheduler runs, deliveries and retries."""

    def __init__(self) -> None:
        self._lock: Lock = Lock()
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self._runs = 0
            self._sent = 0
            self._skipped = 0
            self._errors = 0
            self._delivery_retries = 0
            self._total_runtime_seconds = 0.0
            self._last_started_at: datetime | None = None
            self._last_completed_at: datetime | None = None
            self._last_mode: str | None = None
            self._last_run: Dict[str, int] | None = None
            self._last_error_at: datetime | None = None
            self._last_error: str | None = None
            self._consecutive_failed_runs = 0

    def record_run_started(self, mode: str) -> None:
        with self._lock:
            self._runs += 1
            self._last_started_at = _utcnow()
            self._last_completed_at = None
            self._last_mode = mode

    def record_delivery_retries(self, count: int) -> None:
        if count <= 0:
            return
        with self._lock:
            self._delivery_retries += count

    def record_item_error(self, item_id: str, error: str) -> None:
        with self._lock:
            self._last_error = f"{item_id}: {error}"
            self._last_error_at = _utcnow()

    def record_run_completed(self, *, sent: int, skipped: int, errors: int, runtime_seconds: float) -> None:
        with self._lock:
            self._sent += sent
            self._skipped += skipped
            self._errors += errors
            self._total_runtime_seconds += runtime_seconds
            self._last_completed_at = _utcnow()
            self._last_run = {"sent": sent, "skipped": skipped, "errors": errors}
            if errors:
                self._consecutive_failed_runs += 1
            else:
                self._consecutive_failed_runs = 0

    def record_run_failure(self, error: str) -> None:
        with self._lock:
            self._last_completed_at = _utcnow()
            self._last_error = error
            self._last_error_at = self._last_completed_at
            self._consecutive_failed_runs += 1

    def snapshot(self) -> ReportSchedulerSnapshot:
        with self._lock:
            return ReportSchedulerSnapshot(
                totals={
                    "runs": self._runs,
                    "sent": self._sent,
                    "skipped": self._skipped,
                    "errors": self._errors,
                    "delivery_retries": self._delivery_retries,
                },
                timings={"total_runtime_seconds": self._total_runtime_seconds},
                last_started_at=self._last_started_at,
                last_completed_at=self._last_completed_at,
                last_mode=self._last_mode,
                last_run=dict(self._last_run) if self._last_run else None,
                last_error_at=self._last_error_at,
                last_error=self._last_error,
                consecutive_failed_runs=self._consecutive_failed_runs,
            )


_REPORT_SCHEDULER_STORE = ReportSchedulerObservabilityStore()


def get_report_scheduler_store() -> ReportSchedulerObservabilityStore:
    return _REPORT_SCHEDULER_STORE


__all__ = [
    "ReportSchedulerObservabilityStore",
    "ReportSchedulerSnapshot",
    "get_report_scheduler_store",
]
