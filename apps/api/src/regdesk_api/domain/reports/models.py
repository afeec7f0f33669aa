"""Value objects for scheduled report delivery."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from regdesk_api.core.clock import from_epoch_ms, isoformat_utc


@dataclass(slots=True, frozen=True)
class ReportCursor:
    """Boundary of the last successfully delivered window for one item."""

    item_id: str
    last_window_end_ms: int | None = None
    last_sent_at: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.last_window_end_ms is None and not self.last_sent_at

    def as_dict(self) -> dict[str, object]:
        return {
            "itemId": self.item_id,
            "lastWindowEndMs": self.last_window_end_ms,
            "lastSentAt": self.last_sent_at,
        }


@dataclass(slots=True, frozen=True)
class ReportWindow:
    """Half-open reporting period ``[start_ms, end_ms)``."""

    start_ms: int
    end_ms: int
    label: str
    period_id: str

    @property
    def start(self) -> datetime:
        return from_epoch_ms(self.start_ms)

    @property
    def end(self) -> datetime:
        return from_epoch_ms(self.end_ms)

    def as_dict(self) -> dict[str, object]:
        return {
            "startMs": self.start_ms,
            "endMs": self.end_ms,
            "startUTC": isoformat_utc(self.start),
            "endUTC": isoformat_utc(self.end),
            "label": self.label,
            "periodId": self.period_id,
        }


__all__ = ["ReportCursor", "ReportWindow"]
