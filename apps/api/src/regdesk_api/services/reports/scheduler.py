"""Scheduled chair report delivery.

One :meth:`ReportScheduler.run` call makes a single sequential pass over the
reportable catalog. Per item the state machine is::

    eligible? --no--> skipped
        | yes
    window due? --no--> skipped
        | yes
    delivered? --yes--> cursor committed
        | no
    error logged (cursor unchanged, same window retried next pass)

Windows derive from the persisted cursor rather than from "now", so a pass
that fails or crashes before committing recomputes the same window next time.
In normal mode a per-item lease is held from before the cursor is read until
after it is committed, so overlapping passes cannot both deliver one window.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Literal

from loguru import logger

from regdesk_api.core.clock import ensure_utc, isoformat_utc, to_epoch_ms, utcnow
from regdesk_api.domain.reports.frequency import ReportFrequency, normalize_frequency
from regdesk_api.domain.reports.models import ReportCursor, ReportWindow
from regdesk_api.domain.reports.windows import (
    FREQUENCY_NONE_REASON,
    NOT_DUE_REASON,
    compute_period_id,
    compute_window,
    start_of_month_ms,
    to_report_window,
)
from regdesk_api.observability.reports import (
    ReportSchedulerObservabilityStore,
    get_report_scheduler_store,
)
from regdesk_api.services.orders.repository import OrderCache

from .catalog import ItemConfig, ReportCatalog, ReportItem
from .cursors import ReportCursorStore
from .retry import DeliveryOutcome, DeliveryRetrier, ReportDeliveryError
from .sender import ReportDeliveryRequest, ReportSender, SendResult

SKIP_NOT_YET_OPEN = "Not yet open (publishStart in future)"
SKIP_CLOSED = "Closed (publishEnd in past)"
SKIP_FREQUENCY_NONE = FREQUENCY_NONE_REASON
SKIP_NOT_DUE = NOT_DUE_REASON
SKIP_LEASE_HELD = "Lease held by another run"
SKIP_DEADLINE = "Run deadline exceeded"
DEADLINE_ERROR = "run-deadline-exceeded"
FORCE_REPLAY_LABEL = "Force replay (month-to-date)"

ItemOutcome = Literal["sent", "skipped", "error"]


class SchedulerMode(str, Enum):
    NORMAL = "normal"
    FORCE_REPLAY = "force_replay"


class ReportSchedulerConfigurationError(RuntimeError):
    """A required collaborator is missing; raised before any item is touched."""


@dataclass(slots=True)
class ItemLogEntry:
    id: str
    label: str
    kind: str
    freq: str = ""
    period_id: str = ""
    ok: bool = False
    skipped: bool = False
    skip_reason: str = ""
    count: int = 0
    to: list[str] = field(default_factory=list)
    bcc: list[str] = field(default_factory=list)
    error: str = ""
    window_start_utc: str | None = None
    window_end_utc: str | None = None
    window_label: str = ""

    def as_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "label": self.label,
            "kind": self.kind,
            "freq": self.freq,
            "periodId": self.period_id,
            "ok": self.ok,
            "skipped": self.skipped,
            "skipReason": self.skip_reason,
            "count": self.count,
            "to": list(self.to),
            "bcc": list(self.bcc),
            "error": self.error,
            "windowStartUTC": self.window_start_utc,
            "windowEndUTC": self.window_end_utc,
            "windowLabel": self.window_label,
        }


@dataclass(slots=True)
class SchedulerRunResult:
    sent: int = 0
    skipped: int = 0
    errors: int = 0
    items_log: list[ItemLogEntry] = field(default_factory=list)

    def as_dict(self) -> dict[str, object]:
        return {
            "sent": self.sent,
            "skipped": self.skipped,
            "errors": self.errors,
            "itemsLog": [entry.as_dict() for entry in self.items_log],
        }


@dataclass(slots=True)
class ItemPreview:
    id: str
    label: str
    kind: str
    freq_raw: str | None
    freq: str
    would_send: bool
    reason: str
    cursor: ReportCursor | None = None
    window: ReportWindow | None = None
    chair_emails: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "label": self.label,
            "kind": self.kind,
            "freqRaw": self.freq_raw,
            "freq": self.freq,
            "wouldSend": self.would_send,
            "reason": self.reason,
            "cursor": self.cursor.as_dict() if self.cursor else None,
            "window": self.window.as_dict() if self.window else None,
            "chairEmails": list(self.chair_emails),
        }


def evaluate_eligibility(config: ItemConfig, frequency: ReportFrequency, now: datetime) -> str | None:
    """Return the skip reason for an item that must not be reported, else ``None``."""

    if config.publish_start is not None and now < config.publish_start:
        return SKIP_NOT_YET_OPEN
    if config.publish_end is not None and now > config.publish_end:
        return SKIP_CLOSED
    if frequency is ReportFrequency.NONE:
        return SKIP_FREQUENCY_NONE
    return None


class ReportScheduler:
    """Drive one pass of chair report delivery over the item catalog."""

    def __init__(
        self,
        *,
        catalog: ReportCatalog,
        cursors: ReportCursorStore,
        sender: ReportSender | None,
        retrier: DeliveryRetrier | None = None,
        lease_ttl_seconds: int = 15 * 60,
        run_deadline_seconds: float | None = None,
        reject_unknown_frequency: bool = False,
        order_cache: OrderCache | None = None,
        observability: ReportSchedulerObservabilityStore | None = None,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._catalog = catalog
        self._cursors = cursors
        self._sender = sender
        self._retrier = retrier or DeliveryRetrier()
        self._lease_ttl_seconds = lease_ttl_seconds
        self._run_deadline_seconds = run_deadline_seconds
        self._reject_unknown_frequency = reject_unknown_frequency
        self._observability = observability or get_report_scheduler_store()
        self._monotonic = monotonic
        self._order_cache = order_cache

    @property
    def has_sender(self) -> bool:
        return self._sender is not None

    async def run(
        self,
        now: datetime | None = None,
        *,
        mode: SchedulerMode = SchedulerMode.NORMAL,
    ) -> SchedulerRunResult:
        if self._sender is None:
            raise ReportSchedulerConfigurationError("ReportScheduler.run requires a report sender")
        sender = self._sender
        if self._order_cache is not None:
            self._order_cache.invalidate()

        now = ensure_utc(now or utcnow())
        mode = SchedulerMode(mode)
        run_logger = logger.bind(run_mode=mode.value, run_now=isoformat_utc(now))
        self._observability.record_run_started(mode.value)
        started_at = time.perf_counter()
        deadline = (
            self._monotonic() + self._run_deadline_seconds
            if self._run_deadline_seconds and self._run_deadline_seconds > 0
            else None
        )

        try:
            items = await self._catalog.list_items()
        except Exception as exc:
            self._observability.record_run_failure(str(exc))
            run_logger.exception("Scheduled report run could not load the catalog", error=str(exc))
            raise

        run_logger.info("Scheduled report run started", items=len(items))
        result = SchedulerRunResult()

        for item in items:
            entry = ItemLogEntry(id=item.id, label=item.label, kind=item.kind)
            try:
                if deadline is not None and self._monotonic() >= deadline:
                    outcome = self._skip(entry, SKIP_DEADLINE)
                else:
                    outcome = await self._process_item(sender, item, entry, now, mode, deadline)
            except Exception as exc:
                outcome = "error"
                entry.ok = False
                entry.skipped = False
                entry.error = str(exc) or type(exc).__name__
                run_logger.exception("Scheduled report item failed", item_id=item.id, error=entry.error)

            if outcome == "sent":
                result.sent += 1
            elif outcome == "skipped":
                result.skipped += 1
            else:
                result.errors += 1
                self._observability.record_item_error(item.id, entry.error)

            result.items_log.append(entry)
            run_logger.info(
                "Scheduled report item processed",
                item_id=entry.id,
                kind=entry.kind,
                freq=entry.freq,
                period_id=entry.period_id,
                ok=entry.ok,
                skipped=entry.skipped,
                skip_reason=entry.skip_reason or None,
                error=entry.error or None,
                count=entry.count,
            )

        runtime_seconds = time.perf_counter() - started_at
        self._observability.record_run_completed(
            sent=result.sent,
            skipped=result.skipped,
            errors=result.errors,
            runtime_seconds=runtime_seconds,
        )
        run_logger.info(
            "Scheduled report run completed",
            sent=result.sent,
            skipped=result.skipped,
            errors=result.errors,
            runtime_seconds=runtime_seconds,
        )
        return result

    async def preview(self, now: datetime | None = None) -> list[ItemPreview]:
        """Report what a normal run would deliver without sending or writing anything."""

        now = ensure_utc(now or utcnow())
        previews: list[ItemPreview] = []
        for item in await self._catalog.list_items():
            preview = ItemPreview(
                id=item.id,
                label=item.label,
                kind=item.kind,
                freq_raw=item.frequency_raw,
                freq="",
                would_send=False,
                reason="",
            )
            try:
                config = await self._catalog.load_config(item.id)
                frequency_raw = config.frequency_raw if config.frequency_raw is not None else item.frequency_raw
                frequency = normalize_frequency(frequency_raw, strict=self._reject_unknown_frequency)
                preview.label = config.label or item.label
                preview.kind = config.kind or item.kind
                preview.freq_raw = frequency_raw
                preview.freq = frequency.value
                preview.chair_emails = list(config.chair_emails)

                gate = evaluate_eligibility(config, frequency, now)
                if gate is not None:
                    preview.reason = gate
                else:
                    preview.cursor = await self._cursors.load(item.id)
                    decision = compute_window(frequency, now, preview.cursor)
                    preview.window = to_report_window(frequency, decision)
                    preview.would_send = preview.window is not None
                    preview.reason = "ok" if preview.would_send else decision.reason
            except Exception as exc:
                preview.reason = f"error: {exc}"
                logger.exception("Scheduled report preview failed", item_id=item.id, error=str(exc))
            previews.append(preview)
        return previews

    async def _process_item(
        self,
        sender: ReportSender,
        item: ReportItem,
        entry: ItemLogEntry,
        now: datetime,
        mode: SchedulerMode,
        deadline: float | None,
    ) -> ItemOutcome:
        config = await self._catalog.load_config(item.id)
        entry.label = config.label or item.label
        entry.kind = config.kind or item.kind

        frequency_raw = config.frequency_raw if config.frequency_raw is not None else item.frequency_raw
        frequency = normalize_frequency(frequency_raw, strict=self._reject_unknown_frequency)
        entry.freq = frequency.value

        gate = evaluate_eligibility(config, frequency, now)
        if gate is not None:
            return self._skip(entry, gate)

        if mode is SchedulerMode.FORCE_REPLAY:
            return await self._deliver_window(sender, item, entry, frequency, now, mode, deadline)

        lease = await self._cursors.acquire_lease(item.id, ttl_seconds=self._lease_ttl_seconds)
        if lease is None:
            return self._skip(entry, SKIP_LEASE_HELD)
        try:
            return await self._deliver_window(sender, item, entry, frequency, now, mode, deadline)
        finally:
            try:
                await self._cursors.release_lease(lease)
            except Exception as exc:
                logger.exception("Failed to release report lease", item_id=item.id, error=str(exc))

    async def _deliver_window(
        self,
        sender: ReportSender,
        item: ReportItem,
        entry: ItemLogEntry,
        frequency: ReportFrequency,
        now: datetime,
        mode: SchedulerMode,
        deadline: float | None,
    ) -> ItemOutcome:
        if mode is SchedulerMode.FORCE_REPLAY:
            cursor = ReportCursor(item_id=item.id)
        else:
            cursor = await self._cursors.load(item.id)

        decision = compute_window(frequency, now, cursor)
        window = to_report_window(frequency, decision)
        if window is None and mode is SchedulerMode.FORCE_REPLAY:
            window = _month_to_date_window(now)
        if window is None:
            return self._skip(entry, decision.reason or SKIP_NOT_DUE)

        entry.period_id = window.period_id
        entry.window_label = window.label
        entry.window_start_utc = isoformat_utc(window.start)
        entry.window_end_utc = isoformat_utc(window.end)

        request = ReportDeliveryRequest(
            kind=entry.kind,
            item_id=item.id,
            label=entry.label,
            start_ms=window.start_ms,
            end_ms=window.end_ms,
            window_label=window.label,
        )
        outcome = await self._deliver(sender, request, deadline)
        if outcome is None:
            entry.error = DEADLINE_ERROR
            return "error"

        self._observability.record_delivery_retries(max(len(outcome.attempts) - 1, 0))
        if not outcome.ok:
            failed = getattr(outcome.error, "result", None)
            if isinstance(failed, SendResult):
                _copy_recipients(entry, failed)
            entry.error = str(outcome.error) if outcome.error else "send-failed"
            return "error"

        sent: SendResult = outcome.result
        entry.ok = True
        _copy_recipients(entry, sent)

        if mode is SchedulerMode.NORMAL:
            try:
                await self._cursors.commit(item.id, window_end_ms=window.end_ms, sent_at=now)
            except Exception as exc:
                entry.error = f"cursor-commit-failed: {exc}"
                logger.exception(
                    "Report delivered but cursor commit failed; window may be resent",
                    item_id=item.id,
                    window_end_ms=window.end_ms,
                    error=str(exc),
                )
        return "sent"

    async def _deliver(
        self,
        sender: ReportSender,
        request: ReportDeliveryRequest,
        deadline: float | None,
    ) -> DeliveryOutcome | None:

        async def _send_once() -> SendResult:
            result = await sender.send(request)
            if not result.ok:
                raise ReportDeliveryError(result.error or "send-failed", retryable=result.retryable, result=result)
            return result

        delivery = self._retrier.run(_send_once, label=f"item-report:{request.kind}:{request.item_id}")
        if deadline is None:
            return await delivery

        remaining = deadline - self._monotonic()
        try:
            return await asyncio.wait_for(delivery, timeout=max(remaining, 0.0))
        except asyncio.TimeoutError:
            logger.error("Report delivery cancelled at run deadline", item_id=request.item_id)
            return None

    @staticmethod
    def _skip(entry: ItemLogEntry, reason: str) -> ItemOutcome:
        entry.ok = False
        entry.skipped = True
        entry.skip_reason = reason
        return "skipped"


def _month_to_date_window(now: datetime) -> ReportWindow | None:
    start_ms = start_of_month_ms(now)
    end_ms = to_epoch_ms(now)
    if end_ms <= start_ms:
        return None
    return ReportWindow(
        start_ms=start_ms,
        end_ms=end_ms,
        label=FORCE_REPLAY_LABEL,
        period_id=compute_period_id(ReportFrequency.DAILY, start_ms, end_ms),
    )


def _copy_recipients(entry: ItemLogEntry, result: SendResult) -> None:
    entry.count = result.count
    entry.to = list(result.to)
    entry.bcc = list(result.bcc)


__all__ = [
    "ItemLogEntry",
    "ItemPreview",
    "ReportScheduler",
    "ReportSchedulerConfigurationError",
    "SchedulerMode",
    "SchedulerRunResult",
    "evaluate_eligibility",
]
