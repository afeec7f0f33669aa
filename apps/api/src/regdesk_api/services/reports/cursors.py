"""Durable per-item delivery cursors and short-lived processing leases."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from uuid import uuid4

from loguru import logger

from regdesk_api.core.clock import isoformat_utc
from regdesk_api.core.kv import KeyValueStore
from regdesk_api.domain.reports.models import ReportCursor


class CursorRegressionError(RuntimeError):
    """Raised when a commit would move ``last_window_end_ms`` backwards."""


@dataclass(slots=True, frozen=True)
class ReportLease:
    item_id: str
    key: str
    token: str


class ReportCursorStore:
    """Cursor persistence keyed ``<namespace>:<item_id>:last_window_end_ms`` / ``:last_sent_at``."""

    def __init__(self, store: KeyValueStore, *, namespace: str = "itemcfg") -> None:
        self._store = store
        self._namespace = namespace

    def window_end_key(self, item_id: str) -> str:
        return f"{self._namespace}:{item_id}:last_window_end_ms"

    def sent_at_key(self, item_id: str) -> str:
        return f"{self._namespace}:{item_id}:last_sent_at"

    def lease_key(self, item_id: str) -> str:
        return f"{self._namespace}:{item_id}:lease"

    async def load(self, item_id: str) -> ReportCursor:
        raw_end = await self._store.get(self.window_end_key(item_id))
        raw_sent = await self._store.get(self.sent_at_key(item_id))
        return ReportCursor(
            item_id=item_id,
            last_window_end_ms=_parse_window_end(raw_end),
            last_sent_at=(raw_sent or "").strip() or None,
        )

    async def commit(self, item_id: str, *, window_end_ms: int, sent_at: datetime) -> ReportCursor:
        current = await self.load(item_id)
        if current.last_window_end_ms is not None and window_end_ms < current.last_window_end_ms:
            raise CursorRegressionError(
                f"Refusing to move cursor for {item_id} from {current.last_window_end_ms} to {window_end_ms}"
            )

        sent_at_iso = isoformat_utc(sent_at)
        await self._store.set(self.window_end_key(item_id), str(window_end_ms))
        await self._store.set(self.sent_at_key(item_id), sent_at_iso)
        logger.debug(
            "Report cursor committed",
            item_id=item_id,
            last_window_end_ms=window_end_ms,
            last_sent_at=sent_at_iso,
        )
        return ReportCursor(item_id=item_id, last_window_end_ms=window_end_ms, last_sent_at=sent_at_iso)

    async def acquire_lease(self, item_id: str, *, ttl_seconds: int) -> ReportLease | None:
        lease = ReportLease(item_id=item_id, key=self.lease_key(item_id), token=uuid4().hex)
        acquired = await self._store.set_if_absent(lease.key, lease.token, ttl_seconds=max(ttl_seconds, 1))
        return lease if acquired else None

    async def release_lease(self, lease: ReportLease) -> bool:
        released = await self._store.delete_if_equals(lease.key, lease.token)
        if not released:
            logger.warning("Report lease expired before release", item_id=lease.item_id)
        return released


def _parse_window_end(raw: str | None) -> int | None:
    if raw is None or str(raw).strip() == "":
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return int(value)


__all__ = ["CursorRegressionError", "ReportCursorStore", "ReportLease"]
