"""Last-run heartbeat for the scheduled report job."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from loguru import logger

from regdesk_api.core.clock import isoformat_utc, utcnow
from regdesk_api.core.kv import KeyValueStore


class RunHeartbeat:
    """Stores ``{"ok", "ts", ...}`` under a single key after every run."""

    def __init__(self, store: KeyValueStore, *, key: str = "cron:reports:last-run") -> None:
        self._store = store
        self.key = key

    async def record(self, *, ok: bool, now: datetime | None = None, **details: Any) -> None:
        payload = {"ok": ok, "ts": isoformat_utc(now or utcnow()), **details}
        try:
            await self._store.set(self.key, json.dumps(payload, default=str))
        except Exception as exc:
            # Never fail a run because the heartbeat could not be written.
            logger.exception("Failed to record report heartbeat", key=self.key, error=str(exc))

    async def latest(self) -> dict[str, Any] | None:
        raw = await self._store.get(self.key)
        if not raw:
            return None
        try:
            decoded = json.loads(raw)
        except ValueError:
            logger.warning("Report heartbeat is not valid JSON", key=self.key)
            return None
        return decoded if isinstance(decoded, dict) else None


__all__ = ["RunHeartbeat"]
