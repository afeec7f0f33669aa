"""Audited admin corrections for sealed orders."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from loguru import logger

from regdesk_api.core.clock import isoformat_utc, to_epoch_ms, utcnow
from regdesk_api.core.kv import KeyValueStore

from .integrity import (
    OrderHashVerification,
    patch_order_court_fields,
    rehash_order_after_admin_patch,
    verify_order_hash,
)
from .repository import OrderRepository

PATCH_AUDIT_KEY = "admin:order_patches"
COURT_PATCH_NOTE = "court_name_number"


class OrderPatchValidationError(ValueError):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


@dataclass(slots=True)
class OrderPatchResult:
    order: dict[str, Any]
    previous_hash: str | None
    verification: OrderHashVerification


class OrderAdminPatchService:
    """Applies court corrections, re-seals the order and records an audit entry."""

    def __init__(
        self,
        store: KeyValueStore,
        repository: OrderRepository,
        *,
        audit_limit: int = 100,
    ) -> None:
        self._store = store
        self._repository = repository
        self._audit_limit = audit_limit

    async def patch_court(
        self,
        order_id: str,
        *,
        court_name: str = "",
        court_no: str = "",
        overwrite: bool = False,
        patched_by: str = "",
        request_id: str | None = None,
        now: datetime | None = None,
    ) -> OrderPatchResult:
        order_id = (order_id or "").strip()
        court_name = (court_name or "").strip()
        court_no = (court_no or "").strip()
        if not order_id:
            raise OrderPatchValidationError("missing-orderId", "Order id is required.")
        if not court_name and not court_no:
            raise OrderPatchValidationError("missing-court", "Provide courtName and/or courtNo.")

        now = now or utcnow()
        existing = await self._repository.get(order_id)
        patched = patch_order_court_fields(
            existing,
            court_name=court_name,
            court_no=court_no,
            overwrite=overwrite,
        )
        if patched is None:
            raise OrderPatchValidationError("patch-failed", f"Order {order_id} could not be patched.")

        resealed = rehash_order_after_admin_patch(
            patched,
            patched_by=patched_by,
            patch_note=COURT_PATCH_NOTE,
            now=now,
        )
        stored = await self._repository.save_resealed(resealed)

        previous_hash = existing.get("hash")
        await self._append_audit(
            {
                "ts": to_epoch_ms(now),
                "at": isoformat_utc(now),
                "requestId": request_id,
                "action": "admin_patch_order_court",
                "orderId": order_id,
                "courtName": court_name,
                "courtNo": court_no,
                "overwrite": overwrite,
                "patchedBy": patched_by,
                "previousHash": previous_hash,
                "hash": stored["hash"],
            }
        )
        logger.info(
            "Order hash superseded by admin patch",
            order_id=order_id,
            previous_hash=previous_hash,
            hash=stored["hash"],
            patched_by=patched_by or None,
            overwrite=overwrite,
        )
        return OrderPatchResult(
            order=stored,
            previous_hash=str(previous_hash) if previous_hash else None,
            verification=verify_order_hash(stored),
        )

    async def recent_patches(self, limit: int = 20) -> list[dict[str, Any]]:
        limit = max(min(limit, self._audit_limit), 1)
        entries: list[dict[str, Any]] = []
        for raw in await self._store.lrange(PATCH_AUDIT_KEY, 0, limit - 1):
            try:
                decoded = json.loads(raw)
            except ValueError:
                continue
            if isinstance(decoded, dict):
                entries.append(decoded)
        return entries

    async def _append_audit(self, entry: dict[str, Any]) -> None:
        try:
            await self._store.lpush_capped(
                PATCH_AUDIT_KEY,
                json.dumps(entry, default=str),
                max_length=self._audit_limit,
            )
        except Exception as exc:
            # The order is already re-sealed; a lost audit line must not undo that.
            logger.exception("Failed to append order patch audit entry", order_id=entry.get("orderId"), error=str(exc))


__all__ = [
    "COURT_PATCH_NOTE",
    "OrderAdminPatchService",
    "OrderPatchResult",
    "OrderPatchValidationError",
    "PATCH_AUDIT_KEY",
]
