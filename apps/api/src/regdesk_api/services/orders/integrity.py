"""Tamper-evident hashing for stored order records.

Orders are plain JSON objects. At checkout completion an order receives the
hash triple ``hashVersion`` / ``hashCreatedAt`` / ``hash``; the digest is a
SHA-256 over a canonical, key-sorted serialization of every field except
``hash`` itself.

``hashCreatedAt`` is stamped *before* digesting, so it is part of the hashed
content: two seals of identical business data taken at different moments
yield different digests, and verification proves "unchanged since this
issuance" rather than content identity.

The only sanctioned way to change a sealed order is the admin patch flow:
apply a targeted correction, then :func:`rehash_order_after_admin_patch`, which
records who/why and supersedes the previous hash.
"""

from __future__ import annotations

import hashlib
import json
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping

from regdesk_api.core.clock import isoformat_utc, utcnow

HASH_VERSION = 1
HASH_FIELD = "hash"

_PURCHASER_COURT_NAME_KEYS = ("courtName", "court")
_PURCHASER_COURT_NO_KEYS = ("courtNo", "court_number")
_LINE_COURT_NAME_KEYS = (
    "attendeeCourt",
    "attendeeCourtName",
    "attendee_court",
    "attendee_court_name",
    "court",
    "courtName",
    "court_name",
)
_LINE_COURT_NO_KEYS = (
    "attendeeCourtNumber",
    "attendeeCourtNo",
    "attendeeCourtNum",
    "attendee_court_number",
    "attendee_court_no",
    "attendee_court_num",
    "courtNumber",
    "courtNo",
    "court_no",
    "court_number",
)


@dataclass(slots=True, frozen=True)
class OrderHashVerification:
    ok: bool
    expected: str | None = None
    actual: str | None = None
    reason: str | None = None

    def as_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"ok": self.ok}
        if self.reason is not None:
            payload["reason"] = self.reason
        if self.expected is not None:
            payload["expected"] = self.expected
        if self.actual is not None:
            payload["actual"] = self.actual
        return payload


def stable_stringify(value: Any) -> str:
    """Serialize with recursively sorted object keys; arrays keep their order."""

    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return "null"
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(stable_stringify(item) for item in value) + "]"
    if isinstance(value, Mapping):
        parts = [
            f"{json.dumps(str(key), ensure_ascii=False)}:{stable_stringify(value[key])}"
            for key in sorted(value, key=str)
        ]
        return "{" + ",".join(parts) + "}"
    raise TypeError(f"Cannot canonicalize value of type {type(value).__name__}")


def compute_order_hash(order: Mapping[str, Any] | None) -> str:
    payload = dict(order) if isinstance(order, Mapping) else {}
    payload.pop(HASH_FIELD, None)
    normalized = stable_stringify(payload)
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


def _seal(order: dict[str, Any], sealed_at: datetime | None) -> dict[str, Any]:
    order["hashVersion"] = HASH_VERSION
    order["hashCreatedAt"] = isoformat_utc(sealed_at or utcnow())
    order["hash"] = compute_order_hash(order)
    return order


def attach_immutable_order_hash(order: Mapping[str, Any], *, now: datetime | None = None) -> dict[str, Any]:
    return _seal(dict(order), now)


def verify_order_hash(order: Any) -> OrderHashVerification:
    if not isinstance(order, Mapping):
        return OrderHashVerification(ok=False, reason="not-object")
    if not order.get("hash") or not order.get("hashVersion"):
        return OrderHashVerification(ok=False, reason="missing-hash")
    expected = compute_order_hash(order)
    actual = str(order.get("hash"))
    return OrderHashVerification(ok=expected == actual, expected=expected, actual=actual)


def _set_if_blank_or_overwrite(target: dict[str, Any], key: str, value: str, overwrite: bool) -> None:
    text = str(value or "").strip()
    if not text:
        return
    current = str(target.get(key) or "").strip()
    if overwrite or not current:
        target[key] = text


def patch_order_court_fields(
    order: Mapping[str, Any] | None,
    *,
    court_name: str = "",
    court_no: str = "",
    overwrite: bool = False,
) -> dict[str, Any] | None:
    """Fill court name/number on the purchaser and every line's attendee meta.

    Several historical field names are written so older report readers keep
    working. Blank inputs are ignored; existing values survive unless
    ``overwrite`` is set.
    """

    if not isinstance(order, Mapping):
        return None
    patched = dict(order)

    purchaser = patched.get("purchaser")
    if isinstance(purchaser, Mapping):
        purchaser = dict(purchaser)
        for key in _PURCHASER_COURT_NAME_KEYS:
            _set_if_blank_or_overwrite(purchaser, key, court_name, overwrite)
        for key in _PURCHASER_COURT_NO_KEYS:
            _set_if_blank_or_overwrite(purchaser, key, court_no, overwrite)
        patched["purchaser"] = purchaser

    raw_lines = patched.get("lines")
    lines: list[dict[str, Any]] = []
    for raw_line in raw_lines if isinstance(raw_lines, list) else []:
        line = dict(raw_line) if isinstance(raw_line, Mapping) else {}
        meta = dict(line["meta"]) if isinstance(line.get("meta"), Mapping) else {}
        for key in _LINE_COURT_NAME_KEYS:
            _set_if_blank_or_overwrite(meta, key, court_name, overwrite)
        for key in _LINE_COURT_NO_KEYS:
            _set_if_blank_or_overwrite(meta, key, court_no, overwrite)
        line["meta"] = meta
        lines.append(line)
    patched["lines"] = lines
    return patched


def rehash_order_after_admin_patch(
    order: Mapping[str, Any],
    *,
    patched_by: str = "",
    patch_note: str = "",
    now: datetime | None = None,
) -> dict[str, Any]:
    sealed_at = now or utcnow()
    resealed = dict(order)
    resealed["admin_patched"] = True
    resealed["admin_patched_at"] = isoformat_utc(sealed_at)
    if patched_by.strip():
        resealed["admin_patched_by"] = patched_by.strip()
    if patch_note.strip():
        resealed["admin_patch_note"] = patch_note.strip()
    return _seal(resealed, sealed_at)


__all__ = [
    "HASH_VERSION",
    "OrderHashVerification",
    "attach_immutable_order_hash",
    "compute_order_hash",
    "patch_order_court_fields",
    "rehash_order_after_admin_patch",
    "stable_stringify",
    "verify_order_hash",
]
