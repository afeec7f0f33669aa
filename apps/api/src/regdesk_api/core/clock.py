"""UTC time helpers shared by the scheduler and the order ledger."""

from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_epoch_ms(value: datetime) -> int:
    aware = ensure_utc(value)
    return int(aware.timestamp() * 1000)


def from_epoch_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def isoformat_utc(value: datetime) -> str:
    """Render ``2025-03-10T00:00:00.000Z`` (millisecond precision, ``Z`` suffix)."""

    aware = ensure_utc(value)
    return aware.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso_datetime(raw: object) -> datetime | None:
    """Parse an ISO-8601 string into an aware UTC datetime; ``None`` when unparseable."""

    if isinstance(raw, datetime):
        return ensure_utc(raw)
    text = str(raw or "").strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = f"{text[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return ensure_utc(parsed)


__all__ = [
    "ensure_utc",
    "from_epoch_ms",
    "isoformat_utc",
    "parse_iso_datetime",
    "to_epoch_ms",
    "utcnow",
]
