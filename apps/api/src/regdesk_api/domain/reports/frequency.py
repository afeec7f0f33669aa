"""Report frequency normalization."""

from __future__ import annotations

from enum import Enum

from loguru import logger


class ReportFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    NONE = "none"


class UnknownFrequencyError(ValueError):
    """Raised in strict mode when a frequency label is not recognised."""

    def __init__(self, raw: str) -> None:
        super().__init__(f"Unknown report frequency: {raw!r}")
        self.raw = raw


_ALIASES: dict[str, ReportFrequency] = {
    "twice-per-month": ReportFrequency.BIWEEKLY,
    "twice per month": ReportFrequency.BIWEEKLY,
    "twice": ReportFrequency.BIWEEKLY,
    "2x": ReportFrequency.BIWEEKLY,
    "bi-weekly": ReportFrequency.BIWEEKLY,
    "bi weekly": ReportFrequency.BIWEEKLY,
    "do not auto send": ReportFrequency.NONE,
    "do-not-auto-send": ReportFrequency.NONE,
}

DEFAULT_FREQUENCY = ReportFrequency.MONTHLY


def normalize_frequency(raw: object, *, strict: bool = False) -> ReportFrequency:
    """Map UI and legacy labels onto :class:`ReportFrequency`.

    Empty input means "never configured" and yields the monthly default.
    Unrecognised labels also fall back to monthly, but are logged so typos in
    item configuration surface; ``strict=True`` raises instead.
    """

    if isinstance(raw, ReportFrequency):
        return raw
    value = str(raw if raw is not None else "").strip().lower()
    if not value:
        return DEFAULT_FREQUENCY

    alias = _ALIASES.get(value)
    if alias is not None:
        return alias

    try:
        return ReportFrequency(value)
    except ValueError:
        pass

    if strict:
        raise UnknownFrequencyError(value)
    logger.warning(
        "Unrecognised report frequency, falling back to default",
        raw_frequency=value,
        fallback=DEFAULT_FREQUENCY.value,
    )
    return DEFAULT_FREQUENCY


__all__ = ["DEFAULT_FREQUENCY", "ReportFrequency", "UnknownFrequencyError", "normalize_frequency"]
