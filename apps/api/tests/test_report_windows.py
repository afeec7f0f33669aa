from datetime import datetime, timezone

import pytest

from regdesk_api.domain.reports import (
    NOT_DUE_REASON,
    ReportCursor,
    ReportFrequency,
    compute_biweekly_window,
    compute_daily_window,
    compute_monthly_window,
    compute_period_id,
    compute_weekly_window,
    compute_window,
)


def _at(year: int, month: int, day: int, hour: int = 0) -> datetime:
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


def _ms(year: int, month: int, day: int, hour: int = 0) -> int:
    return int(_at(year, month, day, hour).timestamp() * 1000)


NOWS = [
    _at(2025, 1, 1),
    _at(2025, 1, 1, 13),
    _at(2025, 2, 28, 23),
    _at(2025, 3, 10),
    _at(2025, 3, 15, 23),
    _at(2025, 3, 16),
    _at(2025, 3, 31, 12),
    _at(2024, 12, 30, 6),
]

CURSORS = [
    None,
    ReportCursor("item"),
    ReportCursor("item", last_window_end_ms=_ms(2025, 3, 1)),
    ReportCursor("item", last_window_end_ms=_ms(2025, 3, 16)),
    ReportCursor("item", last_window_end_ms=_ms(2025, 3, 12), last_sent_at="2025-03-12T09:00:00.000Z"),
    ReportCursor("item", last_window_end_ms=_ms(2026, 1, 1), last_sent_at="2024-12-01T00:00:00.000Z"),
    ReportCursor("item", last_window_end_ms=_ms(2024, 11, 20)),
]


@pytest.mark.parametrize("frequency", list(ReportFrequency))
def test_due_windows_always_have_positive_length(frequency: ReportFrequency) -> None:
    for now in NOWS:
        for cursor in CURSORS:
            decision = compute_window(frequency, now, cursor)
            if not decision.skip:
                assert decision.end_ms > decision.start_ms, (frequency, now, cursor)
            else:
                assert decision.reason


def test_daily_window_is_yesterday_without_cursor() -> None:
    decision = compute_daily_window(_at(2025, 3, 10, 8))

    assert decision.skip is False
    assert decision.start_ms == _ms(2025, 3, 9)
    assert decision.end_ms == _ms(2025, 3, 10)
    assert decision.label == "Daily (yesterday)"


def test_daily_window_not_due_after_sending_today() -> None:
    first = compute_daily_window(_at(2025, 3, 10, 1))
    assert first.skip is False

    rerun = compute_daily_window(
        _at(2025, 3, 10, 22),
        last_window_end_ms=first.end_ms,
        last_sent_at="2025-03-10T01:00:00.000Z",
    )

    assert rerun.skip is True
    assert rerun.reason == NOT_DUE_REASON


def test_daily_window_ignores_cursor_from_the_future() -> None:
    decision = compute_daily_window(
        _at(2025, 3, 10, 8),
        last_window_end_ms=_ms(2025, 3, 20),
        last_sent_at="2025-03-09T00:30:00.000Z",
    )

    assert decision.skip is False
    assert decision.start_ms == _ms(2025, 3, 9)
    assert decision.end_ms == _ms(2025, 3, 10)


def test_daily_window_catches_up_from_stale_cursor() -> None:
    decision = compute_daily_window(
        _at(2025, 3, 10, 8),
        last_window_end_ms=_ms(2025, 3, 6),
        last_sent_at="2025-03-06T00:10:00.000Z",
    )

    assert decision.start_ms == _ms(2025, 3, 6)
    assert decision.end_ms == _ms(2025, 3, 10)


def test_weekly_window_covers_previous_iso_week() -> None:
    # 2025-03-12 is a Wednesday; the ISO week began Monday 2025-03-10.
    decision = compute_weekly_window(_at(2025, 3, 12, 9))

    assert decision.skip is False
    assert decision.start_ms == _ms(2025, 3, 3)
    assert decision.end_ms == _ms(2025, 3, 10)
    assert compute_period_id(ReportFrequency.WEEKLY, decision.start_ms, decision.end_ms) == "2025-W10"


def test_weekly_window_not_due_once_cursor_reaches_week_start() -> None:
    decision = compute_weekly_window(_at(2025, 3, 12, 9), last_window_end_ms=_ms(2025, 3, 10))

    assert decision.skip is True
    assert decision.reason == NOT_DUE_REASON


def test_biweekly_first_half_waits_for_the_sixteenth() -> None:
    early = compute_biweekly_window(_at(2025, 3, 10))
    assert early.skip is True
    assert early.reason == NOT_DUE_REASON

    due = compute_biweekly_window(_at(2025, 3, 16))
    assert due.skip is False
    assert due.start_ms == _ms(2025, 3, 1)
    assert due.end_ms == _ms(2025, 3, 16)
    assert compute_period_id(ReportFrequency.BIWEEKLY, due.start_ms, due.end_ms) == "2025-03-1"


def test_biweekly_second_half_due_on_first_of_next_month() -> None:
    cursor = _ms(2025, 3, 16)

    assert compute_biweekly_window(_at(2025, 3, 28), last_window_end_ms=cursor).skip is True

    decision = compute_biweekly_window(_at(2025, 4, 1, 2), last_window_end_ms=cursor)
    assert decision.skip is False
    assert decision.start_ms == cursor
    assert decision.end_ms == _ms(2025, 4, 1)
    assert decision.label == "Biweekly (16th-end)"
    assert compute_period_id(ReportFrequency.BIWEEKLY, decision.start_ms, decision.end_ms) == "2025-03-2"


def test_biweekly_catch_up_from_mid_half_cursor() -> None:
    decision = compute_biweekly_window(_at(2025, 3, 20), last_window_end_ms=_ms(2025, 3, 5))

    assert decision.skip is False
    assert decision.start_ms == _ms(2025, 3, 5)
    assert decision.end_ms == _ms(2025, 3, 16)
    assert decision.label == "Biweekly (1st-15th, catch-up)"


def test_biweekly_windows_chain_without_gaps() -> None:
    now = _at(2025, 5, 2)
    cursor = _ms(2025, 3, 1)
    ends = []
    for _ in range(4):
        decision = compute_biweekly_window(now, last_window_end_ms=cursor)
        assert decision.skip is False
        assert decision.start_ms == cursor
        cursor = decision.end_ms
        ends.append(cursor)

    assert ends == [_ms(2025, 3, 16), _ms(2025, 4, 1), _ms(2025, 4, 16), _ms(2025, 5, 1)]
    assert compute_biweekly_window(now, last_window_end_ms=cursor).skip is True


def test_monthly_window_is_previous_calendar_month() -> None:
    decision = compute_monthly_window(_at(2025, 3, 10))

    assert decision.skip is False
    assert decision.start_ms == _ms(2025, 2, 1)
    assert decision.end_ms == _ms(2025, 3, 1)
    assert decision.label == "Monthly (previous calendar month)"
    assert compute_period_id(ReportFrequency.MONTHLY, decision.start_ms, decision.end_ms) == "2025-02"


def test_monthly_window_wraps_year_boundary() -> None:
    decision = compute_monthly_window(_at(2025, 1, 3))

    assert decision.start_ms == _ms(2024, 12, 1)
    assert decision.end_ms == _ms(2025, 1, 1)


def test_frequency_none_is_always_skipped() -> None:
    decision = compute_window(ReportFrequency.NONE, _at(2025, 3, 10))

    assert decision.skip is True
    assert decision.reason == "Frequency set to 'none'"
