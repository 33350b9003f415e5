"""Tests for daily counts and the trailing rolling-average baseline."""

from datetime import date, datetime, timedelta, timezone

import pytest

from civiclens.analytics.anomaly import apply_rolling_average, count_daily, daily_counts_view
from civiclens.core.types import DailyCount


def _series(category: str, start: date, counts: list[int]) -> list[DailyCount]:
    return [
        DailyCount(category=category, day=start + timedelta(days=i), count=n)
        for i, n in enumerate(counts)
    ]


class TestCountDaily:
    def test_groups_by_category_and_calendar_day(self, make_complaint):
        records = [
            make_complaint("a", created_at=datetime(2024, 3, 1, 8, tzinfo=timezone.utc)),
            make_complaint("b", created_at=datetime(2024, 3, 1, 23, tzinfo=timezone.utc)),
            make_complaint("c", created_at=datetime(2024, 3, 2, 1, tzinfo=timezone.utc)),
            make_complaint("d", category="Noise", created_at=datetime(2024, 3, 1, 12, tzinfo=timezone.utc)),
        ]
        rows = count_daily(records)

        assert [(r.category, r.day, r.count) for r in rows] == [
            ("Noise", date(2024, 3, 1), 1),
            ("Street Condition", date(2024, 3, 1), 2),
            ("Street Condition", date(2024, 3, 2), 1),
        ]

    def test_empty(self):
        assert count_daily([]) == []


class TestApplyRollingAverage:
    def test_first_day_has_no_baseline(self):
        rows = apply_rolling_average(_series("Noise", date(2024, 1, 1), [4, 6]))
        assert rows[0].rolling_average is None
        assert rows[1].rolling_average == 4.0

    def test_full_window_excludes_current_day(self):
        start = date(2024, 1, 1)
        counts = [10] * 30 + [100]
        rows = apply_rolling_average(_series("Noise", start, counts))

        last = rows[-1]
        assert last.day == start + timedelta(days=30)
        assert last.count == 100
        assert last.rolling_average == 10.0

    def test_window_drops_days_older_than_thirty(self):
        start = date(2024, 1, 1)
        counts = [1000] + [2] * 30 + [5]
        rows = apply_rolling_average(_series("Noise", start, counts))

        # day 31 looks back over days 1..30; the 1000 on day 0 is out of range
        assert rows[31].rolling_average == 2.0
        # day 30 still sees day 0
        assert rows[30].rolling_average == pytest.approx((1000 + 2 * 29) / 30)

    def test_partial_history_uses_available_days(self):
        rows = apply_rolling_average(_series("Noise", date(2024, 1, 1), [2, 4, 9]))
        assert rows[2].rolling_average == 3.0

    def test_missing_days_do_not_count_as_zero(self):
        counts = [
            DailyCount(category="Noise", day=date(2024, 1, 1), count=6),
            DailyCount(category="Noise", day=date(2024, 1, 10), count=2),
            DailyCount(category="Noise", day=date(2024, 1, 20), count=9),
        ]
        rows = apply_rolling_average(counts)
        assert rows[2].rolling_average == 4.0

    def test_categories_are_independent(self):
        counts = _series("Noise", date(2024, 1, 1), [1, 1]) + _series("Graffiti", date(2024, 1, 1), [50, 50])
        rows = {(r.category, r.day): r for r in apply_rolling_average(counts)}

        assert rows[("Noise", date(2024, 1, 2))].rolling_average == 1.0
        assert rows[("Graffiti", date(2024, 1, 2))].rolling_average == 50.0

    def test_custom_window(self):
        rows = apply_rolling_average(_series("Noise", date(2024, 1, 1), [100, 1, 3, 5]), window_days=2)
        assert rows[3].rolling_average == 2.0

    def test_invalid_window(self):
        with pytest.raises(ValueError, match="window_days"):
            apply_rolling_average([], window_days=0)


def test_daily_counts_view_spike_is_visible(make_complaint):
    records = []
    start = datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
    for day in range(30):
        for n in range(2):
            records.append(make_complaint(f"{day}-{n}", created_at=start + timedelta(days=day)))
    spike_day = start + timedelta(days=30)
    records += [make_complaint(f"spike-{n}", created_at=spike_day) for n in range(12)]

    last = daily_counts_view(records)[-1]
    assert last.count == 12
    assert last.rolling_average == 2.0
