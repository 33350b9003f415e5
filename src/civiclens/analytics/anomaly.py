"""Daily complaint counts with a trailing rolling-average baseline.

The view supplies the raw count and the baseline side by side. Deciding
whether a day is a spike is left to the consumer.
"""

from collections import Counter
from datetime import timedelta

from civiclens.core.types import ComplaintRecord, DailyCount


def count_daily(records: list[ComplaintRecord]) -> list[DailyCount]:
    """Count complaints per (category, calendar day), sorted by category then day."""
    counts = Counter((r.category, r.created_at.date()) for r in records)
    return [
        DailyCount(category=category, day=day, count=n)
        for (category, day), n in sorted(counts.items())
    ]


def apply_rolling_average(
    counts: list[DailyCount],
    window_days: int = 30,
) -> list[DailyCount]:
    """Attach the trailing average to each daily count.

    For a row on ``day`` the average covers that category's rows dated
    ``day - window_days`` through ``day - 1``. Days with no complaints have
    no row and do not contribute. Early days use whatever shorter history
    exists; a category's first day has no average.
    """
    if window_days < 1:
        raise ValueError(f"window_days must be >= 1, got {window_days}")

    by_category: dict[str, list[DailyCount]] = {}
    for row in counts:
        by_category.setdefault(row.category, []).append(row)

    result: list[DailyCount] = []
    for category in sorted(by_category):
        rows = sorted(by_category[category], key=lambda r: r.day)
        for i, row in enumerate(rows):
            start = row.day - timedelta(days=window_days)
            prior = [r.count for r in rows[:i] if r.day >= start]
            result.append(
                DailyCount(
                    category=category,
                    day=row.day,
                    count=row.count,
                    rolling_average=sum(prior) / len(prior) if prior else None,
                )
            )
    return result


def daily_counts_view(
    records: list[ComplaintRecord],
    window_days: int = 30,
) -> list[DailyCount]:
    """Daily counts per category with their trailing baseline."""
    return apply_rolling_average(count_daily(records), window_days=window_days)
